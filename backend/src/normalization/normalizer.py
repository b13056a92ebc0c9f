"""Part number and line code canonicalization.

Canonical keys are what every matcher stage joins on:
- uppercase
- alphanumeric only (all punctuation and whitespace removed)
- leading zeros stripped

Examples:
    >>> normalize_part_number("000-2112-73")
    '211273'
    >>> normalize_part_number("axlch-8365")
    'AXLCH8365'
"""

import re
from typing import Optional, Tuple

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_SEPARATORS = re.compile(r"[-/.\s]")
_LETTER = re.compile(r"[A-Z]")

LINE_CODE_LENGTH = 3


def normalize_part_number(part_number: Optional[str]) -> str:
    """Return the canonical key for a part number ("" for empty input)."""
    if not part_number:
        return ""
    return _NON_ALNUM.sub("", part_number).upper().lstrip("0")


def normalize_line_code(line_code: Optional[str]) -> str:
    """Canonicalize a line code. Leading zeros are significant here."""
    if not line_code:
        return ""
    return _NON_ALNUM.sub("", line_code).upper()


def strip_separators(value: Optional[str]) -> str:
    """Remove '-', '/', '.' and whitespace, keeping every other character."""
    if not value:
        return ""
    return _SEPARATORS.sub("", value).upper()


def extract_line_code(part_number: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split a part number into (line_code, manufacturer_part).

    The first three characters are taken as the line code when they contain
    at least two letters and at least two characters remain. Otherwise the
    whole value is the manufacturer part and line_code is None.

    Examples:
        >>> extract_line_code("ABC10026A")
        ('ABC', '10026A')
        >>> extract_line_code("5A-123")
        (None, '5A-123')
    """
    if not part_number or len(part_number) < LINE_CODE_LENGTH:
        return None, part_number or None

    prefix = part_number[:LINE_CODE_LENGTH].upper()
    remainder = part_number[LINE_CODE_LENGTH:]
    if len(_LETTER.findall(prefix)) >= 2 and len(remainder) >= 2:
        return prefix, remainder
    return None, part_number


def derive_manufacturer_part(part_number: Optional[str], line_code: Optional[str]) -> Optional[str]:
    """Canonical manufacturer-part fragment, i.e. the part with its line-code prefix removed.

    Returns None when the part number does not start with the line code or
    nothing meaningful would remain.
    """
    # Compare before zero-stripping: line codes such as "01M" start with zeros
    alnum = normalize_line_code(part_number)
    code = normalize_line_code(line_code)
    if not alnum or not code or not alnum.startswith(code):
        return None
    fragment = alnum[len(code):].lstrip("0")
    if len(fragment) < 2:
        return None
    return fragment


def compute_transformation_signature(store_part: Optional[str], supplier_part: Optional[str]) -> Optional[str]:
    """Describe how two raw part numbers differ when they differ only by punctuation.

    Returns None if either value is empty, the raw values are identical, or
    their canonical keys differ (i.e. they are not punctuation variants).
    """
    if not store_part or not supplier_part:
        return None
    a = store_part.strip().upper()
    b = supplier_part.strip().upper()
    if a == b or normalize_part_number(a) != normalize_part_number(b):
        return None

    if a.replace("/", "-") == b:
        return "slash_to_dash"
    if a.replace("-", "/") == b:
        return "dash_to_slash"
    if a.replace("-", "") == b:
        return "remove_dash"
    if a.replace("/", "") == b:
        return "remove_slash"
    if a.replace(".", "") == b:
        return "remove_dot"
    if a.replace(" ", "") == b:
        return "remove_space"
    return "punctuation_change"
