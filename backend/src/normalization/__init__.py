"""Part number normalization and line code alias resolution."""

from .normalizer import (
    normalize_part_number,
    normalize_line_code,
    strip_separators,
    extract_line_code,
    derive_manufacturer_part,
    compute_transformation_signature,
)
from .alias_resolver import (
    AliasCache,
    AliasResolver,
    STATIC_BRAND_ALIASES,
    get_alias_cache,
    load_alias_map,
)

__all__ = [
    "normalize_part_number",
    "normalize_line_code",
    "strip_separators",
    "extract_line_code",
    "derive_manufacturer_part",
    "compute_transformation_signature",
    "AliasCache",
    "AliasResolver",
    "STATIC_BRAND_ALIASES",
    "get_alias_cache",
    "load_alias_map",
]
