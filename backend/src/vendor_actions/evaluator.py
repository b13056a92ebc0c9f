"""Vendor action rule evaluation.

Pure priority lookup, independent of match confidence. For a confirmed
match's supplier line code, category and subcategory the most specific
matching rule wins:

    exact category + exact subcategory      3
    exact category + '*' subcategory        2
    '*' category   + '*' subcategory        1

A '*' category paired with an exact subcategory never matches. Project rules
are searched before global rules; a global rule only applies when no project
rule matches. Comparison is case-insensitive.
"""

from typing import Iterable, Optional, Protocol
from uuid import UUID

from models.match_candidate import VendorAction

WILDCARD = "*"


class VendorActionRuleLike(Protocol):
    project_id: Optional[UUID]
    supplier_line_code: str
    category_pattern: str
    subcategory_pattern: str
    action: VendorAction
    active: bool


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def rule_priority(rule: VendorActionRuleLike, category: Optional[str], subcategory: Optional[str]) -> int:
    """Priority of a rule for the given category pair, 0 when it does not apply."""
    category_pattern = _norm(rule.category_pattern) or WILDCARD
    subcategory_pattern = _norm(rule.subcategory_pattern) or WILDCARD

    if category_pattern == WILDCARD:
        return 1 if subcategory_pattern == WILDCARD else 0
    if category_pattern != _norm(category):
        return 0
    if subcategory_pattern == WILDCARD:
        return 2
    return 3 if subcategory_pattern == _norm(subcategory) else 0


def _best(rules: Iterable[VendorActionRuleLike], category, subcategory) -> Optional[VendorActionRuleLike]:
    best, best_priority = None, 0
    for rule in rules:
        priority = rule_priority(rule, category, subcategory)
        if priority > best_priority:
            best, best_priority = rule, priority
    return best


def evaluate_vendor_action(
    rules: Iterable[VendorActionRuleLike],
    line_code: Optional[str],
    category: Optional[str],
    subcategory: Optional[str],
    project_id: Optional[UUID] = None,
) -> VendorAction:
    """Resolve the vendor action for one match.

    Example:
        rules (LINEA, BRAKES, PADS) -> LIFT and (LINEA, BRAKES, *) -> REBOX;
        a LINEA match in BRAKES / PADS resolves to LIFT.

    Args:
        rules: Candidate rules (inactive rules and other projects' rules are ignored)
        line_code: Supplier line code (or brand) of the matched item
        category: Category of the match
        subcategory: Subcategory of the match
        project_id: Project the match belongs to

    Returns:
        The winning rule's action, or VendorAction.NONE
    """
    code = _norm(line_code)
    if not code:
        return VendorAction.NONE

    applicable = [r for r in rules if r.active and _norm(r.supplier_line_code) == code]
    project_rules = [r for r in applicable if project_id is not None and r.project_id == project_id]
    global_rules = [r for r in applicable if r.project_id is None]

    for scope in (project_rules, global_rules):
        winner = _best(scope, category, subcategory)
        if winner is not None:
            return winner.action
    return VendorAction.NONE
