"""Similarity primitives for fuzzy scoring.

All functions return a float in [0, 1] except cost_sanity, which returns a
negative penalty when costs diverge wildly.
"""

import re
from decimal import Decimal
from typing import Optional, Set, Union

from rapidfuzz.distance import JaroWinkler

COST_RATIO_MIN = 0.5
COST_RATIO_MAX = 2.0
COST_DIVERGENCE_PENALTY = -0.5

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

Number = Union[int, float, Decimal]


def part_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Jaro-Winkler similarity of two canonical part keys."""
    if not a or not b:
        return 0.0
    return float(JaroWinkler.similarity(a, b))


def tokenize(text: Optional[str]) -> Set[str]:
    if not text:
        return set()
    return {t for t in _TOKEN_SPLIT.split(text.lower()) if t}


def description_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Token Jaccard similarity of two free-text descriptions.

    Example:
        >>> description_similarity("Brake Pad Set", "brake pad, front")
        0.5
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def cost_sanity(store_cost: Optional[Number], supplier_cost: Optional[Number]) -> float:
    """Reward cost ratios near 1, penalize ratios outside [0.5, 2.0].

    Returns 0 when either cost is missing or the supplier cost is zero.
    """
    if store_cost is None or supplier_cost is None:
        return 0.0
    store_value = float(store_cost)
    supplier_value = float(supplier_cost)
    if store_value <= 0 or supplier_value <= 0:
        return 0.0
    ratio = store_value / supplier_value
    if COST_RATIO_MIN <= ratio <= COST_RATIO_MAX:
        return max(0.0, 1.0 - abs(1.0 - ratio))
    return COST_DIVERGENCE_PENALTY
