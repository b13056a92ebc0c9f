"""Quality guardrails for fuzzy matching.

Hard rejects discard a pair outright, checked in order (first hit wins):

1. SUBCATEGORY_MISMATCH: known-incompatible subcategory pairs
2. LINECODE_MANUFACTURER_MISMATCH: an approved line-code mapping names a
   different manufacturer than the supplier's brand
3. EXTREME_MISMATCH: both descriptions present, and both description and
   part similarity are very low

The collision guardrail caps pairs whose manufacturer part number exists
under many brands, unless something else disambiguates the pair.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

INCOMPATIBLE_SUBCATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("clip", "cable"),
    ("battery", "belt"),
    ("hose", "wiring"),
    ("axle", "brake"),
)

EXTREME_DESCRIPTION_SIMILARITY = 0.2
EXTREME_PART_SIMILARITY = 0.4

COLLISION_BRAND_THRESHOLD = 2  # more distinct brands than this is ambiguous
COLLISION_CONFIDENCE_CAP = 0.6
DISAMBIGUATING_DESCRIPTION_SIMILARITY = 0.7


def subcategory_conflict(store_subcategory: Optional[str], supplier_subcategory: Optional[str]) -> bool:
    """True when the subcategories fall on opposite sides of an incompatible pair.

    Matching is substring-based so "Battery Cable Clip" still counts as clip.
    """
    if not store_subcategory or not supplier_subcategory:
        return False
    store_sub = store_subcategory.lower()
    supplier_sub = supplier_subcategory.lower()
    for a, b in INCOMPATIBLE_SUBCATEGORIES:
        if (a in store_sub and b in supplier_sub) or (b in store_sub and a in supplier_sub):
            return True
    return False


def hard_reject_reason(
    store_subcategory: Optional[str],
    supplier_subcategory: Optional[str],
    mapped_manufacturer: Optional[str],
    supplier_brand: Optional[str],
    has_both_descriptions: bool,
    description_similarity: float,
    part_similarity: float,
) -> Optional[str]:
    """Return the first hard-reject reason that applies, or None.

    Args:
        store_subcategory: Store item subcategory (category when absent)
        supplier_subcategory: Supplier item subcategory (category when absent)
        mapped_manufacturer: Manufacturer from an APPROVED mapping of the store line code (resolved)
        supplier_brand: Supplier brand (resolved)
        has_both_descriptions: Both sides carry a description
        description_similarity: Token Jaccard of the descriptions
        part_similarity: Jaro-Winkler of the canonical keys
    """
    if subcategory_conflict(store_subcategory, supplier_subcategory):
        return f"SUBCATEGORY_MISMATCH: {store_subcategory} vs {supplier_subcategory}"

    if mapped_manufacturer and supplier_brand and mapped_manufacturer != supplier_brand:
        return f"LINECODE_MANUFACTURER_MISMATCH: mapped to {mapped_manufacturer}, supplier is {supplier_brand}"

    if (
        has_both_descriptions
        and description_similarity < EXTREME_DESCRIPTION_SIMILARITY
        and part_similarity < EXTREME_PART_SIMILARITY
    ):
        return f"EXTREME_MISMATCH: descSim={description_similarity:.2f}, partSim={part_similarity:.2f}"

    return None


@dataclass
class CollisionCheck:
    brand_count: int
    is_ambiguous: bool
    disambiguator: Optional[str] = None
    capped_from: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "brand_count": self.brand_count,
            "is_ambiguous": self.is_ambiguous,
            "disambiguator": self.disambiguator,
            "capped_from": self.capped_from,
        }


def apply_collision_cap(
    confidence: float,
    brand_count: int,
    mapping_names_brand: bool,
    description_similarity: float,
    interchange_bridge: bool,
) -> Tuple[float, CollisionCheck]:
    """Cap an ambiguous pair's confidence unless a disambiguator applies.

    Returns:
        (confidence, CollisionCheck) with the possibly capped confidence
    """
    check = CollisionCheck(brand_count=brand_count, is_ambiguous=brand_count > COLLISION_BRAND_THRESHOLD)
    if not check.is_ambiguous:
        return confidence, check

    if mapping_names_brand:
        check.disambiguator = "approved_line_code_mapping"
    elif description_similarity > DISAMBIGUATING_DESCRIPTION_SIMILARITY:
        check.disambiguator = "description_similarity"
    elif interchange_bridge:
        check.disambiguator = "interchange_bridge"

    if check.disambiguator is None and confidence > COLLISION_CONFIDENCE_CAP:
        check.capped_from = round(confidence, 4)
        confidence = COLLISION_CONFIDENCE_CAP
    return confidence, check
