"""Unit tests for similarity primitives and fuzzy-matching guardrails"""

import pytest

from matching.guardrails import (
    COLLISION_CONFIDENCE_CAP,
    apply_collision_cap,
    hard_reject_reason,
    subcategory_conflict,
)
from matching.similarity import (
    COST_DIVERGENCE_PENALTY,
    cost_sanity,
    description_similarity,
    part_similarity,
)


class TestSimilarity:
    """Test part, description and cost similarity"""

    def test_part_similarity_bounds(self):
        """Test identical keys score 1 and missing keys score 0"""
        assert part_similarity("AB12345", "AB12345") == pytest.approx(1.0)
        assert part_similarity("AB12345", "") == 0.0
        assert 0.0 < part_similarity("AB12345", "AB12346") < 1.0

    def test_description_jaccard(self):
        """Test token Jaccard over lowercased descriptions"""
        assert description_similarity("Brake Pad Set", "brake pad, front") == pytest.approx(0.5)
        assert description_similarity(None, "brake") == 0.0

    @pytest.mark.parametrize("store,supplier,expected", [
        (10, 10, 1.0),
        (12, 10, 0.8),
        (10, 40, COST_DIVERGENCE_PENALTY),
        (50, 10, COST_DIVERGENCE_PENALTY),
        (None, 10, 0.0),
        (10, 0, 0.0),
    ])
    def test_cost_sanity(self, store, supplier, expected):
        """Test ratios inside [0.5, 2.0] reward, outside penalize"""
        assert cost_sanity(store, supplier) == pytest.approx(expected)


class TestHardRejects:
    """Test hard-reject filters and their order"""

    def test_subcategory_conflict_is_symmetric_substring(self):
        """Test incompatible pairs match in both directions by substring"""
        assert subcategory_conflict("Battery Cable Clip", "Battery Cable") is True
        assert subcategory_conflict("Serpentine Belt", "Battery") is True
        assert subcategory_conflict("Brake Pads", "Brake Pads") is False
        assert subcategory_conflict(None, "Belt") is False

    def test_subcategory_checked_first(self):
        """Test a subcategory conflict wins over other reasons"""
        reason = hard_reject_reason("Hose", "Wiring Harness", "GATES", "DAYCO", True, 0.0, 0.0)
        assert reason.startswith("SUBCATEGORY_MISMATCH")

    def test_line_code_mapping_mismatch(self):
        """Test an approved mapping to another manufacturer rejects the pair"""
        reason = hard_reject_reason(None, None, "GATES", "DAYCO", False, 0.0, 1.0)
        assert reason.startswith("LINECODE_MANUFACTURER_MISMATCH")
        assert hard_reject_reason(None, None, "GATES", "GATES", False, 0.0, 1.0) is None

    def test_extreme_mismatch_needs_both_descriptions(self):
        """Test the extreme-mismatch filter only applies with two descriptions"""
        assert hard_reject_reason(None, None, None, None, True, 0.1, 0.3).startswith("EXTREME_MISMATCH")
        assert hard_reject_reason(None, None, None, None, False, 0.1, 0.3) is None
        assert hard_reject_reason(None, None, None, None, True, 0.1, 0.5) is None


class TestCollisionCap:
    """Test the multi-brand collision guardrail"""

    def test_unambiguous_pair_untouched(self):
        """Test two or fewer brands never cap"""
        confidence, check = apply_collision_cap(0.9, 2, False, 0.0, False)
        assert confidence == 0.9
        assert check.is_ambiguous is False

    def test_ambiguous_pair_capped(self):
        """Test more than two brands caps at 0.6 without a disambiguator"""
        confidence, check = apply_collision_cap(0.9, 3, False, 0.1, False)
        assert confidence == COLLISION_CONFIDENCE_CAP
        assert check.capped_from == 0.9

    @pytest.mark.parametrize("mapping,desc_sim,bridge,disambiguator", [
        (True, 0.0, False, "approved_line_code_mapping"),
        (False, 0.8, False, "description_similarity"),
        (False, 0.0, True, "interchange_bridge"),
    ])
    def test_disambiguators_lift_cap(self, mapping, desc_sim, bridge, disambiguator):
        """Test each disambiguator keeps the uncapped confidence"""
        confidence, check = apply_collision_cap(0.9, 5, mapping, desc_sim, bridge)
        assert confidence == 0.9
        assert check.disambiguator == disambiguator

    def test_low_confidence_not_raised(self):
        """Test the cap never increases a confidence"""
        confidence, _ = apply_collision_cap(0.5, 4, False, 0.0, False)
        assert confidence == 0.5
