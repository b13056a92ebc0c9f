"""Unit tests for the deterministic matcher (canonical joins and interchange hops)"""

import pytest

from matching.deterministic_matcher import (
    CONFIDENCE_LINE_DIFFERS,
    CONFIDENCE_LINE_MISSING,
    CONFIDENCE_SAME_LINE,
    DeterministicMatcher,
    direct_tier,
    hop_confidence,
    is_complex_key,
)
from models.interchange import Interchange
from models.master_rule import MasterRule, MasterRuleType, RuleScope
from models.match_candidate import MatchMethod, MatchStatus, TargetType
from normalization import AliasCache


@pytest.fixture
def matcher(db_session):
    return DeterministicMatcher(db_session, AliasCache())


class TestConfidenceTiers:
    """Test the pure tier helpers"""

    def test_direct_tiers_are_ordered(self):
        """Test same line > missing line > differing line"""
        assert direct_tier(True) == CONFIDENCE_SAME_LINE == 1.0
        assert direct_tier(None) == CONFIDENCE_LINE_MISSING == 0.98
        assert direct_tier(False) == CONFIDENCE_LINE_DIFFERS == 0.95

    def test_every_hop_ranks_below_every_direct_tier(self):
        """Test the hop penalty keeps interchange matches under direct matches"""
        best_hop = max(hop_confidence(direct_tier(m)) for m in (True, None, False))
        assert best_hop <= 0.98
        assert best_hop < min(direct_tier(m) for m in (True, None, False))

    def test_hop_scaled_by_bridge_confidence(self):
        """Test the bridge confidence scales the hop"""
        assert hop_confidence(1.0, 0.5) == pytest.approx(0.45)

    def test_complex_key(self):
        """Test only long keys with digits are complex"""
        assert is_complex_key("AXLCH8365") is True
        assert is_complex_key("ABCDEFG") is False
        assert is_complex_key("A123") is False
        assert is_complex_key(None) is False


class TestDirectMatching:
    """Test direct canonical-key joins"""

    def test_differing_line_codes_on_shared_key(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test AXLCH-8365 (AXL) against XBOAXLCH8365 (XBO) scores 0.95"""
        store = make_store_item("AXLCH-8365", line_code="AXL")
        supplier = make_supplier_item("XBOAXLCH8365", line_code="XBO")

        result = matcher.run(project.id, [store.id])
        db_session.commit()

        assert result.candidates_created == 1
        [candidate] = candidates_for(store.id)
        assert candidate.target_type == TargetType.SUPPLIER
        assert candidate.target_id == str(supplier.id)
        assert candidate.confidence == pytest.approx(0.95)
        assert candidate.method == MatchMethod.LINE_PART
        assert candidate.status == MatchStatus.PENDING

    def test_identical_key_and_line(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test identical canonical key and line code scores 1.0"""
        store = make_store_item("GAT-12345", line_code="GAT")
        make_supplier_item("gat12345", line_code="GATES")

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence == pytest.approx(1.0)
        assert candidate.method == MatchMethod.EXACT_NORMALIZED

    def test_missing_line_code(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test a missing line code on one side scores 0.98"""
        store = make_store_item("7788-A")
        make_supplier_item("7788A", line_code="DOR")

        matcher.run(project.id, [store.id])
        db_session.commit()

        assert candidates_for(store.id)[0].confidence == pytest.approx(0.98)

    def test_simple_key_with_differing_lines_not_matched(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test short keys need agreeing line codes"""
        store = make_store_item("ABC", line_code="GAT")
        make_supplier_item("ABC", line_code="DAY")

        result = matcher.run(project.id, [store.id])

        assert result.candidates_created == 0
        assert candidates_for(store.id) == []

    def test_suffix_containment(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test a supplier key ending with the store key scores 0.93"""
        store = make_store_item("55123")
        make_supplier_item("ZZ-55123")

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence == pytest.approx(0.93)
        assert candidate.matched_on == "suffix_supplier_contains"

    def test_suffix_requires_minimum_key_length(self, db_session, project, matcher, make_store_item, make_supplier_item):
        """Test keys shorter than five characters never suffix-match"""
        store = make_store_item("5512")
        make_supplier_item("ZZ5512")

        result = matcher.run(project.id, [store.id])

        assert result.candidates_created == 0

    def test_best_candidate_tie_breaks_on_supplier_id(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test one candidate per store item, equal confidence resolved by supplier id"""
        store = make_store_item("MC-445566", line_code="MC")
        first = make_supplier_item("MC445566", line_code="MC")
        second = make_supplier_item("mc-445566", line_code="MC")

        matcher.run(project.id, [store.id])
        db_session.commit()

        candidates = candidates_for(store.id)
        assert len(candidates) == 1
        assert candidates[0].target_id == min(str(first.id), str(second.id))

    def test_global_supplier_catalog_is_visible(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test supplier rows without a project are matched too"""
        store = make_store_item("WAG-991100", line_code="WAG")
        make_supplier_item("WAG991100", line_code="WAG", global_catalog=True)

        matcher.run(project.id, [store.id])
        db_session.commit()

        assert len(candidates_for(store.id)) == 1


class TestInterchangeHop:
    """Test the interchange bridge stage"""

    def test_hop_match(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test a store key bridged to XYZ123 matches the XYZ123 supplier item below 0.98"""
        store = make_store_item("ABC-999")
        supplier = make_supplier_item("XYZ-123")
        db_session.add(Interchange(
            project_id=project.id,
            theirs_part_number="ABC-999", theirs_canonical="ABC999",
            ours_part_number="XYZ-123", ours_canonical="XYZ123",
        ))
        db_session.commit()

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.target_id == str(supplier.id)
        assert candidate.method == MatchMethod.INTERCHANGE
        assert candidate.confidence <= 0.98
        assert candidate.confidence == pytest.approx(0.88)

    def test_direct_match_preferred_over_hop(
        self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for
    ):
        """Test items resolved directly never take the hop"""
        store = make_store_item("ABC-999")
        direct = make_supplier_item("ABC999")
        make_supplier_item("XYZ-123")
        db_session.add(Interchange(
            project_id=None,
            theirs_part_number="ABC-999", theirs_canonical="ABC999",
            ours_part_number="XYZ-123", ours_canonical="XYZ123",
        ))
        db_session.commit()

        matcher.run(project.id, [store.id])
        db_session.commit()

        candidates = candidates_for(store.id)
        assert [c.target_id for c in candidates] == [str(direct.id)]


class TestExclusionAndIdempotence:
    """Test exclusion of matched items and blocked pairs"""

    def test_second_run_creates_nothing(self, db_session, project, matcher, make_store_item, make_supplier_item):
        """Test re-running a chunk is idempotent"""
        store = make_store_item("AXLCH-8365", line_code="AXL")
        make_supplier_item("XBOAXLCH8365", line_code="XBO")

        first = matcher.run(project.id, [store.id])
        db_session.commit()
        second = matcher.run(project.id, [store.id])
        db_session.commit()

        assert first.candidates_created == 1
        assert second.processed == 0
        assert second.candidates_created == 0

    def test_blocked_pair_is_skipped(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test an enabled NEGATIVE_BLOCK rule keeps the pair out"""
        store = make_store_item("AXLCH-8365", line_code="AXL")
        make_supplier_item("XBOAXLCH8365", line_code="XBO")
        db_session.add(MasterRule(
            rule_type=MasterRuleType.NEGATIVE_BLOCK,
            scope=RuleScope.GLOBAL,
            store_part_number="AXLCH-8365", store_part_key="AXLCH8365",
            supplier_part_number="XBOAXLCH8365", supplier_part_key="XBOAXLCH8365",
        ))
        db_session.commit()

        result = matcher.run(project.id, [store.id])
        db_session.commit()

        assert result.rejected_pairs >= 1
        assert candidates_for(store.id) == []
