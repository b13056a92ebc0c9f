"""Unit tests for the fuzzy matcher"""

import pytest

from matching.fuzzy_matcher import FuzzyMatcher, PUNCTUATION_EQUIVALENCE_BOOST
from matching.guardrails import COLLISION_CONFIDENCE_CAP
from models.match_candidate import MatchMethod
from models.project_match_rule import ProjectMatchRule, SuggestedRuleStatus, SuggestedRuleType
from normalization import AliasCache


@pytest.fixture
def matcher(db_session):
    return FuzzyMatcher(db_session, AliasCache())


def _approve(db_session, project, rule_type, pattern_key, status=SuggestedRuleStatus.APPROVED, **fields):
    rule = ProjectMatchRule(
        project_id=project.id,
        rule_type=rule_type,
        status=status,
        pattern_key=pattern_key,
        evidence_count=12,
        **fields,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


class TestFuzzyScoring:
    """Test composite scoring over the prefix shortlist"""

    def test_near_match_proposed(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test a close part number with the same description becomes a candidate"""
        store = make_store_item("BRK-20045", description="Brake pad set front")
        supplier = make_supplier_item("BRK-20046", description="Brake pad set front")

        result = matcher.run(project.id, [store.id])
        db_session.commit()

        assert result.candidates_created == 1
        [candidate] = candidates_for(store.id)
        assert candidate.target_id == str(supplier.id)
        assert candidate.method == MatchMethod.FUZZY_SUBSTRING
        assert 0.4 <= candidate.confidence <= 1.0
        assert candidate.features["description_similarity"] == pytest.approx(1.0)

    def test_prefix_shortlist_excludes_other_prefixes(self, db_session, project, matcher, make_store_item,
                                                      make_supplier_item):
        """Test suppliers not sharing the key prefix are never scored"""
        store = make_store_item("BRK-20045", description="Brake pad set front")
        make_supplier_item("XRK-20045", description="Brake pad set front")

        result = matcher.run(project.id, [store.id])

        assert result.candidates_created == 0

    def test_shortlist_is_capped(self, db_session, project, make_store_item, make_supplier_item, candidates_for):
        """Test no more than FUZZY_SHORTLIST_SIZE suppliers are considered"""
        store = make_store_item("BRK-20045", description="Brake pad set front")
        for n in range(5):
            make_supplier_item(f"BRK-2004{n}", description="Brake pad set front")

        FuzzyMatcher(db_session, AliasCache(), shortlist_size=2).run(project.id, [store.id])
        db_session.commit()

        assert len(candidates_for(store.id)) <= 2

    def test_below_minimum_confidence_dropped(self, db_session, project, make_store_item, make_supplier_item):
        """Test composites under the minimum confidence are not saved"""
        store = make_store_item("BRK-20045")
        make_supplier_item("BRK-20999")

        result = FuzzyMatcher(db_session, AliasCache(), min_confidence=0.95).run(project.id, [store.id])

        assert result.candidates_created == 0


class TestFuzzyGuardrails:
    """Test hard rejects and the collision cap inside the stage"""

    def test_hard_reject_beats_high_score(self, db_session, project, matcher, make_store_item, make_supplier_item,
                                          candidates_for):
        """Test an incompatible subcategory pair never becomes a candidate"""
        store = make_store_item("BAT-77001", subcategory="Battery", description="Heavy duty 12V")
        make_supplier_item("BAT-77001", subcategory="Serpentine Belt", description="Heavy duty 12V")

        result = matcher.run(project.id, [store.id])
        db_session.commit()

        assert result.rejected_pairs == 1
        assert candidates_for(store.id) == []

    def test_hard_reject_can_be_disabled(self, db_session, project, matcher, make_store_item, make_supplier_item,
                                         candidates_for):
        """Test the project flag turns hard rejects off"""
        project.fuzzy_hard_reject_enabled = False
        db_session.commit()
        store = make_store_item("BAT-77001", subcategory="Battery", description="Heavy duty 12V")
        make_supplier_item("BAT-77001", subcategory="Serpentine Belt", description="Heavy duty 12V")

        matcher.run(project.id, [store.id])
        db_session.commit()

        assert len(candidates_for(store.id)) == 1

    def test_line_code_mapping_rejects_other_manufacturer(self, db_session, project, matcher, make_store_item,
                                                          make_supplier_item, candidates_for):
        """Test an approved mapping to another manufacturer rejects the pair"""
        _approve(db_session, project, SuggestedRuleType.LINE_CODE_MAPPING, "XBO",
                 source_line_code="XBO", mapped_manufacturer="WIDGETCO")
        store = make_store_item("XBO-31415", line_code="XBO")
        make_supplier_item("XBO-31416", brand="OTHERCO")

        result = matcher.run(project.id, [store.id])
        db_session.commit()

        assert result.rejected_pairs == 1
        assert candidates_for(store.id) == []

    def test_collision_capped(self, db_session, project, matcher, make_store_item, make_supplier_item, candidates_for):
        """Test a manufacturer part sold under three brands is capped at 0.6"""
        store = make_store_item("ACD-55667", line_code="ACD", cost=10)
        make_supplier_item("ACD-55667", line_code="ACD", brand="ACDELCO", cost=10)
        make_supplier_item("GAT-55667", line_code="GAT", brand="GATES")
        make_supplier_item("DAY-55667", line_code="DAY", brand="DAYCO")

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence <= COLLISION_CONFIDENCE_CAP
        assert candidate.features["collision"]["brand_count"] == 3
        assert candidate.features["collision"]["capped_from"] > COLLISION_CONFIDENCE_CAP


class TestRuleBoosts:
    """Test approved suggestion boosts"""

    def test_punctuation_rule_boosts(self, db_session, project, matcher, make_store_item, make_supplier_item,
                                     candidates_for):
        """Test an approved punctuation rule adds its boost"""
        rule = _approve(db_session, project, SuggestedRuleType.PUNCTUATION_EQUIVALENCE, "slash_to_dash")
        store = make_store_item("AB/12345", cost=10)
        make_supplier_item("AB-12345", cost=10)

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence == pytest.approx(0.5 + PUNCTUATION_EQUIVALENCE_BOOST)
        assert candidate.features["rule_boosts"][0]["rule_id"] == str(rule.id)

    def test_unapproved_rule_has_no_effect(self, db_session, project, matcher, make_store_item, make_supplier_item,
                                           candidates_for):
        """Test SUGGESTED rules never affect scoring"""
        _approve(db_session, project, SuggestedRuleType.PUNCTUATION_EQUIVALENCE, "slash_to_dash",
                 status=SuggestedRuleStatus.SUGGESTED)
        store = make_store_item("AB/12345", cost=10)
        make_supplier_item("AB-12345", cost=10)

        matcher.run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence == pytest.approx(0.5)
        assert candidate.features["rule_boosts"] == []
