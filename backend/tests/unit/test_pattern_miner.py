"""Unit tests for suggested rule mining and the suggestion review workflow"""

from uuid import uuid4

import pytest

from models.match_candidate import MatchCandidate, MatchMethod, MatchStatus, TargetType
from models.project_match_rule import ProjectMatchRule, SuggestedRuleStatus, SuggestedRuleType
from rules import InvalidTransitionError, PatternMiner, RuleNotFoundError, SuggestedRuleService
from rules.rule_states import can_transition, get_allowed_transitions


@pytest.fixture
def confirmed_pairs(db_session, project, make_store_item, make_supplier_item):
    """Three confirmed slash/dash pairs, all GAT -> GATES."""

    def _make(count=3, brand="GATES", status=MatchStatus.CONFIRMED):
        for n in range(count):
            store = make_store_item(f"GAT/10{n}{n}", line_code="GAT")
            supplier = make_supplier_item(f"GAT-10{n}{n}", brand=brand)
            db_session.add(MatchCandidate(
                project_id=project.id,
                store_item_id=store.id,
                target_type=TargetType.SUPPLIER,
                target_id=str(supplier.id),
                target_part_number=supplier.part_number,
                method=MatchMethod.FUZZY_SUBSTRING,
                confidence=0.8,
                status=status,
            ))
        db_session.commit()

    return _make


def _suggestions(db_session, project):
    return {
        rule.rule_type: rule
        for rule in db_session.query(ProjectMatchRule).filter(ProjectMatchRule.project_id == project.id)
    }


class TestPatternMiner:
    """Test mining suggestions from confirmed matches"""

    def test_mines_both_rule_types(self, db_session, project, confirmed_pairs):
        """Test punctuation and line code patterns are suggested past the threshold"""
        confirmed_pairs()

        result = PatternMiner(db_session, min_occurrences=3).mine(project.id)

        assert result.confirmed_pairs == 3
        assert result.created == 2
        suggestions = _suggestions(db_session, project)
        punctuation = suggestions[SuggestedRuleType.PUNCTUATION_EQUIVALENCE]
        assert punctuation.pattern_key == "slash_to_dash"
        assert punctuation.status == SuggestedRuleStatus.SUGGESTED
        assert punctuation.evidence_count == 3
        mapping = suggestions[SuggestedRuleType.LINE_CODE_MAPPING]
        assert mapping.pattern_key == "GAT"
        assert mapping.mapped_manufacturer == "GATES"

    def test_below_threshold_not_suggested(self, db_session, project, confirmed_pairs):
        """Test too little evidence suggests nothing"""
        confirmed_pairs(count=2)
        result = PatternMiner(db_session, min_occurrences=3).mine(project.id)
        assert result.created == 0

    def test_pending_matches_ignored(self, db_session, project, confirmed_pairs):
        """Test only CONFIRMED matches count as evidence"""
        confirmed_pairs(status=MatchStatus.PENDING)
        result = PatternMiner(db_session, min_occurrences=3).mine(project.id)
        assert result.confirmed_pairs == 0

    def test_inconsistent_line_code_not_mapped(self, db_session, project, confirmed_pairs):
        """Test a line code split across brands is not mapped"""
        confirmed_pairs(count=3, brand="GATES")
        confirmed_pairs(count=3, brand="DAYCO")

        PatternMiner(db_session, min_occurrences=3).mine(project.id)

        assert SuggestedRuleType.LINE_CODE_MAPPING not in _suggestions(db_session, project)

    def test_rerun_updates_and_keeps_decisions(self, db_session, project, confirmed_pairs):
        """Test re-mining refreshes open suggestions and leaves decided ones alone"""
        confirmed_pairs()
        miner = PatternMiner(db_session, min_occurrences=3)
        miner.mine(project.id)
        mapping = _suggestions(db_session, project)[SuggestedRuleType.LINE_CODE_MAPPING]
        SuggestedRuleService(db_session).approve(project.id, mapping.id, actor_id="lead")

        result = miner.mine(project.id)

        assert result.created == 0
        assert result.updated == 1
        assert result.unchanged == 1
        db_session.refresh(mapping)
        assert mapping.status == SuggestedRuleStatus.APPROVED


class TestSuggestedRuleWorkflow:
    """Test approve / reject transitions"""

    @pytest.fixture
    def suggestion(self, db_session, project):
        rule = ProjectMatchRule(
            project_id=project.id,
            rule_type=SuggestedRuleType.PUNCTUATION_EQUIVALENCE,
            status=SuggestedRuleStatus.SUGGESTED,
            pattern_key="remove_dash",
            evidence_count=11,
        )
        db_session.add(rule)
        db_session.commit()
        return rule

    def test_approve(self, db_session, project, suggestion):
        """Test SUGGESTED -> APPROVED records the approver"""
        rule = SuggestedRuleService(db_session).approve(project.id, suggestion.id, actor_id="lead")
        assert rule.status == SuggestedRuleStatus.APPROVED
        assert rule.approved_by == "lead"
        assert rule.approved_at is not None

    def test_decided_suggestion_is_terminal(self, db_session, project, suggestion):
        """Test a rejected suggestion cannot be approved"""
        service = SuggestedRuleService(db_session)
        service.reject(project.id, suggestion.id)
        with pytest.raises(InvalidTransitionError):
            service.approve(project.id, suggestion.id)

    def test_other_project_cannot_see_suggestion(self, db_session, suggestion):
        """Test suggestions are project-scoped"""
        with pytest.raises(RuleNotFoundError):
            SuggestedRuleService(db_session).approve(uuid4(), suggestion.id)

    def test_transition_table(self):
        """Test the suggested-rule state machine"""
        assert can_transition(None, SuggestedRuleStatus.SUGGESTED) is True
        assert can_transition(SuggestedRuleStatus.SUGGESTED, SuggestedRuleStatus.REJECTED) is True
        assert can_transition(SuggestedRuleStatus.APPROVED, SuggestedRuleStatus.REJECTED) is False
        assert get_allowed_transitions(SuggestedRuleStatus.APPROVED) == []
