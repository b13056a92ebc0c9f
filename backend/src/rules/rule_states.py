"""State machines for suggested rules and master rules.

Suggested rules:  SUGGESTED -> APPROVED | REJECTED (both terminal)
Master rules:     ENABLED <-> DISABLED (toggle any time, never deleted)
"""

from typing import Dict, List, Optional, Union

from models.master_rule import MasterRuleState
from models.project_match_rule import SuggestedRuleStatus


SUGGESTED_RULE_TRANSITIONS: Dict[Optional[SuggestedRuleStatus], List[SuggestedRuleStatus]] = {
    None: [SuggestedRuleStatus.SUGGESTED],
    SuggestedRuleStatus.SUGGESTED: [SuggestedRuleStatus.APPROVED, SuggestedRuleStatus.REJECTED],
    SuggestedRuleStatus.APPROVED: [],
    SuggestedRuleStatus.REJECTED: [],
}

MASTER_RULE_TRANSITIONS: Dict[Optional[MasterRuleState], List[MasterRuleState]] = {
    None: [MasterRuleState.ENABLED],
    MasterRuleState.ENABLED: [MasterRuleState.DISABLED],
    MasterRuleState.DISABLED: [MasterRuleState.ENABLED],
}

RuleState = Union[SuggestedRuleStatus, MasterRuleState]


def _table_for(state: RuleState):
    if isinstance(state, SuggestedRuleStatus):
        return SUGGESTED_RULE_TRANSITIONS
    return MASTER_RULE_TRANSITIONS


def can_transition(from_state: Optional[RuleState], to_state: RuleState) -> bool:
    """Validate if a rule state transition is allowed

    Example:
        >>> can_transition(SuggestedRuleStatus.SUGGESTED, SuggestedRuleStatus.APPROVED)
        True
        >>> can_transition(SuggestedRuleStatus.REJECTED, SuggestedRuleStatus.APPROVED)
        False
    """
    return to_state in _table_for(to_state).get(from_state, [])


def get_allowed_transitions(from_state: RuleState) -> List[RuleState]:
    return list(_table_for(from_state).get(from_state, []))
