"""Rule learning: master rules from review decisions, suggested rules from mined patterns"""

from .exceptions import RuleError, RuleNotFoundError, InvalidTransitionError, DuplicateRuleError
from .learner import Decision, DecisionType, MasterRuleLearner
from .master_rule_matcher import BlockedPairs, MasterRuleApplier, enforce_block_rule, load_blocked_pairs, reject_blocked_candidates
from .pattern_miner import MiningResult, PatternMiner
from .suggested_rules import SuggestedRuleService, load_approved_rules

__all__ = [
    "RuleError",
    "RuleNotFoundError",
    "InvalidTransitionError",
    "DuplicateRuleError",
    "Decision",
    "DecisionType",
    "MasterRuleLearner",
    "BlockedPairs",
    "MasterRuleApplier",
    "enforce_block_rule",
    "load_blocked_pairs",
    "reject_blocked_candidates",
    "MiningResult",
    "PatternMiner",
    "SuggestedRuleService",
    "load_approved_rules",
]
