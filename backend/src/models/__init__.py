"""SQLAlchemy Models for PartMatch"""

from .base import Base, PortableJSONB
from .project import Project
from .store_item import StoreItem
from .supplier_item import SupplierItem
from .interchange import Interchange, LineCodeAlias
from .match_candidate import (
    MatchCandidate,
    MatchMethod,
    MatchStatus,
    TargetType,
    VendorAction,
    ReviewSource,
)
from .match_history import AcceptedMatchHistory, RejectedMatchHistory
from .master_rule import MasterRule, MasterRuleType, MasterRuleState, RuleScope
from .project_match_rule import ProjectMatchRule, SuggestedRuleType, SuggestedRuleStatus
from .vendor_action_rule import VendorActionRule
from .matching_job import MatchingJob, JobStatus, JobType
from .ai_call_log import AICallLog, AICallStatus
from .enrichment_data import EnrichmentData

__all__ = [
    "Base",
    "PortableJSONB",
    "Project",
    "StoreItem",
    "SupplierItem",
    "Interchange",
    "LineCodeAlias",
    "MatchCandidate",
    "MatchMethod",
    "MatchStatus",
    "TargetType",
    "VendorAction",
    "ReviewSource",
    "AcceptedMatchHistory",
    "RejectedMatchHistory",
    "MasterRule",
    "MasterRuleType",
    "MasterRuleState",
    "RuleScope",
    "ProjectMatchRule",
    "SuggestedRuleType",
    "SuggestedRuleStatus",
    "VendorActionRule",
    "MatchingJob",
    "JobStatus",
    "JobType",
    "AICallLog",
    "AICallStatus",
    "EnrichmentData",
]
