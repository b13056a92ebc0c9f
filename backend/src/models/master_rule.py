"""MasterRule SQLAlchemy model.

Master rules are learned deterministic overrides derived from human
decisions. They are consulted before any scoring happens.
"""

import uuid
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Column, Text, ForeignKey, Float, Integer, DateTime, Index, Uuid, Enum as SQLEnum, text

from .base import Base, utcnow, isoformat_or_none


class MasterRuleType(str, PyEnum):
    POSITIVE_MAP = "POSITIVE_MAP"      # Pairing is always correct
    NEGATIVE_BLOCK = "NEGATIVE_BLOCK"  # Pairing is never correct


class RuleScope(str, PyEnum):
    GLOBAL = "GLOBAL"
    PROJECT = "PROJECT"


class MasterRuleState(str, PyEnum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


def master_rule_natural_key(
    rule_type,
    store_part_key: str,
    supplier_part_key: str,
    line_code: Optional[str],
    supplier_line_code: Optional[str],
    scope,
    project_id=None,
) -> str:
    """Deduplication key of a rule.

    Global rules share one key space; project rules are keyed per project.
    The project a global rule was learned in is not part of its key.
    """
    scope = RuleScope(scope)
    owner = "*" if scope == RuleScope.GLOBAL else str(project_id)
    return "|".join([
        MasterRuleType(rule_type).value,
        store_part_key,
        supplier_part_key,
        line_code or "",
        supplier_line_code or "",
        scope.value,
        owner,
    ])


def _natural_key_default(context) -> str:
    params = context.get_current_parameters()
    return master_rule_natural_key(
        params["rule_type"],
        params["store_part_key"],
        params["supplier_part_key"],
        params.get("line_code"),
        params.get("supplier_line_code"),
        params.get("scope") or RuleScope.GLOBAL,
        params.get("project_id"),
    )


class MasterRule(Base):
    """Learned store-part to supplier-part override.

    Natural key for deduplication: (rule_type, store_part_key,
    supplier_part_key, line_code, supplier_line_code, scope owner). At most
    one ENABLED rule may hold a key. Wrong rules are DISABLED, never deleted.

    line_code is the store line code of the decided pairing and
    supplier_line_code the supplier's; either narrows where the rule applies.
    """
    __tablename__ = "master_rule"
    __table_args__ = (
        Index("ix_master_rule_natural_key", "rule_type", "store_part_key", "supplier_part_key"),
        Index("ix_master_rule_state_scope", "state", "scope", "project_id"),
        Index(
            "uq_master_rule_enabled_natural_key",
            "natural_key",
            unique=True,
            postgresql_where=text("state = 'ENABLED'"),
            sqlite_where=text("state = 'ENABLED'"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rule_type = Column(SQLEnum(MasterRuleType, name="master_rule_type"), nullable=False)
    scope = Column(SQLEnum(RuleScope, name="master_rule_scope"), nullable=False, default=RuleScope.GLOBAL)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=True)

    store_part_number = Column(Text, nullable=False)
    store_part_key = Column(Text, nullable=False)
    supplier_part_number = Column(Text, nullable=False)
    supplier_part_key = Column(Text, nullable=False)
    line_code = Column(Text, nullable=True)
    supplier_line_code = Column(Text, nullable=True)
    natural_key = Column(Text, nullable=False, default=_natural_key_default)

    confidence = Column(Float, nullable=False, default=1.0)
    state = Column(SQLEnum(MasterRuleState, name="master_rule_state"), nullable=False, default=MasterRuleState.ENABLED)
    applied_count = Column(Integer, nullable=False, default=0)
    last_applied_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Text, nullable=True)
    created_from_candidate_id = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def enabled(self) -> bool:
        return self.state == MasterRuleState.ENABLED

    def to_dict(self):
        """Convert master rule to dictionary representation"""
        return {
            "id": str(self.id),
            "rule_type": self.rule_type.value,
            "scope": self.scope.value,
            "project_id": str(self.project_id) if self.project_id else None,
            "store_part_number": self.store_part_number,
            "store_part_key": self.store_part_key,
            "supplier_part_number": self.supplier_part_number,
            "supplier_part_key": self.supplier_part_key,
            "line_code": self.line_code,
            "supplier_line_code": self.supplier_line_code,
            "confidence": float(self.confidence),
            "state": self.state.value,
            "applied_count": self.applied_count,
            "last_applied_at": isoformat_or_none(self.last_applied_at),
            "created_by": self.created_by,
            "created_from_candidate_id": str(self.created_from_candidate_id) if self.created_from_candidate_id else None,
            "created_at": isoformat_or_none(self.created_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }

    def __repr__(self):
        return (
            f"<MasterRule(id={self.id}, type={self.rule_type}, "
            f"{self.store_part_key}->{self.supplier_part_key}, state={self.state})>"
        )
