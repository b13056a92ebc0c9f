"""ProjectMatchRule (suggested rule) SQLAlchemy model"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, Text, ForeignKey, Integer, DateTime, Index, Uuid, Enum as SQLEnum

from .base import Base, PortableJSONB, utcnow, isoformat_or_none


class SuggestedRuleType(str, PyEnum):
    PUNCTUATION_EQUIVALENCE = "PUNCTUATION_EQUIVALENCE"  # '-', '/', '.' are interchangeable
    LINE_CODE_MAPPING = "LINE_CODE_MAPPING"              # line code X always means brand Y


class SuggestedRuleStatus(str, PyEnum):
    SUGGESTED = "SUGGESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ProjectMatchRule(Base):
    """Mined transformation heuristic awaiting (or past) human review.

    Only APPROVED rules affect fuzzy scoring and hard rejects.

    config holds rule-specific detail, e.g. {"signature": "slash_to_dash",
    "examples": [...]} for punctuation rules or {"consistency": 0.93} for
    line-code mappings.
    """
    __tablename__ = "project_match_rule"
    __table_args__ = (
        Index("ix_project_match_rule_project_status", "project_id", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    rule_type = Column(SQLEnum(SuggestedRuleType, name="suggested_rule_type"), nullable=False)
    status = Column(SQLEnum(SuggestedRuleStatus, name="suggested_rule_status"), nullable=False,
                    default=SuggestedRuleStatus.SUGGESTED)

    pattern_key = Column(Text, nullable=False)  # signature or line code; natural key within a type
    source_line_code = Column(Text, nullable=True)
    mapped_manufacturer = Column(Text, nullable=True)
    evidence_count = Column(Integer, nullable=False, default=0)
    config = Column(PortableJSONB, nullable=True)

    approved_by = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "rule_type": self.rule_type.value,
            "status": self.status.value,
            "pattern_key": self.pattern_key,
            "source_line_code": self.source_line_code,
            "mapped_manufacturer": self.mapped_manufacturer,
            "evidence_count": self.evidence_count,
            "config": self.config,
            "approved_by": self.approved_by,
            "approved_at": isoformat_or_none(self.approved_at),
            "created_at": isoformat_or_none(self.created_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }
