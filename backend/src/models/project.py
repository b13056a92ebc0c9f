"""Project SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, Boolean, DateTime, Uuid

from .base import Base, utcnow, isoformat_or_none


class Project(Base):
    """A reconciliation project owning store items, candidates and jobs.

    Projects also carry the feature flags that tune fuzzy matching:
    - enable_rule_based_fuzzy_boosts: apply APPROVED suggested-rule boosts
    - enable_punctuation_equivalence: allow the PUNCTUATION_EQUIVALENCE boost
    - fuzzy_hard_reject_enabled: evaluate hard-reject filters before scoring
    """
    __tablename__ = "project"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)

    enable_rule_based_fuzzy_boosts = Column(Boolean, nullable=False, default=True)
    enable_punctuation_equivalence = Column(Boolean, nullable=False, default=True)
    fuzzy_hard_reject_enabled = Column(Boolean, nullable=False, default=True)

    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        """Convert project to dictionary representation"""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "enable_rule_based_fuzzy_boosts": self.enable_rule_based_fuzzy_boosts,
            "enable_punctuation_equivalence": self.enable_punctuation_equivalence,
            "fuzzy_hard_reject_enabled": self.fuzzy_hard_reject_enabled,
            "created_by": self.created_by,
            "created_at": isoformat_or_none(self.created_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name})>"
