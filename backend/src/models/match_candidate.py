"""MatchCandidate SQLAlchemy model and its enumerations.

A candidate pairs one store item with one target. Targets are polymorphic:
target_type discriminates the kind and target_id holds the key within that
kind (a supplier item UUID, an inventory id, or a canonical web part number).
"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Text, String, ForeignKey, Float, DateTime, Index, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)

from .base import Base, PortableJSONB, utcnow, isoformat_or_none


class MatchMethod(str, PyEnum):
    """Provenance tag for how a candidate was produced"""
    EXACT_NORMALIZED = "EXACT_NORMALIZED"
    LINE_PART = "LINE_PART"
    DESCRIPTION_SIMILARITY = "DESCRIPTION_SIMILARITY"
    FUZZY_SUBSTRING = "FUZZY_SUBSTRING"
    INTERCHANGE = "INTERCHANGE"
    AI = "AI"
    WEB_SEARCH = "WEB_SEARCH"
    MASTER_RULE = "MASTER_RULE"
    SUPERSESSION = "SUPERSESSION"
    HUMAN_REVIEW = "HUMAN_REVIEW"


class MatchStatus(str, PyEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class TargetType(str, PyEnum):
    """Kind of entity a candidate points at"""
    SUPPLIER = "SUPPLIER"
    INVENTORY = "INVENTORY"
    WEB_RESULT = "WEB_RESULT"


class VendorAction(str, PyEnum):
    NONE = "NONE"
    LIFT = "LIFT"
    REBOX = "REBOX"
    UNKNOWN = "UNKNOWN"
    CONTACT_VENDOR = "CONTACT_VENDOR"


class ReviewSource(str, PyEnum):
    """Who or what moved a candidate to its current status"""
    UI = "UI"
    BULK = "BULK"
    AI_AUTO = "AI_AUTO"
    RULE = "RULE"
    SYSTEM = "SYSTEM"


class MatchCandidate(Base):
    """Proposed equivalence between a store item and a target.

    Invariants:
    - At most one row per (project, store item, target type, target id);
      enforced by uq_match_candidate_pair
    - Never deleted; a withdrawn proposal is transitioned to REJECTED
    - The highest-confidence non-rejected row is the canonical match
    """
    __tablename__ = "match_candidate"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "store_item_id", "target_type", "target_id",
            name="uq_match_candidate_pair",
        ),
        Index("ix_match_candidate_project_status", "project_id", "status"),
        Index("ix_match_candidate_store_item", "store_item_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    store_item_id = Column(Uuid(as_uuid=True), ForeignKey("store_item.id", ondelete="CASCADE"), nullable=False)

    target_type = Column(SQLEnum(TargetType, name="match_target_type"), nullable=False)
    target_id = Column(String(128), nullable=False)
    target_part_number = Column(Text, nullable=True)

    method = Column(SQLEnum(MatchMethod, name="match_method"), nullable=False)
    confidence = Column(Float, nullable=False, default=0.0)
    status = Column(SQLEnum(MatchStatus, name="match_status"), nullable=False, default=MatchStatus.PENDING)
    matched_on = Column(Text, nullable=True)
    features = Column(PortableJSONB, nullable=True)

    vendor_action = Column(SQLEnum(VendorAction, name="vendor_action"), nullable=False, default=VendorAction.NONE)
    corrected_supplier_part_number = Column(Text, nullable=True)

    # Review provenance
    review_source = Column(SQLEnum(ReviewSource, name="review_source"), nullable=True)
    decided_by = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        """Convert match candidate to dictionary representation"""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "store_item_id": str(self.store_item_id),
            "target_type": self.target_type.value if self.target_type else None,
            "target_id": self.target_id,
            "target_part_number": self.target_part_number,
            "method": self.method.value if self.method else None,
            "confidence": float(self.confidence),
            "status": self.status.value if self.status else None,
            "matched_on": self.matched_on,
            "features": self.features,
            "vendor_action": self.vendor_action.value if self.vendor_action else None,
            "corrected_supplier_part_number": self.corrected_supplier_part_number,
            "review_source": self.review_source.value if self.review_source else None,
            "decided_by": self.decided_by,
            "decided_at": isoformat_or_none(self.decided_at),
            "created_at": isoformat_or_none(self.created_at),
            "updated_at": isoformat_or_none(self.updated_at),
        }

    def __repr__(self):
        return (
            f"<MatchCandidate(id={self.id}, store_item_id={self.store_item_id}, "
            f"target={self.target_type}:{self.target_id}, method={self.method}, "
            f"confidence={self.confidence}, status={self.status})>"
        )
