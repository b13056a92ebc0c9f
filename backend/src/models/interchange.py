"""Interchange and LineCodeAlias SQLAlchemy models"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Numeric, Integer, Boolean, DateTime, Index, Uuid

from .base import Base, utcnow, isoformat_or_none


class Interchange(Base):
    """Bridge record mapping a foreign part number (theirs) to ours.

    Read-only reference data loaded in bulk. The deterministic matcher joins
    store keys against theirs_canonical and re-joins ours_canonical against the
    supplier catalog.
    """
    __tablename__ = "interchange"
    __table_args__ = (
        Index("ix_interchange_theirs", "theirs_canonical"),
        Index("ix_interchange_ours", "ours_canonical"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=True)

    theirs_part_number = Column(Text, nullable=False)
    theirs_canonical = Column(Text, nullable=False)
    theirs_line_code = Column(Text, nullable=True)
    ours_part_number = Column(Text, nullable=False)
    ours_canonical = Column(Text, nullable=False)
    ours_line_code = Column(Text, nullable=True)

    source = Column(Text, nullable=False, default="import")
    confidence = Column(Numeric(5, 4), nullable=False, default=1.0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        """Convert interchange to dictionary representation"""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "theirs_part_number": self.theirs_part_number,
            "theirs_canonical": self.theirs_canonical,
            "theirs_line_code": self.theirs_line_code,
            "ours_part_number": self.ours_part_number,
            "ours_canonical": self.ours_canonical,
            "ours_line_code": self.ours_line_code,
            "source": self.source,
            "confidence": float(self.confidence),
            "created_at": isoformat_or_none(self.created_at),
        }


class LineCodeAlias(Base):
    """Alias from a raw line code to a canonical brand.

    Project rows override global rows (project_id NULL); within a scope the
    highest priority wins. Consumed by the alias resolver.
    """
    __tablename__ = "line_code_alias"
    __table_args__ = (
        Index("ix_line_code_alias_project", "project_id", "active"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=True)
    line_code = Column(Text, nullable=False)
    brand = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "line_code": self.line_code,
            "brand": self.brand,
            "priority": self.priority,
            "active": self.active,
            "created_at": isoformat_or_none(self.created_at),
        }
