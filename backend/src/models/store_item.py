"""StoreItem SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Numeric, DateTime, Index, Uuid

from .base import Base, utcnow, isoformat_or_none


class StoreItem(Base):
    """One physical part in a project's store inventory.

    canonical_part_number and manufacturer_part_canonical are derived at
    import time by the normalizer and are the only keys the matchers join on.
    Rows are immutable after import apart from normalization backfills.
    """
    __tablename__ = "store_item"
    __table_args__ = (
        Index("ix_store_item_project", "project_id"),
        Index("ix_store_item_project_canonical", "project_id", "canonical_part_number"),
        Index("ix_store_item_project_mfr", "project_id", "manufacturer_part_canonical"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)

    part_number = Column(Text, nullable=False)
    canonical_part_number = Column(Text, nullable=False)
    line_code = Column(Text, nullable=True)
    manufacturer_part = Column(Text, nullable=True)  # line-code prefix stripped
    manufacturer_part_canonical = Column(Text, nullable=True)

    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    subcategory = Column(Text, nullable=True)
    cost = Column(Numeric(12, 4), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        """Convert store item to dictionary representation"""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "part_number": self.part_number,
            "canonical_part_number": self.canonical_part_number,
            "line_code": self.line_code,
            "manufacturer_part": self.manufacturer_part,
            "manufacturer_part_canonical": self.manufacturer_part_canonical,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "cost": float(self.cost) if self.cost is not None else None,
            "created_at": isoformat_or_none(self.created_at),
        }

    def __repr__(self):
        return f"<StoreItem(id={self.id}, part_number={self.part_number}, line_code={self.line_code})>"
