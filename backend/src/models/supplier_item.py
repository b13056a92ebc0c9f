"""SupplierItem SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Numeric, DateTime, Index, Uuid

from .base import Base, utcnow, isoformat_or_none


class SupplierItem(Base):
    """One part in the supplier catalog.

    A NULL project_id marks a globally shared catalog row; otherwise the row
    belongs to a single project. brand is the manufacturer attribution used by
    the collision guardrail and the line-code mapping hard reject.
    """
    __tablename__ = "supplier_item"
    __table_args__ = (
        Index("ix_supplier_item_canonical", "canonical_part_number"),
        Index("ix_supplier_item_mfr", "manufacturer_part_canonical"),
        Index("ix_supplier_item_project", "project_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=True)

    part_number = Column(Text, nullable=False)
    canonical_part_number = Column(Text, nullable=False)
    line_code = Column(Text, nullable=True)
    manufacturer_part = Column(Text, nullable=True)
    manufacturer_part_canonical = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)

    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    subcategory = Column(Text, nullable=True)
    cost = Column(Numeric(12, 4), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        """Convert supplier item to dictionary representation"""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "part_number": self.part_number,
            "canonical_part_number": self.canonical_part_number,
            "line_code": self.line_code,
            "manufacturer_part": self.manufacturer_part,
            "manufacturer_part_canonical": self.manufacturer_part_canonical,
            "brand": self.brand,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "cost": float(self.cost) if self.cost is not None else None,
            "created_at": isoformat_or_none(self.created_at),
        }

    def __repr__(self):
        return f"<SupplierItem(id={self.id}, part_number={self.part_number}, brand={self.brand})>"
