"""VendorActionRule SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Boolean, DateTime, Index, Uuid, Enum as SQLEnum

from .base import Base, utcnow, isoformat_or_none
from .match_candidate import VendorAction


class VendorActionRule(Base):
    """Business rule tagging confirmed matches with a vendor action.

    category_pattern / subcategory_pattern are either an exact value or '*'.
    project_id NULL marks a global rule.
    """
    __tablename__ = "vendor_action_rule"
    __table_args__ = (
        Index("ix_vendor_action_rule_line_code", "supplier_line_code", "active"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=True)
    supplier_line_code = Column(Text, nullable=False)
    category_pattern = Column(Text, nullable=False, default="*")
    subcategory_pattern = Column(Text, nullable=False, default="*")
    action = Column(SQLEnum(VendorAction, name="vendor_action"), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "supplier_line_code": self.supplier_line_code,
            "category_pattern": self.category_pattern,
            "subcategory_pattern": self.subcategory_pattern,
            "action": self.action.value,
            "active": self.active,
            "created_at": isoformat_or_none(self.created_at),
        }
