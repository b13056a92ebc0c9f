"""Accepted/rejected match history models.

One row per human decision. Rows are written in the same transaction as the
candidate status update they describe.
"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Float, DateTime, Index, Uuid

from .base import Base, utcnow, isoformat_or_none


class _MatchHistoryColumns:
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_part_number = Column(Text, nullable=False)
    store_line_code = Column(Text, nullable=True)
    supplier_part_number = Column(Text, nullable=True)
    supplier_line_code = Column(Text, nullable=True)
    method = Column(Text, nullable=False)
    confidence = Column(Float, nullable=True)
    decided_by = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "match_candidate_id": str(self.match_candidate_id),
            "store_part_number": self.store_part_number,
            "store_line_code": self.store_line_code,
            "supplier_part_number": self.supplier_part_number,
            "supplier_line_code": self.supplier_line_code,
            "method": self.method,
            "confidence": self.confidence,
            "decided_by": self.decided_by,
            "decided_at": isoformat_or_none(self.decided_at),
        }


class AcceptedMatchHistory(_MatchHistoryColumns, Base):
    __tablename__ = "accepted_match_history"
    __table_args__ = (
        Index("ix_accepted_history_project", "project_id"),
    )

    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    match_candidate_id = Column(Uuid(as_uuid=True), ForeignKey("match_candidate.id", ondelete="CASCADE"), nullable=False)


class RejectedMatchHistory(_MatchHistoryColumns, Base):
    __tablename__ = "rejected_match_history"
    __table_args__ = (
        Index("ix_rejected_history_project", "project_id"),
    )

    project_id = Column(Uuid(as_uuid=True), ForeignKey("project.id", ondelete="CASCADE"), nullable=False)
    match_candidate_id = Column(Uuid(as_uuid=True), ForeignKey("match_candidate.id", ondelete="CASCADE"), nullable=False)
    reason = Column(Text, nullable=True)
