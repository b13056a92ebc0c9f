"""EnrichmentData SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Float, DateTime, Index, Uuid

from .base import Base, utcnow, isoformat_or_none


class EnrichmentData(Base):
    """Attribute fact proposed for a matched part (e.g. category, manufacturer).

    Produced by the AI catalog enricher; never overwrites catalog rows.
    """
    __tablename__ = "enrichment_data"
    __table_args__ = (
        Index("ix_enrichment_data_candidate", "match_candidate_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_candidate_id = Column(Uuid(as_uuid=True), ForeignKey("match_candidate.id", ondelete="CASCADE"), nullable=False)
    field_name = Column(Text, nullable=False)
    field_value = Column(Text, nullable=False)
    confidence = Column(Float, nullable=False, default=0.0)
    source = Column(Text, nullable=False, default="AI")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "match_candidate_id": str(self.match_candidate_id),
            "field_name": self.field_name,
            "field_value": self.field_value,
            "confidence": self.confidence,
            "source": self.source,
            "created_at": isoformat_or_none(self.created_at),
        }
