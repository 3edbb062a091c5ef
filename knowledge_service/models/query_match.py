"""
Query Match Model

Analytics record linking a chat query to the knowledge entry it matched.
"""

import uuid

from sqlalchemy import Column, String, Text, Float, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship

from knowledge_service.core.database import Base


class QueryMatch(Base):
    """Written by the retrieval path, read by analytics."""

    __tablename__ = "query_matches"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=False, index=True)
    query = Column(Text, nullable=False)
    entry_id = Column(String(36), ForeignKey("knowledge_entries.id", ondelete="CASCADE"), nullable=False, index=True)

    confidence = Column(Float, nullable=False)
    was_helpful = Column(Boolean, nullable=True)  # Optional user feedback

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    entry = relationship("KnowledgeEntry", back_populates="query_matches")

    def __repr__(self):
        return f"<QueryMatch(id={self.id}, entry_id={self.entry_id}, confidence={self.confidence})>"
