"""
Knowledge Gap Model

Stores user queries that no knowledge entry adequately answers.
"""

import enum
import uuid

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, func, or_

from knowledge_service.core.database import Base


class GapStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"


class KnowledgeGap(Base):
    """
    An unanswered-query record.

    A gap is logged when a chat query fails retrieval. Repeated or
    near-duplicate queries increment `frequency` instead of adding rows.
    There is no foreign key to knowledge entries: whether a gap is answered
    is recomputed by re-running retrieval.

    Older rows may have a NULL status, which is treated as OPEN.
    """

    __tablename__ = "knowledge_gaps"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))

    query = Column(Text, nullable=False)  # Verbatim first-seen text
    frequency = Column(Integer, default=1, nullable=False)

    status = Column(String(20), default=GapStatus.OPEN.value, nullable=True, index=True)
    needs_content = Column(Boolean, default=True, nullable=True)
    assigned_to = Column(String(255), nullable=True)
    resolved_by = Column(String(255), nullable=True)  # admin user, 'auto-system' or 'auto-entry'
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def effective_status(self) -> str:
        return self.status or GapStatus.OPEN.value

    @classmethod
    def open_filter(cls):
        """SQL filter for gaps that are OPEN or have no status"""
        return or_(cls.status == GapStatus.OPEN.value, cls.status.is_(None))

    def __repr__(self):
        return f"<KnowledgeGap(id={self.id}, query={self.query[:50]}, frequency={self.frequency}, status={self.status})>"
