"""
Knowledge Entry Models

Curated, medically reviewed fact records and their content version history.
"""

import enum
import uuid

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, func
from sqlalchemy.orm import relationship

from knowledge_service.core.database import Base


class ConfidenceLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class KnowledgeCategory(str, enum.Enum):
    SYMPTOMS = "symptoms"
    CONDITIONS = "conditions"
    TREATMENTS = "treatments"
    EMERGENCY = "emergency"
    GENERAL = "general"


class KnowledgeEntry(Base):
    """
    A reviewed fact record answerable to users.

    Only entries with medical_reviewed=True take part in retrieval.
    """

    __tablename__ = "knowledge_entries"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))

    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(30), nullable=False, default=KnowledgeCategory.GENERAL.value, index=True)
    keywords = Column(JSON, nullable=False, default=list)  # Curator-supplied or extracted
    tags = Column(JSON, nullable=False, default=list)

    confidence_level = Column(String(10), nullable=False, default=ConfidenceLevel.MEDIUM.value)
    medical_reviewed = Column(Boolean, nullable=False, default=False, index=True)
    requires_escalation = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    versions = relationship(
        "KnowledgeVersion",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="KnowledgeVersion.version"
    )
    query_matches = relationship(
        "QueryMatch",
        back_populates="entry",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<KnowledgeEntry(id={self.id}, title={self.title}, confidence={self.confidence_level})>"


class KnowledgeVersion(Base):
    """Content snapshot written on every create/edit. Never mutated afterwards."""

    __tablename__ = "knowledge_versions"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    entry_id = Column(String(36), ForeignKey("knowledge_entries.id", ondelete="CASCADE"), nullable=False, index=True)

    content = Column(Text, nullable=False)
    version = Column(Integer, nullable=False)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    entry = relationship("KnowledgeEntry", back_populates="versions")

    def __repr__(self):
        return f"<KnowledgeVersion(entry_id={self.entry_id}, version={self.version})>"
