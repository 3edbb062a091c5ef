"""
Knowledge Manager

CRUD for curated knowledge entries with an append-only content version
history.
"""

import math
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from knowledge_service.core.exceptions import KnowledgeEntryNotFoundError
from knowledge_service.core.logging_config import get_logger
from knowledge_service.models.knowledge_entry import KnowledgeEntry, KnowledgeVersion
from knowledge_service.models.knowledge_gap import GapStatus
from knowledge_service.models.query_match import QueryMatch
from knowledge_service.services.gap_tracker import GapTracker
from knowledge_service.services.keyword_extractor import extract_keywords

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "title",
    "content",
    "category",
    "keywords",
    "tags",
    "confidence_level",
    "medical_reviewed",
    "requires_escalation",
)


class KnowledgeManager:
    """Service for managing knowledge entries"""

    def __init__(self, db: Session):
        self.db = db

    def get_entry(self, entry_id: str) -> KnowledgeEntry:
        entry = self.db.query(KnowledgeEntry).filter(KnowledgeEntry.id == entry_id).first()
        if not entry:
            raise KnowledgeEntryNotFoundError(entry_id)
        return entry

    def list_entries(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        query = self.db.query(KnowledgeEntry)

        if category:
            query = query.filter(KnowledgeEntry.category == category)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                KnowledgeEntry.title.ilike(pattern),
                KnowledgeEntry.content.ilike(pattern)
            ))

        total = query.count()
        entries = query.order_by(
            desc(KnowledgeEntry.updated_at)
        ).offset((page - 1) * limit).limit(limit).all()

        return {
            "entries": entries,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0
            }
        }

    def create_entry(
        self,
        data: Dict[str, Any],
        created_by: str,
        resolve_gap_id: Optional[str] = None
    ) -> KnowledgeEntry:
        """
        Create an entry and its first version.

        Keywords are extracted from the title and content when none are
        given. If resolve_gap_id is set the gap is marked resolved by the
        author; a failure there is logged and does not undo the entry.
        """
        fields = {name: data[name] for name in EDITABLE_FIELDS if data.get(name) is not None}

        if not fields.get("keywords"):
            fields["keywords"] = extract_keywords(f"{fields.get('title', '')} {fields.get('content', '')}")

        entry = KnowledgeEntry(created_by=created_by, **fields)
        self.db.add(entry)
        self.db.flush()

        self.db.add(KnowledgeVersion(
            entry_id=entry.id,
            content=entry.content,
            version=1,
            created_by=created_by
        ))
        self.db.commit()
        self.db.refresh(entry)

        logger.info(
            "Knowledge entry created",
            entry_id=entry.id,
            category=entry.category,
            keyword_count=len(entry.keywords or []),
            medical_reviewed=entry.medical_reviewed
        )

        if resolve_gap_id:
            self._resolve_gap(resolve_gap_id, created_by)

        return entry

    def update_entry(self, entry_id: str, data: Dict[str, Any], updated_by: str) -> KnowledgeEntry:
        """Apply changes and append the next content version."""
        entry = self.get_entry(entry_id)

        for name in EDITABLE_FIELDS:
            if data.get(name) is not None:
                setattr(entry, name, data[name])
        entry.updated_at = func.now()

        latest_version = self.db.query(func.max(KnowledgeVersion.version)).filter(
            KnowledgeVersion.entry_id == entry_id
        ).scalar() or 0

        self.db.add(KnowledgeVersion(
            entry_id=entry_id,
            content=entry.content,
            version=latest_version + 1,
            created_by=updated_by
        ))
        self.db.commit()
        self.db.refresh(entry)

        logger.info("Knowledge entry updated", entry_id=entry_id, version=latest_version + 1)
        return entry

    def delete_entry(self, entry_id: str) -> Dict[str, Any]:
        """Delete an entry together with its versions and query matches."""
        entry = self.get_entry(entry_id)

        version_count = self.db.query(func.count(KnowledgeVersion.id)).filter(
            KnowledgeVersion.entry_id == entry_id
        ).scalar() or 0
        match_count = self.db.query(func.count(QueryMatch.id)).filter(
            QueryMatch.entry_id == entry_id
        ).scalar() or 0

        self.db.delete(entry)
        self.db.commit()

        logger.info(
            "Knowledge entry deleted",
            entry_id=entry_id,
            deleted_versions=version_count,
            deleted_query_matches=match_count
        )

        return {
            "id": entry_id,
            "deleted_versions": version_count,
            "deleted_query_matches": match_count
        }

    def get_versions(self, entry_id: str) -> List[KnowledgeVersion]:
        self.get_entry(entry_id)
        return self.db.query(KnowledgeVersion).filter(
            KnowledgeVersion.entry_id == entry_id
        ).order_by(desc(KnowledgeVersion.version)).all()

    def _resolve_gap(self, gap_id: str, resolved_by: str) -> None:
        try:
            GapTracker(self.db).update_status(gap_id, GapStatus.RESOLVED.value, assigned_to=resolved_by)
        except Exception as e:
            logger.warning("Could not resolve gap for new entry", gap_id=gap_id, error=str(e))
            self.db.rollback()
