"""
Knowledge Gap Tracker

Records unanswered chat queries as knowledge gaps, folds repeats and
near-duplicates into existing gaps, and manages the gap status lifecycle.
"""

import math
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from knowledge_service.core.config import scoring_config
from knowledge_service.core.exceptions import GapNotFoundError, InvalidStatusTransitionError
from knowledge_service.core.logging_config import get_logger, log_knowledge_gap_logged, log_gaps_merged
from knowledge_service.models.knowledge_gap import KnowledgeGap, GapStatus
from knowledge_service.services.retrieval import KnowledgeRetriever
from knowledge_service.services.semantic_similarity import semantic_similarity_service

logger = get_logger(__name__)

# Allowed status changes. A same-status update only changes the assignee.
ALLOWED_TRANSITIONS = {
    GapStatus.OPEN.value: {GapStatus.IN_PROGRESS.value, GapStatus.RESOLVED.value},
    GapStatus.IN_PROGRESS.value: {GapStatus.RESOLVED.value},
    GapStatus.RESOLVED.value: {GapStatus.OPEN.value},
}

CATEGORY_KEYWORDS = (
    ("symptoms", ("sakit", "nyeri", "demam")),
    ("treatments", ("obat", "pengobatan", "terapi")),
    ("emergency", ("darurat", "emergency")),
    ("conditions", ("penyakit", "kondisi")),
)


def analyze_gap_categories(queries: List[str]) -> List[Dict]:
    """Bucket queries into coarse medical categories by keyword."""
    counts: Dict[str, int] = {}

    for query in queries:
        lowered = query.lower()
        category = "general"
        for name, keywords in CATEGORY_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                category = name
                break
        counts[category] = counts.get(category, 0) + 1

    return sorted(
        ({"category": category, "count": count} for category, count in counts.items()),
        key=lambda item: item["count"],
        reverse=True
    )


def average_resolution_hours(gaps: List[KnowledgeGap]) -> float:
    """Mean hours between creation and resolution of resolved gaps."""
    durations = [
        (gap.resolved_at - gap.created_at).total_seconds() / 3600
        for gap in gaps
        if gap.resolved_at is not None and gap.created_at is not None
    ]
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


class GapTracker:
    """
    Logs and maintains knowledge gaps.

    Duplicate detection at write time is best-effort: two concurrent
    near-duplicate queries can both create rows. merge_duplicate_gaps
    reconciles those later and is safe to re-run.
    """

    def __init__(self, db: Session):
        self.db = db

    def log_gap(self, query: str) -> Optional[KnowledgeGap]:
        """
        Record an unanswered query.

        Never raises: a failure here must not fail the chat response.

        Returns:
            The created or incremented gap, or None on blank input or failure
        """
        if not query or not query.strip():
            return None

        try:
            existing_gap = self.db.query(KnowledgeGap).filter(
                KnowledgeGap.query == query
            ).first()

            if existing_gap:
                self._increment(existing_gap)
                self.db.commit()
                log_knowledge_gap_logged(existing_gap.id, "incremented", existing_gap.frequency)
                return existing_gap

            open_gaps = self.db.query(KnowledgeGap).filter(
                KnowledgeGap.open_filter()
            ).order_by(desc(KnowledgeGap.frequency)).all()

            similar = semantic_similarity_service.find_similar_questions(
                query,
                [gap.query for gap in open_gaps],
                scoring_config.duplicate_similarity_threshold
            )

            if similar:
                best_query, similarity = similar[0]
                similar_gap = next(gap for gap in open_gaps if gap.query == best_query)
                self._increment(similar_gap)
                self.db.commit()
                log_knowledge_gap_logged(similar_gap.id, "merged_on_write", similar_gap.frequency, similarity)
                return similar_gap

            gap = KnowledgeGap(
                query=query,
                frequency=1,
                status=GapStatus.OPEN.value,
                needs_content=True
            )
            self.db.add(gap)
            self.db.commit()
            self.db.refresh(gap)

            log_knowledge_gap_logged(gap.id, "created", gap.frequency)
            return gap

        except Exception as e:
            logger.error("Knowledge gap logging failed", error=str(e))
            self.db.rollback()
            return None

    def get_gap(self, gap_id: str) -> KnowledgeGap:
        gap = self.db.query(KnowledgeGap).filter(KnowledgeGap.id == gap_id).first()
        if not gap:
            raise GapNotFoundError(gap_id)
        return gap

    def update_status(
        self,
        gap_id: str,
        status: str,
        assigned_to: Optional[str] = None,
        updated_by: str = "admin"
    ) -> KnowledgeGap:
        """
        Move a gap through its lifecycle.

        Resolving an already resolved gap changes nothing, so the recorded
        resolver and assignee stay consistent.

        Raises:
            GapNotFoundError: unknown gap
            InvalidStatusTransitionError: change not allowed from the current status
        """
        gap = self.get_gap(gap_id)
        current = gap.effective_status
        status = GapStatus(status).value

        if status != current and status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current, status)

        if status == current == GapStatus.RESOLVED.value:
            logger.info("Knowledge gap already resolved", gap_id=gap_id, resolved_by=gap.resolved_by)
            return gap

        gap.status = status
        gap.updated_at = func.now()

        if assigned_to:
            gap.assigned_to = assigned_to

        if status == GapStatus.RESOLVED.value:
            gap.resolved_at = func.now()
            gap.resolved_by = assigned_to or gap.assigned_to or updated_by
            gap.needs_content = False
        elif status == GapStatus.OPEN.value and current != GapStatus.OPEN.value:
            gap.assigned_to = None
            gap.resolved_at = None
            gap.resolved_by = None
            gap.needs_content = True

        self.db.commit()
        self.db.refresh(gap)

        logger.info(
            "Knowledge gap status updated",
            gap_id=gap_id,
            previous_status=current,
            status=status,
            assigned_to=gap.assigned_to
        )
        return gap

    def check_similarity(self, query: str, threshold: Optional[float] = None) -> List[Dict]:
        """Open gaps likely to duplicate `query`, for the admin create-gap warning."""
        if threshold is None:
            threshold = scoring_config.similarity_check_threshold

        open_gaps = self.db.query(KnowledgeGap).filter(KnowledgeGap.open_filter()).all()
        gaps_by_query: Dict[str, KnowledgeGap] = {}
        for gap in open_gaps:
            gaps_by_query.setdefault(gap.query, gap)

        similar = semantic_similarity_service.find_similar_questions(
            query, list(gaps_by_query), threshold
        )

        return [
            {
                "id": gaps_by_query[similar_query].id,
                "query": similar_query,
                "frequency": gaps_by_query[similar_query].frequency,
                "similarity": round(similarity, 4)
            }
            for similar_query, similarity in similar
        ]

    def merge_duplicate_gaps(self, threshold: Optional[float] = None) -> Dict:
        """
        Fold near-duplicate open gaps into the highest-frequency one.

        Destructive: absorbed gaps are deleted after their frequency is added
        to the surviving gap. A failure while merging one group is rolled back
        and recorded; the remaining groups are still processed.
        """
        if threshold is None:
            threshold = scoring_config.merge_similarity_threshold

        open_gaps = self.db.query(KnowledgeGap).filter(
            KnowledgeGap.open_filter()
        ).order_by(desc(KnowledgeGap.frequency), KnowledgeGap.created_at).all()

        processed_ids = set()
        merged_count = 0
        results = []
        errors = []

        for gap in open_gaps:
            if gap.id in processed_ids:
                continue
            processed_ids.add(gap.id)

            candidates = [other for other in open_gaps if other.id not in processed_ids]
            if not candidates:
                continue

            similar = semantic_similarity_service.find_similar_questions(
                gap.query,
                [other.query for other in candidates],
                threshold
            )
            if not similar:
                continue

            scores = dict(similar)
            absorbed = [other for other in candidates if other.query in scores]

            try:
                new_frequency = gap.frequency + sum(other.frequency for other in absorbed)
                gap.frequency = new_frequency
                gap.updated_at = func.now()
                for other in absorbed:
                    self.db.delete(other)
                self.db.commit()
            except Exception as e:
                logger.error("Failed to merge duplicate gaps", gap_id=gap.id, error=str(e))
                self.db.rollback()
                errors.append({"gap_id": gap.id, "query": gap.query, "error": str(e)})
                continue

            processed_ids.update(other.id for other in absorbed)
            merged_count += len(absorbed)
            log_gaps_merged(gap.id, len(absorbed), new_frequency)

            results.append({
                "gap_id": gap.id,
                "main_query": gap.query,
                "merged_queries": [
                    {"id": other.id, "query": other.query, "similarity": round(scores[other.query], 4)}
                    for other in absorbed
                ],
                "new_frequency": new_frequency
            })

        logger.info("Duplicate gap merge completed", merged_count=merged_count, groups=len(results))

        return {
            "merged_count": merged_count,
            "results": results,
            "errors": errors
        }

    def list_gaps(self, filter: str = "open", page: int = 1, limit: int = 20) -> Dict:
        """Paginated gaps, most frequent first, with their closest knowledge entries."""
        query = self.db.query(KnowledgeGap)

        if filter == "open":
            query = query.filter(KnowledgeGap.open_filter(), KnowledgeGap.needs_content.isnot(False))
        elif filter == "in_progress":
            query = query.filter(KnowledgeGap.status == GapStatus.IN_PROGRESS.value)
        elif filter == "resolved":
            query = query.filter(KnowledgeGap.status == GapStatus.RESOLVED.value)

        total = query.count()
        gaps = query.order_by(
            desc(KnowledgeGap.frequency),
            desc(KnowledgeGap.updated_at)
        ).offset((page - 1) * limit).limit(limit).all()

        retriever = KnowledgeRetriever(self.db)
        enhanced = []
        for gap in gaps:
            related = retriever.search(gap.query, limit=3)
            enhanced.append({
                "gap": gap,
                "related_entries": [
                    {
                        "id": result.entry.id,
                        "title": result.entry.title,
                        "category": result.entry.category,
                        "relevance_score": round(result.relevance_score, 4)
                    }
                    for result in related
                ]
            })

        return {
            "gaps": enhanced,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0
            }
        }

    def get_gap_stats(self) -> Dict:
        total_gaps = self.db.query(func.count(KnowledgeGap.id)).scalar() or 0
        resolved_gaps = self.db.query(func.count(KnowledgeGap.id)).filter(
            KnowledgeGap.status == GapStatus.RESOLVED.value
        ).scalar() or 0
        in_progress_gaps = self.db.query(func.count(KnowledgeGap.id)).filter(
            KnowledgeGap.status == GapStatus.IN_PROGRESS.value
        ).scalar() or 0
        open_gaps = self.db.query(func.count(KnowledgeGap.id)).filter(
            KnowledgeGap.open_filter()
        ).scalar() or 0
        average_frequency = self.db.query(func.avg(KnowledgeGap.frequency)).scalar() or 0

        top_gaps = self.db.query(KnowledgeGap).order_by(
            desc(KnowledgeGap.frequency)
        ).limit(10).all()

        resolved = self.db.query(KnowledgeGap).filter(
            KnowledgeGap.status == GapStatus.RESOLVED.value,
            KnowledgeGap.resolved_at.isnot(None)
        ).all()

        return {
            "total_gaps": total_gaps,
            "resolved_gaps": resolved_gaps,
            "in_progress_gaps": in_progress_gaps,
            "open_gaps": open_gaps,
            "average_frequency": round(float(average_frequency)),
            "average_resolution_time_hours": round(average_resolution_hours(resolved), 1),
            "top_queries": [
                {"query": gap.query, "frequency": gap.frequency, "status": gap.effective_status}
                for gap in top_gaps
            ],
            "top_categories": analyze_gap_categories([gap.query for gap in top_gaps])
        }

    @staticmethod
    def _increment(gap: KnowledgeGap) -> None:
        gap.frequency = (gap.frequency or 0) + 1
        gap.updated_at = func.now()
