"""
Gap Evaluation Service

Re-checks open knowledge gaps against the current knowledge base and marks
them resolved once reviewed knowledge answers them. Runs on demand, after a
knowledge entry is created or updated, and periodically via the scheduler.
"""

import asyncio
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from knowledge_service.core.config import scoring_config
from knowledge_service.core.exceptions import GapNotFoundError
from knowledge_service.core.logging_config import get_logger, log_gap_resolved
from knowledge_service.models.knowledge_entry import KnowledgeEntry
from knowledge_service.models.knowledge_gap import KnowledgeGap, GapStatus
from knowledge_service.services.gap_tracker import average_resolution_hours
from knowledge_service.services.retrieval import KnowledgeRetriever
from knowledge_service.services.text_normalizer import normalize, tokenize

logger = get_logger(__name__)

AUTO_SYSTEM = "auto-system"
AUTO_ENTRY = "auto-entry"

TITLE_BONUS = 0.3
KEYWORD_BONUS = 0.2


def calculate_entry_relevance(query: str, entry: KnowledgeEntry) -> float:
    """
    How well a single entry covers a gap query, in [0, 1].

    The base score is the fraction of query tokens found anywhere in the
    entry's title, content and keywords. Tokens found in the title add up
    to 0.3 and tokens found in a keyword add up to 0.2. There is no
    confidence boost, so the entry has to genuinely cover the query.
    """
    tokens = tokenize(query)
    if not tokens:
        return 0.0

    keywords = [keyword.lower() for keyword in entry.keywords or []]
    title = normalize(entry.title or "")
    entry_text = normalize(" ".join([entry.title or "", entry.content or "", " ".join(keywords)]))

    direct = sum(1 for token in tokens if token in entry_text)
    in_title = sum(1 for token in tokens if token in title)
    in_keywords = sum(1 for token in tokens if any(token in keyword for keyword in keywords))

    score = (direct + in_title * TITLE_BONUS + in_keywords * KEYWORD_BONUS) / len(tokens)
    return min(score, 1.0)


class GapEvaluationService:
    """Resolves knowledge gaps that the knowledge base can now answer."""

    def __init__(self, db: Session):
        self.db = db
        self.retriever = KnowledgeRetriever(db)

    async def evaluate_gap(self, gap_id: str, query: Optional[str] = None) -> Dict:
        """
        Evaluate a single gap against the knowledge base.

        A gap that is already resolved is left untouched.

        Raises:
            GapNotFoundError: unknown gap
        """
        gap = self.db.query(KnowledgeGap).filter(KnowledgeGap.id == gap_id).first()
        if not gap:
            raise GapNotFoundError(gap_id)

        if gap.effective_status == GapStatus.RESOLVED.value:
            return {
                "gap_id": gap_id,
                "query": gap.query,
                "resolved": True,
                "already_resolved": True,
                "match_count": 0
            }

        query = query or gap.query
        threshold = scoring_config.resolution_threshold

        results = self.retriever.rank(query, limit=5)
        good_matches = [result for result in results if result.relevance_score > threshold]

        if good_matches:
            best = good_matches[0]

            gap.status = GapStatus.RESOLVED.value
            gap.resolved_at = func.now()
            gap.resolved_by = AUTO_SYSTEM
            gap.needs_content = False
            gap.updated_at = func.now()
            self.db.commit()

            log_gap_resolved(gap_id, AUTO_SYSTEM, len(good_matches), best.relevance_score)

            return {
                "gap_id": gap_id,
                "query": query,
                "resolved": True,
                "already_resolved": False,
                "match_count": len(good_matches),
                "best_match": {
                    "id": best.entry.id,
                    "title": best.entry.title,
                    "category": best.entry.category,
                    "score": round(best.relevance_score, 4)
                }
            }

        return {
            "gap_id": gap_id,
            "query": query,
            "resolved": False,
            "already_resolved": False,
            "match_count": len(results)
        }

    async def evaluate_all_open_gaps(self) -> Dict:
        """
        Evaluate every open gap, most frequent first.

        Work is throttled with a short pause after each gap and a longer one
        between batches. One failing gap never stops the run.
        """
        open_gaps = self.db.query(KnowledgeGap).filter(
            KnowledgeGap.open_filter()
        ).order_by(desc(KnowledgeGap.frequency)).all()

        batch_size = scoring_config.batch_size
        results: List[Dict] = []
        resolved_count = 0

        logger.info("Starting evaluation of open gaps", gap_count=len(open_gaps), batch_size=batch_size)

        for start in range(0, len(open_gaps), batch_size):
            batch = open_gaps[start:start + batch_size]

            for gap in batch:
                gap_id, query = gap.id, gap.query
                try:
                    result = await self.evaluate_gap(gap_id, query)
                    results.append(result)
                    if result["resolved"]:
                        resolved_count += 1
                except Exception as e:
                    logger.error("Gap evaluation failed", gap_id=gap_id, error=str(e))
                    self.db.rollback()
                    results.append({
                        "gap_id": gap_id,
                        "query": query,
                        "resolved": False,
                        "error": str(e)
                    })

                await asyncio.sleep(scoring_config.item_delay_seconds)

            if start + batch_size < len(open_gaps):
                await asyncio.sleep(scoring_config.batch_delay_seconds)

        logger.info(
            "Open gap evaluation completed",
            evaluated=len(results),
            resolved=resolved_count
        )

        return {
            "evaluated": len(results),
            "resolved": resolved_count,
            "results": results
        }

    async def evaluate_gaps_for_new_entry(self, entry_id: str) -> Dict:
        """
        Resolve open gaps covered by a newly created or updated entry.

        details lists every evaluated gap with its relevance, resolved or not.
        """
        entry = self.db.query(KnowledgeEntry).filter(KnowledgeEntry.id == entry_id).first()

        if not entry or not entry.medical_reviewed:
            return {"evaluated": 0, "resolved": 0, "details": []}

        open_gaps = self.db.query(KnowledgeGap).filter(
            KnowledgeGap.open_filter()
        ).order_by(desc(KnowledgeGap.frequency)).all()
        threshold = scoring_config.resolution_threshold
        details = []
        resolved_count = 0

        for gap in open_gaps:
            relevance = calculate_entry_relevance(gap.query, entry)
            resolved = relevance > threshold

            details.append({
                "gap_id": gap.id,
                "query": gap.query,
                "resolved": resolved,
                "relevance": round(relevance, 4)
            })
            if not resolved:
                continue

            gap.status = GapStatus.RESOLVED.value
            gap.resolved_at = func.now()
            gap.resolved_by = AUTO_ENTRY
            gap.needs_content = False
            gap.updated_at = func.now()
            resolved_count += 1
            log_gap_resolved(gap.id, AUTO_ENTRY, 1, relevance)

        if resolved_count:
            self.db.commit()

        logger.info(
            "New entry gap evaluation completed",
            entry_id=entry_id,
            evaluated=len(open_gaps),
            resolved=resolved_count
        )

        return {
            "evaluated": len(open_gaps),
            "resolved": resolved_count,
            "details": details
        }

    def calculate_entry_relevance(self, query: str, entry: KnowledgeEntry) -> float:
        return calculate_entry_relevance(query, entry)

    def get_evaluation_stats(self) -> Dict:
        total = self.db.query(func.count(KnowledgeGap.id)).scalar() or 0
        open_count = self.db.query(func.count(KnowledgeGap.id)).filter(
            KnowledgeGap.open_filter()
        ).scalar() or 0

        resolved = self.db.query(KnowledgeGap).filter(
            KnowledgeGap.status == GapStatus.RESOLVED.value
        ).all()
        auto_resolved = [gap for gap in resolved if gap.resolved_by in (AUTO_SYSTEM, AUTO_ENTRY)]

        return {
            "total_gaps": total,
            "open_gaps": open_count,
            "resolved_gaps": len(resolved),
            "auto_resolved_gaps": len(auto_resolved),
            "average_resolution_time_hours": round(average_resolution_hours(resolved), 1),
            "resolution_rate": round(len(resolved) / total * 100, 1) if total else 0.0
        }
