"""
Knowledge Retrieval Service

Ranks curated knowledge entries against a free-text chat query using
keyword, title and content overlap plus a confidence boost, and builds the
knowledge context block handed to the LLM.
"""

import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from knowledge_service.core.config import scoring_config
from knowledge_service.core.exceptions import QueryMatchNotFoundError
from knowledge_service.core.logging_config import get_logger, log_knowledge_search
from knowledge_service.models.knowledge_entry import KnowledgeEntry, ConfidenceLevel
from knowledge_service.models.query_match import QueryMatch
from knowledge_service.services.text_normalizer import tokenize, word_overlap

logger = get_logger(__name__)

CONFIDENCE_BOOST = {
    ConfidenceLevel.HIGH.value: 0.3,
    ConfidenceLevel.MEDIUM.value: 0.1,
    ConfidenceLevel.LOW.value: 0.0,
}

NO_KNOWLEDGE_FOUND = "Tidak ada informasi relevan yang ditemukan di basis pengetahuan."


@dataclass
class SearchResult:
    entry: KnowledgeEntry
    relevance_score: float
    match_type: str  # 'keyword', 'title' or 'content'


def _keyword_score(tokens: List[str], keywords: Iterable[str]) -> float:
    matches = sum(
        1 for keyword in keywords
        if any(token in keyword.lower() for token in tokens)
    )
    return matches / max(len(tokens), 1)


def score_entry(query: str, tokens: List[str], entry: KnowledgeEntry) -> SearchResult:
    """Score one entry. Ties favour keyword, then title, then content."""
    keyword_score = _keyword_score(tokens, entry.keywords or [])
    title_score = word_overlap(query, entry.title or "")
    content_score = word_overlap(query, entry.content or "")

    if keyword_score >= title_score and keyword_score >= content_score:
        score, match_type = keyword_score, "keyword"
    elif title_score >= content_score:
        score, match_type = title_score, "title"
    else:
        score, match_type = content_score, "content"

    # No lexical signal means no match, whatever the confidence
    if score > 0:
        score += CONFIDENCE_BOOST.get(entry.confidence_level, 0.0)

    return SearchResult(entry=entry, relevance_score=min(score, 1.0), match_type=match_type)


def score_entries(
    query: str,
    candidates: Iterable[KnowledgeEntry],
    limit: int = 5,
    cutoff: float = 0.1
) -> List[SearchResult]:
    """
    Rank candidate entries for a query.

    Unreviewed entries are never returned. Results scoring at or below
    `cutoff` are dropped before truncating to `limit`.
    """
    tokens = tokenize(query)
    if not tokens:
        return []

    results = [
        score_entry(query, tokens, entry)
        for entry in candidates
        if entry.medical_reviewed is True
    ]
    results.sort(key=lambda result: result.relevance_score, reverse=True)

    return [result for result in results if result.relevance_score > cutoff][:limit]


class KnowledgeRetriever:
    """Datastore-backed knowledge search for chat and gap evaluation."""

    def __init__(self, db: Session, relevance_cutoff: Optional[float] = None):
        self.db = db
        self.relevance_cutoff = relevance_cutoff

    def search(self, query: str, limit: int = 5) -> List[SearchResult]:
        """
        Search reviewed knowledge entries for a chat turn.

        Datastore failures are logged and reported as no results so the chat
        turn can continue without knowledge context.
        """
        try:
            return self.rank(query, limit=limit)
        except Exception as e:
            logger.error("Knowledge search failed", error=str(e))
            self.db.rollback()
            return []

    def rank(self, query: str, limit: int = 5) -> List[SearchResult]:
        """Like search, but datastore failures propagate to the caller."""
        start = time.time()
        tokens = tokenize(query)
        if not tokens:
            return []

        candidates = self._reviewed_entries()

        cutoff = self.relevance_cutoff if self.relevance_cutoff is not None else scoring_config.relevance_cutoff
        results = score_entries(query, candidates, limit=limit, cutoff=cutoff)

        log_knowledge_search(
            query_length=len(query),
            token_count=len(tokens),
            result_count=len(results),
            duration_ms=round((time.time() - start) * 1000, 2)
        )

        return results

    def _reviewed_entries(self) -> List[KnowledgeEntry]:
        return self.db.query(KnowledgeEntry).filter(
            KnowledgeEntry.medical_reviewed.is_(True)
        ).all()

    def get_related_entries(self, entry: KnowledgeEntry, limit: int = 3) -> List[KnowledgeEntry]:
        """Reviewed entries sharing the category, a keyword or a tag."""
        keywords = {keyword.lower() for keyword in entry.keywords or []}
        tags = {tag.lower() for tag in entry.tags or []}

        candidates = self.db.query(KnowledgeEntry).filter(
            KnowledgeEntry.medical_reviewed.is_(True),
            KnowledgeEntry.id != entry.id
        ).order_by(desc(KnowledgeEntry.updated_at)).all()

        related = [
            candidate for candidate in candidates
            if candidate.category == entry.category
            or keywords & {keyword.lower() for keyword in candidate.keywords or []}
            or tags & {tag.lower() for tag in candidate.tags or []}
        ]
        related.sort(key=lambda candidate: CONFIDENCE_BOOST.get(candidate.confidence_level, 0.0), reverse=True)

        return related[:limit]

    def log_knowledge_usage(self, session_id: str, query: str, results: List[SearchResult]) -> None:
        """Record which entries answered a query. Never raises."""
        if not results:
            return

        try:
            for result in results:
                self.db.add(QueryMatch(
                    session_id=session_id,
                    query=query,
                    entry_id=result.entry.id,
                    confidence=result.relevance_score
                ))
            self.db.commit()
        except Exception as e:
            logger.error("Knowledge usage logging failed", session_id=session_id, error=str(e))
            self.db.rollback()

    def record_match_feedback(self, match_id: str, was_helpful: bool) -> QueryMatch:
        match = self.db.query(QueryMatch).filter(QueryMatch.id == match_id).first()
        if not match:
            raise QueryMatchNotFoundError(match_id)

        match.was_helpful = was_helpful
        self.db.commit()
        self.db.refresh(match)

        logger.info("Query match feedback recorded", match_id=match_id, was_helpful=was_helpful)
        return match


def build_knowledge_context(results: List[SearchResult]) -> str:
    """Format search results as the knowledge block of the LLM prompt."""
    if not results:
        return NO_KNOWLEDGE_FOUND

    parts = []
    for index, result in enumerate(results, start=1):
        entry = result.entry
        parts.append(
            f"[Referensi {index}] - Tingkat Kepercayaan: {entry.confidence_level}\n"
            f"Judul: {entry.title}\n"
            f"Kategori: {entry.category}\n"
            f"Konten: {entry.content}\n"
            f"Kata Kunci: {', '.join(entry.keywords or [])}\n"
            f"Skor Relevansi: {result.relevance_score * 100:.1f}%\n"
            f"Tipe Match: {result.match_type}\n"
        )

    references = "\n".join(parts)
    return (
        "KONTEKS PENGETAHUAN MEDIS:\n"
        f"{references}\n"
        "INSTRUKSI PENGGUNAAN:\n"
        "- Gunakan informasi di atas untuk memberikan jawaban yang akurat\n"
        "- Prioritaskan informasi dengan tingkat kepercayaan tinggi\n"
        "- Jika informasi tidak lengkap, sarankan konsultasi dengan profesional kesehatan\n"
        "- Selalu berikan disclaimer medis yang tepat\n"
    )
