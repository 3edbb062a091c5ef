"""
Knowledge Search API

Entry point for the chat transport: ranks knowledge for a user message,
returns the LLM context block and queues unanswered queries as knowledge
gaps.
"""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from knowledge_service.core import database
from knowledge_service.core.config import settings
from knowledge_service.core.database import get_db
from knowledge_service.core.exceptions import QueryMatchNotFoundError
from knowledge_service.core.logging_config import get_logger, set_request_context, clear_request_context
from knowledge_service.schemas.knowledge import (
    SearchRequest,
    SearchResponse,
    SearchResultResponse,
    KnowledgeEntryResponse,
    MatchFeedbackRequest,
    QueryMatchResponse,
)
from knowledge_service.services.gap_tracker import GapTracker
from knowledge_service.services.retrieval import KnowledgeRetriever, build_knowledge_context
from knowledge_service.services.text_normalizer import tokenize

logger = get_logger(__name__)

router = APIRouter()


def log_gap_in_background(query: str) -> None:
    """Record an unanswered query on a dedicated session."""
    db = database.SessionLocal()
    try:
        GapTracker(db).log_gap(query)
    finally:
        db.close()


@router.post(
    "",
    response_model=SearchResponse,
    summary="Search knowledge",
    description="Rank reviewed knowledge entries for a chat message"
)
async def search_knowledge(
    request: SearchRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Search the knowledge base.

    - Results scoring at or below the relevance cutoff are dropped
    - When nothing relevant is found the query is logged as a knowledge gap
      after the response is sent
    - With a **session_id**, returned matches are recorded for analytics
    """
    set_request_context(request_id=str(uuid.uuid4()), session_id=request.session_id)

    try:
        retriever = KnowledgeRetriever(db)
        results = retriever.search(request.query, limit=request.limit or settings.SEARCH_DEFAULT_LIMIT)

        gap_logged = False
        if not results and tokenize(request.query):
            background_tasks.add_task(log_gap_in_background, request.query)
            gap_logged = True

        if results and request.session_id:
            retriever.log_knowledge_usage(request.session_id, request.query, results)

        return SearchResponse(
            query=request.query,
            results=[
                SearchResultResponse(
                    entry=KnowledgeEntryResponse.model_validate(result.entry),
                    relevance_score=result.relevance_score,
                    match_type=result.match_type
                )
                for result in results
            ],
            context=build_knowledge_context(results),
            gap_logged=gap_logged
        )

    except Exception as e:
        logger.exception("Error searching knowledge", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search knowledge"
        )
    finally:
        clear_request_context()


@router.patch(
    "/matches/{match_id}/feedback",
    response_model=QueryMatchResponse,
    summary="Rate a knowledge match",
    description="Record whether a matched entry actually helped the user"
)
async def submit_match_feedback(
    match_id: str,
    feedback: MatchFeedbackRequest,
    db: Session = Depends(get_db)
):
    try:
        return KnowledgeRetriever(db).record_match_feedback(match_id, feedback.was_helpful)
    except QueryMatchNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
