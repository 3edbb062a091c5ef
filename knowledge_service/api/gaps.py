"""
Knowledge Gap API

Admin endpoints for reviewing unanswered queries, moving gaps through their
lifecycle, merging duplicates and running gap evaluation.
"""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from knowledge_service.core.config import scoring_config
from knowledge_service.core.database import get_db
from knowledge_service.core.exceptions import (
    ConfigurationError,
    GapNotFoundError,
    InvalidStatusTransitionError,
)
from knowledge_service.core.logging_config import get_logger
from knowledge_service.schemas.gaps import (
    KnowledgeGapResponse,
    KnowledgeGapList,
    GapLogRequest,
    GapLogResponse,
    GapStatusUpdate,
    GapStats,
    SimilarityCheckRequest,
    SimilarityCheckResponse,
    MergeResponse,
    GapEvaluationResult,
    BulkEvaluationResponse,
    EvaluationStats,
    EvaluationConfig,
    EvaluationConfigUpdate,
)
from knowledge_service.services.gap_evaluation import GapEvaluationService
from knowledge_service.services.gap_tracker import GapTracker
from knowledge_service.services.scheduler import gap_evaluation_scheduler

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=KnowledgeGapList)
async def list_gaps(
    filter: Literal["open", "in_progress", "resolved", "all"] = Query("open", description="Gap status filter"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """
    List knowledge gaps, most frequent first.

    Each gap carries the closest existing knowledge entries so curators can
    tell whether an entry only needs better keywords.
    """
    return GapTracker(db).list_gaps(filter=filter, page=page, limit=limit)


@router.get("/stats", response_model=GapStats)
async def get_gap_stats(db: Session = Depends(get_db)):
    return GapTracker(db).get_gap_stats()


@router.post("/log", response_model=GapLogResponse, status_code=status.HTTP_202_ACCEPTED)
async def log_gap(request: GapLogRequest, db: Session = Depends(get_db)):
    """Record an unanswered query reported by the chat transport."""
    gap = GapTracker(db).log_gap(request.query)
    return GapLogResponse(
        logged=gap is not None,
        gap=KnowledgeGapResponse.model_validate(gap) if gap is not None else None
    )


@router.post("/check-similarity", response_model=SimilarityCheckResponse)
async def check_similarity(request: SimilarityCheckRequest, db: Session = Depends(get_db)):
    """Warn about open gaps that probably duplicate a new query."""
    similar = GapTracker(db).check_similarity(request.query)
    return {
        "query": request.query,
        "has_similar": bool(similar),
        "similar_gaps": similar
    }


@router.post("/merge-duplicates", response_model=MergeResponse)
async def merge_duplicates(db: Session = Depends(get_db)):
    """Fold near-duplicate open gaps into the most frequent one."""
    try:
        return GapTracker(db).merge_duplicate_gaps()
    except Exception as e:
        logger.exception("Error merging duplicate gaps", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to merge duplicate gaps"
        )


@router.post("/evaluate-all", response_model=BulkEvaluationResponse)
async def evaluate_all_gaps(db: Session = Depends(get_db)):
    """Re-check every open gap against the knowledge base."""
    try:
        return await GapEvaluationService(db).evaluate_all_open_gaps()
    except Exception as e:
        logger.exception("Error evaluating open gaps", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate gaps"
        )


@router.get("/evaluation/stats", response_model=EvaluationStats)
async def get_evaluation_stats(db: Session = Depends(get_db)):
    return GapEvaluationService(db).get_evaluation_stats()


@router.get("/evaluation/config", response_model=EvaluationConfig)
async def get_evaluation_config():
    return scoring_config.as_dict()


@router.put("/evaluation/config", response_model=EvaluationConfig)
async def update_evaluation_config(changes: EvaluationConfigUpdate):
    """
    Tune thresholds and throttling at runtime.

    A changed interval reschedules the running evaluation job.
    """
    updates = changes.model_dump(exclude_none=True)
    previous = scoring_config.as_dict()

    try:
        config = scoring_config.update(**updates)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if "interval_hours" in updates and gap_evaluation_scheduler.is_running:
        try:
            gap_evaluation_scheduler.start(scoring_config.interval_hours)
        except Exception as e:
            logger.exception("Error rescheduling gap evaluation", error=str(e))
            scoring_config.update(**previous)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to reschedule gap evaluation; configuration unchanged"
            )

    logger.info("Evaluation config updated", changed_fields=sorted(updates))
    return config


@router.get("/scheduler/status")
async def get_scheduler_status():
    return gap_evaluation_scheduler.get_job_status()


@router.patch("/{gap_id}/status", response_model=KnowledgeGapResponse)
async def update_gap_status(gap_id: str, update: GapStatusUpdate, db: Session = Depends(get_db)):
    try:
        return GapTracker(db).update_status(gap_id, update.status.value, assigned_to=update.assigned_to)
    except GapNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{gap_id}/evaluate", response_model=GapEvaluationResult)
async def evaluate_gap(gap_id: str, db: Session = Depends(get_db)):
    """Check one gap against the knowledge base and resolve it if answered."""
    try:
        return await GapEvaluationService(db).evaluate_gap(gap_id)
    except GapNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
