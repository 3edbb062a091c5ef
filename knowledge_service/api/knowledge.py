"""
Knowledge Management API

Endpoints for curators to create, edit and inspect knowledge entries.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from knowledge_service.core import database
from knowledge_service.core.database import get_db
from knowledge_service.core.exceptions import KnowledgeEntryNotFoundError
from knowledge_service.core.logging_config import get_logger
from knowledge_service.models.knowledge_entry import KnowledgeCategory
from knowledge_service.schemas.knowledge import (
    KnowledgeEntryCreate,
    KnowledgeEntryUpdate,
    KnowledgeEntryResponse,
    KnowledgeEntryList,
    KnowledgeVersionResponse,
    KnowledgeDeleteResponse,
    KeywordExtractionRequest,
    KeywordExtractionResponse,
)
from knowledge_service.services.gap_evaluation import GapEvaluationService
from knowledge_service.services.keyword_extractor import (
    extract_keywords_with_suggestions,
    suggest_keywords_by_category,
)
from knowledge_service.services.knowledge_manager import KnowledgeManager
from knowledge_service.services.retrieval import KnowledgeRetriever

logger = get_logger(__name__)

router = APIRouter()


async def evaluate_gaps_in_background(entry_id: str) -> None:
    """Resolve open gaps answered by an entry, on a dedicated session."""
    db = database.SessionLocal()
    try:
        await GapEvaluationService(db).evaluate_gaps_for_new_entry(entry_id)
    except Exception as e:
        logger.error("Gap evaluation for new entry failed", entry_id=entry_id, error=str(e))
    finally:
        db.close()


@router.get("", response_model=KnowledgeEntryList)
async def list_entries(
    category: Optional[KnowledgeCategory] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Substring match on title or content"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    manager = KnowledgeManager(db)
    return manager.list_entries(
        category=category.value if category else None,
        search=search,
        page=page,
        limit=limit
    )


@router.post(
    "",
    response_model=KnowledgeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create knowledge entry"
)
async def create_entry(
    payload: KnowledgeEntryCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Create a knowledge entry.

    Keywords are extracted automatically when none are given. Reviewed
    entries trigger a background re-evaluation of open knowledge gaps.
    """
    try:
        data = payload.model_dump(mode="json", exclude={"created_by", "resolve_gap_id"})
        entry = KnowledgeManager(db).create_entry(
            data,
            created_by=payload.created_by,
            resolve_gap_id=payload.resolve_gap_id
        )
    except Exception as e:
        logger.exception("Error creating knowledge entry", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create knowledge entry"
        )

    if entry.medical_reviewed:
        background_tasks.add_task(evaluate_gaps_in_background, entry.id)

    return entry


@router.post("/keywords/extract", response_model=KeywordExtractionResponse)
async def extract_entry_keywords(request: KeywordExtractionRequest):
    """Suggest keywords for an entry that is being written."""
    return extract_keywords_with_suggestions(f"{request.title} {request.content}")


@router.get("/keywords/suggestions/{category}", response_model=List[str])
async def get_category_keywords(category: KnowledgeCategory):
    return suggest_keywords_by_category(category.value)


@router.get("/{entry_id}", response_model=KnowledgeEntryResponse)
async def get_entry(entry_id: str, db: Session = Depends(get_db)):
    try:
        return KnowledgeManager(db).get_entry(entry_id)
    except KnowledgeEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/{entry_id}", response_model=KnowledgeEntryResponse)
async def update_entry(
    entry_id: str,
    payload: KnowledgeEntryUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Update an entry and append a new content version."""
    try:
        data = payload.model_dump(mode="json", exclude={"updated_by"}, exclude_none=True)
        entry = KnowledgeManager(db).update_entry(entry_id, data, updated_by=payload.updated_by)
    except KnowledgeEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.exception("Error updating knowledge entry", entry_id=entry_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update knowledge entry"
        )

    if entry.medical_reviewed:
        background_tasks.add_task(evaluate_gaps_in_background, entry.id)

    return entry


@router.delete("/{entry_id}", response_model=KnowledgeDeleteResponse)
async def delete_entry(entry_id: str, db: Session = Depends(get_db)):
    try:
        return KnowledgeManager(db).delete_entry(entry_id)
    except KnowledgeEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{entry_id}/versions", response_model=List[KnowledgeVersionResponse])
async def get_entry_versions(entry_id: str, db: Session = Depends(get_db)):
    try:
        return KnowledgeManager(db).get_versions(entry_id)
    except KnowledgeEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{entry_id}/related", response_model=List[KnowledgeEntryResponse])
async def get_related_entries(
    entry_id: str,
    limit: int = Query(3, ge=1, le=10),
    db: Session = Depends(get_db)
):
    try:
        entry = KnowledgeManager(db).get_entry(entry_id)
    except KnowledgeEntryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return KnowledgeRetriever(db).get_related_entries(entry, limit=limit)
