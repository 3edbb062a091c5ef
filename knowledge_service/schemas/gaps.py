"""
Pydantic schemas for knowledge gap management and evaluation APIs.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from knowledge_service.models.knowledge_gap import GapStatus
from knowledge_service.schemas.knowledge import PaginationInfo


class KnowledgeGapResponse(BaseModel):
    """Response schema for a knowledge gap"""
    id: str
    query: str
    frequency: int
    status: Optional[str]
    needs_content: Optional[bool]
    assigned_to: Optional[str]
    resolved_by: Optional[str]
    resolved_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": "gap-123e4567-e89b-12d3-a456-426614174000",
                    "query": "apa itu demam berdarah",
                    "frequency": 12,
                    "status": "OPEN",
                    "needs_content": True,
                    "assigned_to": None,
                    "resolved_by": None,
                    "resolved_at": None,
                    "created_at": "2025-01-17T10:30:00Z",
                    "updated_at": "2025-01-18T08:00:00Z"
                }
            ]
        }
    }


class RelatedEntry(BaseModel):
    id: str
    title: str
    category: str
    relevance_score: float


class GapWithRelated(BaseModel):
    gap: KnowledgeGapResponse
    related_entries: List[RelatedEntry]


class KnowledgeGapList(BaseModel):
    gaps: List[GapWithRelated]
    pagination: PaginationInfo


class GapLogRequest(BaseModel):
    query: str = Field(..., description="Unanswered user query")


class GapLogResponse(BaseModel):
    logged: bool
    gap: Optional[KnowledgeGapResponse] = None


class GapStatusUpdate(BaseModel):
    """Request schema for moving a gap through its lifecycle"""
    status: GapStatus
    assigned_to: Optional[str] = Field(None, description="Admin taking ownership of the gap")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "IN_PROGRESS", "assigned_to": "dr.sari"}
            ]
        }
    }


class SimilarityCheckRequest(BaseModel):
    query: str = Field(..., min_length=1)


class SimilarGap(BaseModel):
    id: str
    query: str
    frequency: int
    similarity: float


class SimilarityCheckResponse(BaseModel):
    query: str
    has_similar: bool
    similar_gaps: List[SimilarGap]


class TopQuery(BaseModel):
    query: str
    frequency: int
    status: str


class CategoryCount(BaseModel):
    category: str
    count: int


class GapStats(BaseModel):
    total_gaps: int
    resolved_gaps: int
    in_progress_gaps: int
    open_gaps: int
    average_frequency: int
    average_resolution_time_hours: float
    top_queries: List[TopQuery]
    top_categories: List[CategoryCount]


class MergeResponse(BaseModel):
    merged_count: int
    results: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]


class BestMatch(BaseModel):
    id: str
    title: str
    category: str
    score: float


class GapEvaluationResult(BaseModel):
    gap_id: str
    query: str
    resolved: bool
    already_resolved: bool = False
    match_count: int = 0
    best_match: Optional[BestMatch] = None
    error: Optional[str] = None


class BulkEvaluationResponse(BaseModel):
    evaluated: int
    resolved: int
    results: List[GapEvaluationResult]


class EvaluationStats(BaseModel):
    total_gaps: int
    open_gaps: int
    resolved_gaps: int
    auto_resolved_gaps: int
    average_resolution_time_hours: float
    resolution_rate: float


class EvaluationConfig(BaseModel):
    relevance_cutoff: float
    resolution_threshold: float
    merge_similarity_threshold: float
    duplicate_similarity_threshold: float
    similarity_check_threshold: float
    interval_hours: float
    batch_size: int
    item_delay_seconds: float
    batch_delay_seconds: float


class EvaluationConfigUpdate(BaseModel):
    """Partial update; values are range-checked by the scoring configuration"""
    relevance_cutoff: Optional[float] = None
    resolution_threshold: Optional[float] = None
    merge_similarity_threshold: Optional[float] = None
    duplicate_similarity_threshold: Optional[float] = None
    similarity_check_threshold: Optional[float] = None
    interval_hours: Optional[float] = None
    batch_size: Optional[int] = None
    item_delay_seconds: Optional[float] = None
    batch_delay_seconds: Optional[float] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"resolution_threshold": 0.75, "batch_size": 20}
            ]
        }
    }
