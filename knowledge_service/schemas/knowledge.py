"""
Pydantic schemas for knowledge entry and search APIs.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from knowledge_service.models.knowledge_entry import ConfidenceLevel, KnowledgeCategory


class KnowledgeEntryBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Entry title")
    content: str = Field(..., min_length=1, description="Answer text shown to the LLM")
    category: KnowledgeCategory = Field(KnowledgeCategory.GENERAL, description="Medical category")
    keywords: List[str] = Field(default_factory=list, description="Retrieval keywords; extracted automatically when empty")
    tags: List[str] = Field(default_factory=list, description="Free-form curator tags")
    confidence_level: ConfidenceLevel = Field(ConfidenceLevel.MEDIUM, description="Curator confidence")
    medical_reviewed: bool = Field(False, description="Only reviewed entries are searchable")
    requires_escalation: bool = Field(False, description="Answer should direct the user to a professional")


class KnowledgeEntryCreate(KnowledgeEntryBase):
    """Request schema for creating a knowledge entry"""
    created_by: str = Field("admin", description="Author of the entry")
    resolve_gap_id: Optional[str] = Field(None, description="Knowledge gap this entry answers")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "Fever Management",
                    "content": "For fever, rest and drink plenty of fluids. Paracetamol can reduce temperature.",
                    "category": "symptoms",
                    "keywords": ["fever", "demam", "temperature", "paracetamol"],
                    "confidence_level": "HIGH",
                    "medical_reviewed": True
                }
            ]
        }
    }


class KnowledgeEntryUpdate(BaseModel):
    """Request schema for updating a knowledge entry; omitted fields are unchanged"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[KnowledgeCategory] = None
    keywords: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    confidence_level: Optional[ConfidenceLevel] = None
    medical_reviewed: Optional[bool] = None
    requires_escalation: Optional[bool] = None
    updated_by: str = Field("admin", description="Editor of the entry")


class KnowledgeEntryResponse(BaseModel):
    """Response schema for a knowledge entry"""
    id: str
    title: str
    content: str
    category: str
    keywords: List[str]
    tags: List[str]
    confidence_level: str
    medical_reviewed: bool
    requires_escalation: bool
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class KnowledgeVersionResponse(BaseModel):
    id: str
    entry_id: str
    content: str
    version: int
    created_by: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class KnowledgeEntryList(BaseModel):
    entries: List[KnowledgeEntryResponse]
    pagination: PaginationInfo


class KnowledgeDeleteResponse(BaseModel):
    id: str
    deleted_versions: int
    deleted_query_matches: int


class KeywordExtractionRequest(BaseModel):
    title: str = Field("", description="Entry title")
    content: str = Field(..., min_length=1, description="Entry content")


class KeywordExtractionResponse(BaseModel):
    suggested: List[str]
    additional: List[str]


class SearchRequest(BaseModel):
    """Request schema for knowledge search"""
    query: str = Field(..., description="User chat message")
    session_id: Optional[str] = Field(None, description="Chat session to record matches against")
    limit: Optional[int] = Field(None, ge=1, le=20, description="Maximum number of results")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "query": "saya sakit kepala dan demam",
                    "session_id": "session-123e4567-e89b-12d3-a456-426614174000",
                    "limit": 5
                }
            ]
        }
    }


class SearchResultResponse(BaseModel):
    entry: KnowledgeEntryResponse
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    match_type: str = Field(..., description="'keyword', 'title' or 'content'")

    model_config = {"from_attributes": True}


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResultResponse]
    context: str = Field(..., description="Knowledge block for the LLM prompt")
    gap_logged: bool = Field(..., description="True when no result was found and the query was queued as a gap")


class MatchFeedbackRequest(BaseModel):
    was_helpful: bool


class QueryMatchResponse(BaseModel):
    id: str
    session_id: str
    query: str
    entry_id: str
    confidence: float
    was_helpful: Optional[bool]
    created_at: datetime

    model_config = {"from_attributes": True}
