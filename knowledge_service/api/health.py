"""
Health check endpoints for service monitoring.
"""

import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, text
from sqlalchemy.orm import Session

from knowledge_service.core.config import settings
from knowledge_service.core.database import get_db
from knowledge_service.core.logging_config import get_logger
from knowledge_service.models import KnowledgeEntry, KnowledgeGap
from knowledge_service.services.scheduler import gap_evaluation_scheduler

logger = get_logger(__name__)

router = APIRouter()


def _check_database(db: Session) -> dict:
    start = time.time()
    db.execute(text("SELECT 1"))
    return {"status": "healthy", "latency_ms": round((time.time() - start) * 1000, 2)}


def _knowledge_summary(db: Session) -> dict:
    reviewed = db.query(func.count(KnowledgeEntry.id)).filter(
        KnowledgeEntry.medical_reviewed.is_(True)
    ).scalar() or 0
    open_gaps = db.query(func.count(KnowledgeGap.id)).filter(KnowledgeGap.open_filter()).scalar() or 0
    return {"reviewed_entries": reviewed, "open_gaps": open_gaps}


@router.get("/health")
async def health_check():
    """Service status without touching the database."""
    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "environment": settings.ENVIRONMENT
    }


@router.get("/health/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check endpoint.

    Ready means the knowledge store answers queries. An empty knowledge base
    is still ready: searches return no results and log gaps. The scheduler
    state is informational only.

    Returns:
        200 OK if ready, 503 Service Unavailable if the database is unreachable
    """
    report = {
        "service": settings.SERVICE_NAME,
        "status": "ready",
        "checks": {}
    }

    try:
        report["checks"]["database"] = _check_database(db)
        report["checks"]["knowledge_base"] = _knowledge_summary(db)
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        db.rollback()
        report["status"] = "unhealthy"
        report["checks"]["database"] = {"status": "unhealthy", "error": str(e)}

    report["checks"]["scheduler"] = {
        "enabled": settings.ENABLE_SCHEDULER,
        "running": gap_evaluation_scheduler.is_running,
        "interval_hours": gap_evaluation_scheduler.interval_hours
    }

    if report["status"] == "unhealthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=report)

    return report


@router.get("/health/live")
async def liveness_check():
    return {
        "status": "alive",
        "service": settings.SERVICE_NAME,
        "timestamp": time.time()
    }
