"""
Structured logging configuration using Loguru and Structlog.

Development gets a colored console, production gets one JSON object per
line. Messages are constant strings; user-supplied text (queries, titles)
goes into keyword arguments so it lands in the structured `extra` payload.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from loguru import logger

from knowledge_service.core.config import settings

DEV_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> | <level>{message}</level> | {extra}"
)

# Libraries that log every statement or request at INFO
CHATTY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "apscheduler", "uvicorn.access")

# Search request being served, attached to search events
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})


def _is_production() -> bool:
    return settings.ENVIRONMENT == "production"


def configure_logging():
    """Configure Loguru and Structlog for the application"""
    logger.remove()
    logger.configure(extra={"module": "-", "service": settings.SERVICE_NAME})

    if _is_production():
        logger.add(sys.stdout, level=settings.LOG_LEVEL, serialize=True)
        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    else:
        logger.add(sys.stdout, format=DEV_FORMAT, level=settings.LOG_LEVEL, colorize=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if _is_production() else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return logger.bind(module=name, service=settings.SERVICE_NAME)


def set_request_context(request_id: Optional[str] = None, session_id: Optional[str] = None):
    """Attach the search request and chat session to subsequent search events."""
    context = {}
    if request_id:
        context["request_id"] = request_id
    if session_id:
        context["session_id"] = session_id

    request_context.set(context)
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context():
    request_context.set({})
    structlog.contextvars.clear_contextvars()


# Domain events

def log_knowledge_search(query_length: int, token_count: int, result_count: int, duration_ms: float):
    logger.info(
        "Knowledge search completed",
        event_type="knowledge_search",
        query_length=query_length,
        token_count=token_count,
        result_count=result_count,
        duration_ms=duration_ms,
        **request_context.get()
    )


def log_knowledge_gap_logged(gap_id: str, action: str, frequency: int, similarity: Optional[float] = None):
    """action is one of created, incremented, merged_on_write"""
    logger.info(
        "Knowledge gap logged",
        event_type="knowledge_gap_logged",
        gap_id=gap_id,
        action=action,
        frequency=frequency,
        similarity=similarity
    )


def log_gap_resolved(gap_id: str, resolved_by: str, match_count: int, best_score: Optional[float] = None):
    logger.info(
        "Knowledge gap resolved",
        event_type="knowledge_gap_resolved",
        gap_id=gap_id,
        resolved_by=resolved_by,
        match_count=match_count,
        best_score=best_score
    )


def log_gaps_merged(surviving_gap_id: str, merged_count: int, new_frequency: int):
    logger.info(
        "Duplicate knowledge gaps merged",
        event_type="knowledge_gaps_merged",
        surviving_gap_id=surviving_gap_id,
        merged_count=merged_count,
        new_frequency=new_frequency
    )


configure_logging()
