"""
Knowledge Service - Main Application

FastAPI microservice for telemedicine FAQ knowledge retrieval and
knowledge gap tracking.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from contextlib import asynccontextmanager
from knowledge_service.core.config import settings
from knowledge_service.core.database import init_db
from knowledge_service.core.logging_config import configure_logging, get_logger
from knowledge_service.api import health, search, knowledge, gaps
from knowledge_service.services.scheduler import gap_evaluation_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for the application.
    Runs on startup and shutdown.
    """
    # Configure logging FIRST
    configure_logging()

    # THEN get logger instance
    logger = get_logger(__name__)

    # Startup
    logger.info(
        "Starting knowledge service",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
        database=settings.DATABASE_URL.split("@")[-1],
        relevance_cutoff=settings.RELEVANCE_CUTOFF,
        resolution_threshold=settings.RESOLUTION_THRESHOLD
    )

    init_db()
    logger.info("Database tables ready")

    if settings.ENABLE_SCHEDULER:
        try:
            gap_evaluation_scheduler.start()
        except Exception as e:
            logger.exception(f"Failed to start gap evaluation scheduler: {e}")
            logger.warning("Service will continue without periodic gap evaluation")
    else:
        logger.info("Scheduler is disabled via ENABLE_SCHEDULER setting")

    try:
        yield
    finally:
        # Shutdown
        logger.info(f"Shutting down {settings.SERVICE_NAME}")
        gap_evaluation_scheduler.stop()


# Create FastAPI application
app = FastAPI(
    title=settings.SERVICE_NAME,
    description="Knowledge retrieval and knowledge gap tracking for the telemedicine FAQ chatbot",
    version="1.0.0",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Include routers
app.include_router(health.router, prefix=settings.API_V1_STR, tags=["health"])
app.include_router(search.router, prefix=f"{settings.API_V1_STR}/search", tags=["search"])
app.include_router(knowledge.router, prefix=f"{settings.API_V1_STR}/knowledge", tags=["knowledge"])
app.include_router(gaps.router, prefix=f"{settings.API_V1_STR}/gaps", tags=["gaps"])


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.SERVICE_NAME,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.ENVIRONMENT,
        "docs": f"{settings.API_V1_STR}/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "knowledge_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
