"""
Background Job Scheduler

Uses APScheduler to periodically re-evaluate open knowledge gaps.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from knowledge_service.core import database
from knowledge_service.core.config import settings, scoring_config
from knowledge_service.core.logging_config import get_logger
from knowledge_service.models.job_log import JobExecutionLog
from knowledge_service.services.gap_evaluation import GapEvaluationService

logger = get_logger(__name__)

JOB_ID = "gap_evaluation"


class GapEvaluationScheduler:
    """
    Owns the single periodic gap evaluation timer.

    start() while already running replaces the job instead of adding a
    second timer; stop() is safe to call repeatedly.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.interval_hours: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self, interval_hours: Optional[float] = None):
        """Start the scheduler, or reschedule the job if it is already running."""
        interval_hours = interval_hours or scoring_config.interval_hours

        if self.is_running:
            self._add_job(interval_hours)
            logger.info("Gap evaluation job rescheduled", interval_hours=interval_hours)
            return

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                'coalesce': True,  # Combine multiple missed executions into one
                'max_instances': 1  # Only one evaluation run at a time
            }
        )
        self._add_job(interval_hours)
        self.scheduler.start()

        logger.info(
            "Gap evaluation scheduler started",
            interval_hours=interval_hours,
            job_count=len(self.scheduler.get_jobs())
        )

    def stop(self):
        """Stop the scheduler gracefully."""
        if self.scheduler is None:
            return

        try:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            logger.info("Gap evaluation scheduler stopped")
        except Exception as e:
            logger.error("Error stopping gap evaluation scheduler", error=str(e))
        finally:
            self.scheduler = None
            self.interval_hours = None

    def _add_job(self, interval_hours: float):
        self.scheduler.add_job(
            func=self._run_gap_evaluation,
            trigger=IntervalTrigger(hours=interval_hours),
            id=JOB_ID,
            name="Periodic Knowledge Gap Evaluation",
            replace_existing=True
        )
        self.interval_hours = interval_hours

    async def _run_gap_evaluation(self, triggered_by: str = "scheduler") -> Optional[dict]:
        """
        Evaluate all open gaps and record the run in the job log.

        Failures are logged and recorded, never raised into the scheduler.
        """
        job_id = str(uuid.uuid4())
        start_time = datetime.now(timezone.utc)

        logger.info("Starting scheduled gap evaluation job", job_id=job_id)

        db = database.SessionLocal()
        try:
            result = await GapEvaluationService(db).evaluate_all_open_gaps()

            duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)

            db.add(JobExecutionLog(
                id=job_id,
                job_name=JOB_ID,
                status="success",
                started_at=start_time,
                completed_at=datetime.now(timezone.utc),
                duration_ms=duration_ms,
                result_summary={
                    "evaluated": result["evaluated"],
                    "resolved": result["resolved"]
                },
                triggered_by=triggered_by
            ))
            db.commit()

            logger.info(
                "Gap evaluation job completed successfully",
                job_id=job_id,
                evaluated=result["evaluated"],
                resolved=result["resolved"],
                duration_ms=duration_ms
            )
            return result

        except Exception as e:
            db.rollback()
            duration_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)

            try:
                db.add(JobExecutionLog(
                    id=job_id,
                    job_name=JOB_ID,
                    status="failed",
                    started_at=start_time,
                    completed_at=datetime.now(timezone.utc),
                    duration_ms=duration_ms,
                    error_message=str(e),
                    triggered_by=triggered_by
                ))
                db.commit()
            except Exception as log_error:
                db.rollback()
                logger.error("Failed to record gap evaluation job log", job_id=job_id, error=str(log_error))

            logger.error("Gap evaluation job failed", job_id=job_id, error=str(e))
            return None

        finally:
            db.close()

    def get_job_status(self) -> dict:
        """Get status of the scheduled job."""
        if not self.is_running:
            return {
                "scheduler_running": False,
                "enabled": settings.ENABLE_SCHEDULER,
                "jobs": []
            }

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "scheduler_running": True,
            "enabled": settings.ENABLE_SCHEDULER,
            "interval_hours": self.interval_hours,
            "job_count": len(jobs),
            "jobs": jobs
        }


# Singleton instance
gap_evaluation_scheduler = GapEvaluationScheduler()
