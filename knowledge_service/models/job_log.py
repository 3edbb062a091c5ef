"""
Job Execution Log Model

Records execution history of scheduled gap evaluation runs.
"""

from sqlalchemy import Column, String, Text, Integer, DateTime, JSON

from knowledge_service.core.database import Base


class JobExecutionLog(Base):
    """Tracks when background jobs ran, how long they took and what they did."""

    __tablename__ = "job_execution_logs"

    id = Column(String(36), primary_key=True, index=True)

    job_name = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # success, failed

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    result_summary = Column(JSON, nullable=True)  # {evaluated: 40, resolved: 3}
    error_message = Column(Text, nullable=True)

    triggered_by = Column(String(50), default="scheduler", nullable=False)

    def __repr__(self):
        return f"<JobExecutionLog(id={self.id}, job={self.job_name}, status={self.status}, duration={self.duration_ms}ms)>"
