"""
SQLAlchemy model for the durable background job queue.

Two named queues share one table: 'data-fetch' (fetch-company jobs) and
'scraping' (scrape-portfolio jobs). Workers claim the oldest waiting row whose
available_at has passed; failed attempts are pushed back to waiting with a
later available_at until max_attempts is reached.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    JSON,
    Enum,
    Index,
    Float,
)

from app.core.models import Base


class QueueName(str, enum.Enum):
    DATA_FETCH = "data-fetch"
    SCRAPING = "scraping"


class QueueJobStatus(str, enum.Enum):
    """Lifecycle: waiting -> active -> completed | failed (or back to waiting on retry)."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueJobType(str, enum.Enum):
    """Known job types routed to executors."""

    FETCH_COMPANY = "fetch-company"
    SCRAPE_PORTFOLIO = "scrape-portfolio"


class BackoffType(str, enum.Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class JobQueue(Base):
    """
    One unit of background work.

    Terminal rows (completed/failed) are kept for inspection.
    """

    __tablename__ = "job_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)

    queue_name = Column(
        Enum(QueueName, native_enum=False, length=30,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    job_type = Column(
        Enum(QueueJobType, native_enum=False, length=30,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = Column(
        Enum(QueueJobStatus, native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=QueueJobStatus.WAITING,
        index=True,
    )

    # Everything the executor needs
    payload = Column(JSON, nullable=False, default=dict)

    # Retry policy
    attempts_made = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=1)
    backoff_type = Column(
        Enum(BackoffType, native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BackoffType.FIXED,
    )
    backoff_delay_ms = Column(Integer, nullable=False, default=0)
    timeout_ms = Column(Integer, nullable=True)  # hard limit per attempt
    available_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Worker assignment
    worker_id = Column(String(100), nullable=True)
    heartbeat_at = Column(DateTime, nullable=True)

    # Progress and outcome
    progress_pct = Column(Float, nullable=False, default=0.0)
    progress_message = Column(String(500), nullable=True)
    result = Column(JSON, nullable=True)
    failed_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_job_queue_claim", "queue_name", "status", "available_at"),
    )

    def __repr__(self):
        return (
            f"<JobQueue id={self.id} queue={self.queue_name} type={self.job_type} "
            f"status={self.status} attempts={self.attempts_made}/{self.max_attempts}>"
        )
