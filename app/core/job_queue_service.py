"""
Job queue service.

Two named queues live in the job_queue table:

    data-fetch  fetch-company jobs     3 attempts, exponential backoff from 2s
    scraping    scrape-portfolio jobs  2 attempts, fixed 5s backoff, 60s timeout

API handlers enqueue; the worker (app/worker/main.py) claims, runs and
settles jobs through the functions below.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.models_queue import (
    BackoffType,
    JobQueue,
    QueueJobStatus,
    QueueJobType,
    QueueName,
)

logger = logging.getLogger(__name__)

JOB_POLICIES = {
    QueueJobType.FETCH_COMPANY: {
        "queue_name": QueueName.DATA_FETCH,
        "max_attempts": 3,
        "backoff_type": BackoffType.EXPONENTIAL,
        "backoff_delay_ms": 2000,
        "timeout_ms": None,
    },
    QueueJobType.SCRAPE_PORTFOLIO: {
        "queue_name": QueueName.SCRAPING,
        "max_attempts": 2,
        "backoff_type": BackoffType.FIXED,
        "backoff_delay_ms": 5000,
        "timeout_ms": 60000,
    },
}


def _enqueue(db: Session, job_type: QueueJobType, payload: Dict[str, Any]) -> JobQueue:
    policy = JOB_POLICIES[job_type]
    job = JobQueue(
        job_type=job_type,
        status=QueueJobStatus.WAITING,
        payload=payload,
        available_at=datetime.utcnow(),
        **policy,
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    logger.info(f"Job queued: id={job.id} queue={policy['queue_name'].value} type={job_type.value}")
    return job


def enqueue_company_data_fetch(db: Session, company_id: int, ticker: Optional[str] = None) -> JobQueue:
    """Queue a fetch-company job on the data-fetch queue."""
    logger.info(f"Enqueuing company data fetch for: {company_id}")
    return _enqueue(
        db, QueueJobType.FETCH_COMPANY, {"company_id": company_id, "ticker": ticker}
    )


def enqueue_portfolio_scraping(
    db: Session,
    investor_id: int,
    url: str,
    investor_name: Optional[str] = None,
) -> JobQueue:
    """Queue a scrape-portfolio job on the scraping queue."""
    logger.info(f"Enqueuing portfolio scraping for: {investor_name or investor_id}")
    return _enqueue(
        db,
        QueueJobType.SCRAPE_PORTFOLIO,
        {"investor_id": investor_id, "url": url, "investor_name": investor_name},
    )


def queued_job_summary(job: JobQueue) -> Dict[str, Any]:
    """Short acknowledgement returned to callers that just queued a job."""
    return {"job_id": job.id, "queue": job.queue_name.value, "status": job.status.value}


def get_job_status(db: Session, job_id: int, queue_name: Union[QueueName, str]) -> Dict[str, Any]:
    """
    State, progress, payload, result and failure reason of one job.

    A job that does not exist on the named queue reports {"status": "not_found"}.
    """
    queue = QueueName(queue_name)
    job = (
        db.query(JobQueue)
        .filter(JobQueue.id == job_id, JobQueue.queue_name == queue)
        .first()
    )
    if job is None:
        return {"status": "not_found"}

    return {
        "id": job.id,
        "queue": queue.value,
        "type": job.job_type.value,
        "status": job.status.value,
        "progress": job.progress_pct,
        "progress_message": job.progress_message,
        "data": job.payload,
        "result": job.result,
        "failed_reason": job.failed_reason,
        "attempts_made": job.attempts_made,
    }


def get_queue_stats(db: Session, queue_name: Union[QueueName, str]) -> Dict[str, int]:
    """Counts of waiting, active, completed and failed jobs on one queue."""
    queue = QueueName(queue_name)
    rows = (
        db.query(JobQueue.status, func.count(JobQueue.id))
        .filter(JobQueue.queue_name == queue)
        .group_by(JobQueue.status)
        .all()
    )
    counts = {status.value: 0 for status in QueueJobStatus}
    for status, count in rows:
        counts[QueueJobStatus(status).value] = count
    return counts


def claim_next_job(
    db: Session,
    worker_id: str,
    queue_names: Optional[List[QueueName]] = None,
) -> Optional[JobQueue]:
    """
    Claim the oldest waiting job whose backoff has elapsed.

    Uses SELECT ... FOR UPDATE SKIP LOCKED where the database supports it so
    several workers can poll the same table.
    """
    queues = queue_names or list(QueueName)
    now = datetime.utcnow()
    job = (
        db.query(JobQueue)
        .filter(
            JobQueue.queue_name.in_(queues),
            JobQueue.status == QueueJobStatus.WAITING,
            JobQueue.available_at <= now,
        )
        .order_by(JobQueue.available_at.asc(), JobQueue.id.asc())
        .with_for_update(skip_locked=True)
        .first()
    )
    if job is None:
        db.commit()
        return None

    job.status = QueueJobStatus.ACTIVE
    job.worker_id = worker_id
    job.attempts_made = (job.attempts_made or 0) + 1
    job.started_at = now
    job.heartbeat_at = now
    job.progress_pct = 0.0
    job.progress_message = None
    db.commit()
    db.refresh(job)
    return job


def update_progress(db: Session, job: JobQueue, pct: float, message: Optional[str] = None) -> None:
    job.progress_pct = float(pct)
    if message is not None:
        job.progress_message = message
    job.heartbeat_at = datetime.utcnow()
    db.commit()


def complete_job(db: Session, job: JobQueue, result: Optional[Any] = None) -> None:
    job.status = QueueJobStatus.COMPLETED
    job.result = result
    job.failed_reason = None
    job.progress_pct = 100.0
    job.completed_at = datetime.utcnow()
    db.commit()


def compute_backoff_ms(backoff_type: BackoffType, delay_ms: int, attempts_made: int) -> int:
    """
    Delay before the next attempt.

    Fixed backoff waits delay_ms every time; exponential doubles it per
    attempt already made (2s, 4s, 8s, ...).
    """
    if BackoffType(backoff_type) == BackoffType.EXPONENTIAL:
        return int(delay_ms * 2 ** max(attempts_made - 1, 0))
    return int(delay_ms)


def fail_job(db: Session, job: JobQueue, reason: str) -> bool:
    """
    Record a failed attempt.

    Returns True when the job was put back on its queue for another attempt,
    False when its attempts are exhausted and it is now failed.
    """
    job.failed_reason = reason[:2000]
    job.worker_id = None

    if job.attempts_made < job.max_attempts:
        delay_ms = compute_backoff_ms(job.backoff_type, job.backoff_delay_ms, job.attempts_made)
        job.status = QueueJobStatus.WAITING
        job.available_at = datetime.utcnow() + timedelta(milliseconds=delay_ms)
        db.commit()
        logger.warning(
            f"Job {job.id} attempt {job.attempts_made}/{job.max_attempts} failed, "
            f"retrying in {delay_ms}ms: {reason}"
        )
        return True

    job.status = QueueJobStatus.FAILED
    job.completed_at = datetime.utcnow()
    db.commit()
    logger.error(f"Job {job.id} failed after {job.attempts_made} attempt(s): {reason}")
    return False


def reset_stale_jobs(db: Optional[Session] = None, max_age_minutes: int = 2) -> int:
    """
    Put active jobs whose heartbeat has gone quiet back on their queue.

    Lets another worker pick up a job whose worker died mid-run.

    Returns:
        Number of jobs reset
    """
    owns_session = db is None
    if owns_session:
        from app.core.database import get_session_factory
        db = get_session_factory()()

    try:
        cutoff = datetime.utcnow() - timedelta(minutes=max_age_minutes)
        stale = (
            db.query(JobQueue)
            .filter(
                JobQueue.status == QueueJobStatus.ACTIVE,
                JobQueue.heartbeat_at < cutoff,
            )
            .all()
        )

        for job in stale:
            logger.warning(
                f"Resetting stale job {job.id} (worker={job.worker_id}, "
                f"last heartbeat={job.heartbeat_at})"
            )
            job.status = QueueJobStatus.WAITING
            job.worker_id = None
            job.heartbeat_at = None
            job.available_at = datetime.utcnow()

        if stale:
            db.commit()
            logger.info(f"Reset {len(stale)} stale job(s) back to waiting")

        return len(stale)
    except Exception as e:
        logger.error(f"Error resetting stale jobs: {e}")
        db.rollback()
        return 0
    finally:
        if owns_session:
            db.close()
