"""
Worker process entrypoint.

Polls the data-fetch and scraping queues in job_queue, claims the oldest
runnable job and routes it to its executor. Failed attempts go back on the
queue with backoff until the job's attempts are exhausted.

Usage:
    python -m app.worker.main

Env vars:
    DATABASE_URL         - Record store
    WORKER_POLL_INTERVAL - Seconds between polls (default 2.0)
"""
import asyncio
import logging
import signal
import socket
import time
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_session_factory
from app.core.job_queue_service import (
    claim_next_job,
    complete_job,
    fail_job,
    reset_stale_jobs,
)
from app.core.models_queue import JobQueue, QueueJobStatus, QueueJobType
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger("worker")

HEARTBEAT_INTERVAL = 30  # seconds
STALE_CHECK_INTERVAL = 60  # seconds
WORKER_ID = f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"

# Graceful shutdown flag
_shutdown = asyncio.Event()


def _handle_signal(signum, frame):
    """Handle SIGTERM/SIGINT for graceful shutdown."""
    logger.info(f"Received signal {signum}, shutting down gracefully...")
    _shutdown.set()


# ---------------------------------------------------------------------------
# Executor registry
# ---------------------------------------------------------------------------

Executor = Callable[..., Awaitable[Optional[dict]]]
EXECUTORS: Dict[QueueJobType, Executor] = {}


def _load_executors():
    """Import executor modules to populate EXECUTORS dict."""
    from app.worker.executors.fetch_company import execute as fetch_company_exec
    from app.worker.executors.scrape_portfolio import execute as scrape_portfolio_exec

    EXECUTORS.update({
        QueueJobType.FETCH_COMPANY: fetch_company_exec,
        QueueJobType.SCRAPE_PORTFOLIO: scrape_portfolio_exec,
    })


# ---------------------------------------------------------------------------
# Core loop
# ---------------------------------------------------------------------------


async def _heartbeat_loop(db_factory, job_id: int):
    """Periodically update heartbeat_at while a job is executing."""
    while True:
        await asyncio.sleep(HEARTBEAT_INTERVAL)
        session = db_factory()
        try:
            session.query(JobQueue).filter(JobQueue.id == job_id).update(
                {JobQueue.heartbeat_at: datetime.utcnow()}
            )
            session.commit()
        except Exception as e:
            logger.warning(f"Heartbeat for job {job_id} failed: {e}")
            session.rollback()
        finally:
            session.close()


async def execute_job(
    job: JobQueue,
    db: Session,
    providers: Optional[ProviderClients] = None,
    db_factory=None,
) -> QueueJobStatus:
    """
    Run one claimed job and settle it.

    Returns the job's status afterwards: completed, failed, or waiting when
    the attempt failed but the job will be retried.
    """
    executor = EXECUTORS.get(job.job_type)

    if executor is None:
        error = f"No executor registered for job_type={job.job_type}"
        logger.error(error)
        job.attempts_made = job.max_attempts
        fail_job(db, job, error)
        return job.status

    heartbeat_task = None
    if db_factory is not None:
        heartbeat_task = asyncio.create_task(_heartbeat_loop(db_factory, job.id))

    try:
        run = executor(job, db, providers)
        if job.timeout_ms:
            result = await asyncio.wait_for(run, timeout=job.timeout_ms / 1000)
        else:
            result = await run

        complete_job(db, job, result)
        logger.info(f"Job {job.id} ({job.job_type.value}) completed successfully")

    except asyncio.TimeoutError:
        logger.error(f"Job {job.id} ({job.job_type.value}) timed out after {job.timeout_ms}ms")
        db.rollback()
        job = db.get(JobQueue, job.id)
        fail_job(db, job, f"Job timed out after {job.timeout_ms}ms")

    except Exception as e:
        logger.error(f"Job {job.id} ({job.job_type.value}) failed: {e}", exc_info=True)

        # Executor may have left the session dirty
        db.rollback()
        job = db.get(JobQueue, job.id)
        fail_job(db, job, str(e) or e.__class__.__name__)

    finally:
        if heartbeat_task is not None:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass

    return job.status


async def poll_loop():
    """Main poll loop: claim -> execute -> repeat."""
    _load_executors()

    settings = get_settings()
    poll_interval = settings.worker_poll_interval
    SessionLocal = get_session_factory()
    providers = get_provider_clients()
    last_stale_check = 0.0

    logger.info(f"Worker {WORKER_ID} starting poll loop (interval={poll_interval}s)")

    while not _shutdown.is_set():
        if time.monotonic() - last_stale_check > STALE_CHECK_INTERVAL:
            reset_stale_jobs()
            last_stale_check = time.monotonic()

        db = SessionLocal()
        try:
            job = claim_next_job(db, WORKER_ID)
            if job:
                logger.info(
                    f"Claimed job {job.id} (queue={job.queue_name.value}, type={job.job_type.value}, "
                    f"attempt={job.attempts_made}/{job.max_attempts})"
                )
                await execute_job(job, db, providers, SessionLocal)
            else:
                # No jobs available, wait before polling again
                try:
                    await asyncio.wait_for(_shutdown.wait(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    pass
        except Exception as e:
            logger.error(f"Poll loop error: {e}", exc_info=True)
            await asyncio.sleep(poll_interval)
        finally:
            db.close()

    await providers.close()
    logger.info(f"Worker {WORKER_ID} shut down cleanly")


def main():
    """Entrypoint for python -m app.worker.main."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    # Worker might start before the API
    from app.core.database import create_tables
    create_tables()

    asyncio.run(poll_loop())


if __name__ == "__main__":
    main()
