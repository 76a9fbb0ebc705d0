"""
Unit tests for the job queue (app/core/job_queue_service.py) and the worker's
job execution (app/worker/main.py).
"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core import job_queue_service as jobs
from app.core.models import ScrapingJob, ScrapingJobStatus
from app.core.models_queue import (
    BackoffType,
    JobQueue,
    QueueJobStatus,
    QueueJobType,
    QueueName,
)
from app.worker import main as worker
from app.worker.executors import scrape_portfolio


# =============================================================================
# Enqueue and inspect
# =============================================================================


class TestEnqueue:

    def test_company_fetch_policy(self, test_db):
        job = jobs.enqueue_company_data_fetch(test_db, 7, "ABNB")

        assert job.queue_name == QueueName.DATA_FETCH
        assert job.job_type == QueueJobType.FETCH_COMPANY
        assert job.status == QueueJobStatus.WAITING
        assert job.max_attempts == 3
        assert job.backoff_type == BackoffType.EXPONENTIAL
        assert job.backoff_delay_ms == 2000
        assert job.timeout_ms is None
        assert job.payload == {"company_id": 7, "ticker": "ABNB"}

    def test_portfolio_scraping_policy(self, test_db):
        job = jobs.enqueue_portfolio_scraping(test_db, 3, "https://www.benchmark.com/companies", "Benchmark")

        assert job.queue_name == QueueName.SCRAPING
        assert job.max_attempts == 2
        assert job.backoff_type == BackoffType.FIXED
        assert job.backoff_delay_ms == 5000
        assert job.timeout_ms == 60000
        assert job.payload["investor_name"] == "Benchmark"

    def test_summary(self, test_db):
        job = jobs.enqueue_company_data_fetch(test_db, 1)
        assert jobs.queued_job_summary(job) == {"job_id": job.id, "queue": "data-fetch", "status": "waiting"}

    def test_job_status(self, test_db):
        job = jobs.enqueue_company_data_fetch(test_db, 1)
        status = jobs.get_job_status(test_db, job.id, "data-fetch")

        assert status["status"] == "waiting"
        assert status["type"] == "fetch-company"
        assert status["progress"] == 0.0
        assert status["data"] == {"company_id": 1, "ticker": None}

    def test_job_status_wrong_queue_is_not_found(self, test_db):
        job = jobs.enqueue_company_data_fetch(test_db, 1)
        assert jobs.get_job_status(test_db, job.id, QueueName.SCRAPING) == {"status": "not_found"}
        assert jobs.get_job_status(test_db, 999, QueueName.DATA_FETCH) == {"status": "not_found"}

    def test_unknown_queue_name(self, test_db):
        with pytest.raises(ValueError):
            jobs.get_queue_stats(test_db, "emails")

    def test_queue_stats(self, test_db):
        jobs.enqueue_company_data_fetch(test_db, 1)
        jobs.enqueue_company_data_fetch(test_db, 2)
        jobs.enqueue_portfolio_scraping(test_db, 1, "https://a16z.com/portfolio/")
        claimed = jobs.claim_next_job(test_db, "w1", [QueueName.DATA_FETCH])
        jobs.complete_job(test_db, claimed, {"ok": True})

        assert jobs.get_queue_stats(test_db, "data-fetch") == {
            "waiting": 1, "active": 0, "completed": 1, "failed": 0,
        }
        assert jobs.get_queue_stats(test_db, QueueName.SCRAPING)["waiting"] == 1


# =============================================================================
# Claim, settle, retry
# =============================================================================


class TestLifecycle:

    def test_claim_oldest_first(self, test_db):
        first = jobs.enqueue_company_data_fetch(test_db, 1)
        jobs.enqueue_company_data_fetch(test_db, 2)

        job = jobs.claim_next_job(test_db, "worker-a")

        assert job.id == first.id
        assert job.status == QueueJobStatus.ACTIVE
        assert job.worker_id == "worker-a"
        assert job.attempts_made == 1
        assert job.started_at is not None

    def test_claim_respects_queue_filter(self, test_db):
        jobs.enqueue_company_data_fetch(test_db, 1)
        assert jobs.claim_next_job(test_db, "w", [QueueName.SCRAPING]) is None

    def test_claim_skips_jobs_in_backoff(self, test_db):
        job = jobs.enqueue_company_data_fetch(test_db, 1)
        job.available_at = datetime.utcnow() + timedelta(minutes=5)
        test_db.commit()
        assert jobs.claim_next_job(test_db, "w") is None

    def test_progress_and_complete(self, test_db):
        jobs.enqueue_company_data_fetch(test_db, 1)
        job = jobs.claim_next_job(test_db, "w")
        jobs.update_progress(test_db, job, 50, "halfway")
        assert jobs.get_job_status(test_db, job.id, "data-fetch")["progress_message"] == "halfway"

        jobs.complete_job(test_db, job, {"success": True})
        status = jobs.get_job_status(test_db, job.id, "data-fetch")
        assert status["status"] == "completed"
        assert status["progress"] == 100.0
        assert status["result"] == {"success": True}

    def test_fail_retries_then_fails(self, test_db):
        jobs.enqueue_portfolio_scraping(test_db, 1, "https://x.vc")

        job = jobs.claim_next_job(test_db, "w")
        assert jobs.fail_job(test_db, job, "boom") is True
        assert job.status == QueueJobStatus.WAITING
        assert job.available_at > datetime.utcnow() + timedelta(seconds=4)

        job.available_at = datetime.utcnow() - timedelta(seconds=1)
        test_db.commit()
        job = jobs.claim_next_job(test_db, "w")
        assert job.attempts_made == 2
        assert jobs.fail_job(test_db, job, "boom again") is False
        assert job.status == QueueJobStatus.FAILED
        assert job.failed_reason == "boom again"
        assert job.completed_at is not None

    @pytest.mark.parametrize("backoff,attempts,expected", [
        (BackoffType.FIXED, 1, 5000),
        (BackoffType.FIXED, 3, 5000),
        (BackoffType.EXPONENTIAL, 1, 2000),
        (BackoffType.EXPONENTIAL, 2, 4000),
        (BackoffType.EXPONENTIAL, 3, 8000),
    ])
    def test_backoff(self, backoff, attempts, expected):
        delay = 5000 if backoff == BackoffType.FIXED else 2000
        assert jobs.compute_backoff_ms(backoff, delay, attempts) == expected

    def test_reset_stale_jobs(self, test_db):
        jobs.enqueue_company_data_fetch(test_db, 1)
        jobs.enqueue_company_data_fetch(test_db, 2)
        stale = jobs.claim_next_job(test_db, "dead-worker")
        alive = jobs.claim_next_job(test_db, "live-worker")
        stale.heartbeat_at = datetime.utcnow() - timedelta(minutes=10)
        test_db.commit()

        assert jobs.reset_stale_jobs(test_db) == 1
        test_db.refresh(stale)
        test_db.refresh(alive)
        assert stale.status == QueueJobStatus.WAITING
        assert stale.worker_id is None
        assert alive.status == QueueJobStatus.ACTIVE


# =============================================================================
# Worker execution
# =============================================================================


@pytest.fixture
def executors():
    saved = dict(worker.EXECUTORS)
    worker.EXECUTORS.clear()
    yield worker.EXECUTORS
    worker.EXECUTORS.clear()
    worker.EXECUTORS.update(saved)


class TestExecuteJob:

    @pytest.mark.asyncio
    async def test_success(self, test_db, mock_providers, executors):
        executors[QueueJobType.FETCH_COMPANY] = AsyncMock(return_value={"success": True})
        jobs.enqueue_company_data_fetch(test_db, 1)
        job = jobs.claim_next_job(test_db, "w")

        status = await worker.execute_job(job, test_db, mock_providers)

        assert status == QueueJobStatus.COMPLETED
        executors[QueueJobType.FETCH_COMPANY].assert_awaited_once_with(job, test_db, mock_providers)
        assert jobs.get_job_status(test_db, job.id, "data-fetch")["result"] == {"success": True}

    @pytest.mark.asyncio
    async def test_failure_goes_back_with_backoff(self, test_db, mock_providers, executors):
        executors[QueueJobType.FETCH_COMPANY] = AsyncMock(side_effect=RuntimeError("yahoo down"))
        created = jobs.enqueue_company_data_fetch(test_db, 1)
        job = jobs.claim_next_job(test_db, "w")

        status = await worker.execute_job(job, test_db, mock_providers)

        assert status == QueueJobStatus.WAITING
        stored = test_db.get(JobQueue, created.id)
        assert stored.failed_reason == "yahoo down"
        assert stored.available_at > datetime.utcnow() + timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_last_attempt_fails_job(self, test_db, mock_providers, executors):
        executors[QueueJobType.SCRAPE_PORTFOLIO] = AsyncMock(side_effect=RuntimeError("blocked"))
        jobs.enqueue_portfolio_scraping(test_db, 1, "https://x.vc")
        job = jobs.claim_next_job(test_db, "w")
        job.attempts_made = job.max_attempts
        test_db.commit()

        assert await worker.execute_job(job, test_db, mock_providers) == QueueJobStatus.FAILED

    @pytest.mark.asyncio
    async def test_timeout(self, test_db, mock_providers, executors):
        async def hang(job, db, providers):
            await asyncio.sleep(5)

        executors[QueueJobType.SCRAPE_PORTFOLIO] = hang
        created = jobs.enqueue_portfolio_scraping(test_db, 1, "https://x.vc")
        job = jobs.claim_next_job(test_db, "w")
        job.timeout_ms = 50
        test_db.commit()

        status = await worker.execute_job(job, test_db, mock_providers)

        assert status == QueueJobStatus.WAITING
        assert test_db.get(JobQueue, created.id).failed_reason == "Job timed out after 50ms"

    @pytest.mark.asyncio
    async def test_timed_out_scrape_settles_its_tracking_record(
        self, test_db, mock_providers, executors, sample_investor
    ):
        async def slow_scrape(target):
            await asyncio.sleep(5)

        mock_providers.scraper.scrape_portfolio.side_effect = slow_scrape
        executors[QueueJobType.SCRAPE_PORTFOLIO] = scrape_portfolio.execute
        jobs.enqueue_portfolio_scraping(test_db, sample_investor.id, "https://x.vc")
        job = jobs.claim_next_job(test_db, "w")
        job.timeout_ms = 100
        test_db.commit()

        status = await worker.execute_job(job, test_db, mock_providers)

        assert status == QueueJobStatus.WAITING
        record = test_db.query(ScrapingJob).one()
        assert record.status == ScrapingJobStatus.FAILED
        assert record.error
        assert record.completed_at is not None

    @pytest.mark.asyncio
    async def test_unknown_job_type_fails_immediately(self, test_db, mock_providers, executors):
        jobs.enqueue_company_data_fetch(test_db, 1)
        job = jobs.claim_next_job(test_db, "w")

        status = await worker.execute_job(job, test_db, mock_providers)

        assert status == QueueJobStatus.FAILED
        assert "No executor registered" in job.failed_reason

    def test_load_executors(self, executors):
        worker._load_executors()
        assert set(executors) == {QueueJobType.FETCH_COMPANY, QueueJobType.SCRAPE_PORTFOLIO}

    @pytest.mark.asyncio
    async def test_heartbeat_updates_row(self, test_db, executors):
        jobs.enqueue_company_data_fetch(test_db, 1)
        job = jobs.claim_next_job(test_db, "w")
        job.heartbeat_at = datetime(2000, 1, 1)
        test_db.commit()

        real_sleep = asyncio.sleep
        calls = []

        async def fast_sleep(seconds):
            calls.append(seconds)
            if len(calls) > 1:
                raise asyncio.CancelledError()
            await real_sleep(0)

        # the loop closes the sessions it opens, so hand it throwaway wrappers
        class NoClose:
            def __getattr__(self, name):
                return getattr(test_db, name)

            def close(self):
                pass

        with patch("app.worker.main.asyncio.sleep", side_effect=fast_sleep):
            with pytest.raises(asyncio.CancelledError):
                await worker._heartbeat_loop(NoClose, job.id)

        test_db.refresh(job)
        assert job.heartbeat_at.year > 2000
        assert calls[0] == worker.HEARTBEAT_INTERVAL
