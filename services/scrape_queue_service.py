"""
Background scrape queue for registered listings.

Registration hands a job to this queue and returns immediately. A fixed pool
of asyncio workers runs the jobs; failed or crashed attempts are retried with
exponential backoff until max attempts is reached, then moved to history as
exhausted.

Job records live in Redis when available (persistent across restarts, pending
jobs are re-queued on start), otherwise in memory.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set
from enum import Enum

from models import ScrapeOutcome

logger = logging.getLogger(__name__)

ScrapeRunner = Callable[[int], Awaitable[ScrapeOutcome]]


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"  # Non-retryable failure
    EXHAUSTED = "exhausted"  # Max attempts reached, still failing


class ScrapeJob:
    """A single scrape job for one listing"""

    def __init__(self, listing_id: int, url: str, max_attempts: int = 3):
        self.id = str(uuid.uuid4())[:8]
        self.listing_id = listing_id
        self.url = url
        self.status = JobStatus.PENDING
        self.attempt_count = 0
        self.max_attempts = max_attempts
        self.created_at = datetime.utcnow().isoformat()
        self.last_attempt_at: Optional[str] = None
        self.next_retry_at: Optional[str] = None
        self.last_error: Optional[str] = None
        self.last_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "url": self.url,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at,
            "last_attempt_at": self.last_attempt_at,
            "next_retry_at": self.next_retry_at,
            "last_error": self.last_error,
            "last_message": self.last_message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScrapeJob":
        job = cls(
            listing_id=data["listing_id"],
            url=data["url"],
            max_attempts=data.get("max_attempts", 3),
        )
        job.id = data["id"]
        job.status = JobStatus(data.get("status", "pending"))
        job.attempt_count = data.get("attempt_count", 0)
        job.created_at = data.get("created_at", datetime.utcnow().isoformat())
        job.last_attempt_at = data.get("last_attempt_at")
        job.next_retry_at = data.get("next_retry_at")
        job.last_error = data.get("last_error")
        job.last_message = data.get("last_message")
        return job


class ScrapeQueueService:
    """
    Worker pool for background scrapes.

    Features:
    - Bounded concurrency (one browser session per running job)
    - Configurable max attempts with exponential backoff
    - Redis-backed (persistent) or in-memory (ephemeral) job records
    - Queue statistics and history of finished jobs
    """

    REDIS_KEY = "hotel_monitor:scrape_jobs"
    REDIS_HISTORY_KEY = "hotel_monitor:scrape_history"
    HISTORY_MAX = 200  # Keep last N finished jobs

    def __init__(
        self,
        runner: ScrapeRunner,
        redis_client=None,
        workers: int = 2,
        max_attempts: int = 3,
        backoff_base: float = 30.0,
    ):
        """
        Args:
            runner: Coroutine function scraping one listing id
            redis_client: Optional async Redis client for persistent job records
            workers: Number of concurrent workers
            max_attempts: Max attempts per job
            backoff_base: Base delay in seconds for exponential backoff
        """
        self._runner = runner
        self._redis = redis_client
        self._workers = max(1, workers)
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._jobs: Dict[str, ScrapeJob] = {}
        self._history: List[dict] = []
        self._worker_tasks: List[asyncio.Task] = []
        self._retry_tasks: Set[asyncio.Task] = set()

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    # ── Lifecycle ─────────────────────────────────────

    async def start(self):
        """Start the workers and re-queue unfinished jobs from storage"""
        if self._worker_tasks:
            return
        for job in await self._get_all_items():
            if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                job.status = JobStatus.PENDING
                self._jobs[job.id] = job
                await self._queue.put(job.id)
                logger.info(f"Scrape queue: resumed job {job.id} for listing {job.listing_id}")
        self._worker_tasks = [
            asyncio.create_task(self._worker(i), name=f"scrape-worker-{i}")
            for i in range(self._workers)
        ]
        logger.info(f"Scrape queue: started {self._workers} workers")

    async def stop(self):
        """Cancel workers and scheduled retries"""
        tasks = self._worker_tasks + list(self._retry_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker_tasks = []
        self._retry_tasks.clear()
        logger.info("Scrape queue: stopped")

    async def wait_idle(self):
        """Wait until the queue is drained and no retries are scheduled"""
        while True:
            await self._queue.join()
            if not self._retry_tasks:
                return
            await asyncio.gather(*list(self._retry_tasks), return_exceptions=True)

    # ── Queue Operations ──────────────────────────────

    async def enqueue(self, listing_id: int, url: str) -> ScrapeJob:
        """Add a scrape job for a listing"""
        job = ScrapeJob(listing_id=listing_id, url=url, max_attempts=self._max_attempts)
        self._jobs[job.id] = job
        await self._save_item(job)
        await self._queue.put(job.id)
        logger.info(f"Scrape queue: enqueued listing {listing_id} (job={job.id})")
        return job

    async def get_all(self) -> List[ScrapeJob]:
        """Get all unfinished jobs."""
        return await self._get_all_items()

    async def get_history(self) -> List[dict]:
        """Get finished jobs (history)."""
        if self.uses_redis:
            raw = await self._redis.lrange(self.REDIS_HISTORY_KEY, 0, -1)
            return [json.loads(r) for r in raw]
        return list(self._history)

    async def get_stats(self) -> dict:
        """Get queue statistics."""
        items = await self._get_all_items()
        history = await self.get_history()

        return {
            "queue_size": len(items),
            "pending": sum(1 for j in items if j.status == JobStatus.PENDING),
            "running": sum(1 for j in items if j.status == JobStatus.RUNNING),
            "history_size": len(history),
            "total_succeeded": sum(1 for h in history if h.get("status") == JobStatus.SUCCEEDED.value),
            "total_exhausted": sum(1 for h in history if h.get("status") == JobStatus.EXHAUSTED.value),
            "storage": "redis" if self.uses_redis else "in-memory",
            "max_attempts": self._max_attempts,
            "backoff_base_seconds": self._backoff_base,
            "workers": self._workers,
        }

    # ── Execution ─────────────────────────────────────

    async def _worker(self, index: int):
        while True:
            job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is not None:
                    await self._run_job(job)
            except Exception:
                logger.exception(f"Scrape worker {index}: unhandled error for job {job_id}")
            finally:
                self._queue.task_done()

    async def _run_job(self, job: ScrapeJob):
        job.status = JobStatus.RUNNING
        job.attempt_count += 1
        job.last_attempt_at = datetime.utcnow().isoformat()
        await self._save_item(job)

        logger.info(
            f"Scrape queue: listing {job.listing_id} "
            f"(attempt {job.attempt_count}/{job.max_attempts}, job={job.id})"
        )

        retryable = True
        try:
            outcome = await self._runner(job.listing_id)
            job.last_message = outcome.message
            if outcome.success:
                job.status = JobStatus.SUCCEEDED
                job.last_error = None
                await self._move_to_history(job)
                logger.info(f"Scrape queue: listing {job.listing_id} SUCCEEDED on attempt {job.attempt_count}")
                return
            job.last_error = outcome.message
            retryable = outcome.retryable
        except Exception as e:
            logger.exception(f"Scrape queue: job {job.id} for listing {job.listing_id} crashed")
            job.last_error = f"{type(e).__name__}: {e}"

        if not retryable:
            job.status = JobStatus.FAILED
            await self._move_to_history(job)
            logger.warning(f"Scrape queue: listing {job.listing_id} FAILED ({job.last_error})")
        elif job.attempt_count >= job.max_attempts:
            job.status = JobStatus.EXHAUSTED
            await self._move_to_history(job)
            logger.warning(
                f"Scrape queue: listing {job.listing_id} EXHAUSTED after {job.attempt_count} attempts"
            )
        else:
            delay = self._calculate_delay(job.attempt_count)
            job.status = JobStatus.PENDING
            job.next_retry_at = (datetime.utcnow() + timedelta(seconds=delay)).isoformat()
            await self._save_item(job)
            self._schedule_retry(job, delay)
            logger.info(f"Scrape queue: listing {job.listing_id} failed, next retry at {job.next_retry_at}")

    def _schedule_retry(self, job: ScrapeJob, delay: float):
        task = asyncio.create_task(self._requeue_later(job.id, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _requeue_later(self, job_id: str, delay: float):
        await asyncio.sleep(delay)
        await self._queue.put(job_id)

    # ── Internal Helpers ──────────────────────────────

    def _calculate_delay(self, attempt_count: int) -> float:
        """Exponential backoff: base * 2^(attempt - 1)"""
        return self._backoff_base * (2 ** max(attempt_count - 1, 0))

    async def _save_item(self, job: ScrapeJob):
        """Save a job to the record store."""
        if self.uses_redis:
            await self._redis.hset(self.REDIS_KEY, job.id, json.dumps(job.to_dict()))

    async def _get_all_items(self) -> List[ScrapeJob]:
        """Get all unfinished jobs from the record store."""
        if self.uses_redis:
            raw = await self._redis.hgetall(self.REDIS_KEY)
            return [ScrapeJob.from_dict(json.loads(v)) for v in raw.values()]
        return list(self._jobs.values())

    async def _move_to_history(self, job: ScrapeJob):
        """Move a finished job from the active set to history."""
        self._jobs.pop(job.id, None)
        history_entry = job.to_dict()
        history_entry["completed_at"] = datetime.utcnow().isoformat()

        if self.uses_redis:
            await self._redis.hdel(self.REDIS_KEY, job.id)
            await self._redis.lpush(self.REDIS_HISTORY_KEY, json.dumps(history_entry))
            await self._redis.ltrim(self.REDIS_HISTORY_KEY, 0, self.HISTORY_MAX - 1)
        else:
            self._history.insert(0, history_entry)
            self._history = self._history[: self.HISTORY_MAX]
