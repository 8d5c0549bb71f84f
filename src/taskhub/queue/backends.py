"""Job queue backends: in-memory (dev/tests) and Redis (production)."""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Optional
from uuid import UUID

import redis.asyncio as aioredis

from taskhub.config import QueueBackend, settings
from taskhub.models.enums import JobName, TaskStatus
from taskhub.models.task import StatusUpdateJob
from taskhub.queue.jobs import Job
from taskhub.utils.time import utc_now

logger = logging.getLogger(__name__)


class TaskQueue(ABC):
    """
    Abstract durable job queue.

    Delivery is at-least-once: a job is redelivered with exponential backoff
    until it is acked or exhausts ``max_attempts``, after which it moves to
    the dead-letter list (bounded by ``dead_letter_limit``).
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        dead_letter_limit: Optional[int] = None,
    ):
        self.max_attempts = max_attempts or settings.queue_job_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.queue_job_backoff_seconds
        )
        self.dead_letter_limit = dead_letter_limit or settings.queue_dead_letter_limit

    def _build_job(
        self,
        name: str,
        data: dict[str, Any],
        job_id: Optional[str],
        max_attempts: Optional[int],
        backoff_seconds: Optional[float],
    ) -> Job:
        fields: dict[str, Any] = {
            "name": name,
            "data": data,
            "max_attempts": max_attempts or self.max_attempts,
            "backoff_seconds": (
                backoff_seconds if backoff_seconds is not None else self.backoff_seconds
            ),
        }
        if job_id:
            fields["id"] = job_id
        return Job(**fields)

    @abstractmethod
    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        job_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ) -> bool:
        """
        Add a job to the queue.

        Returns False (and enqueues nothing) when ``job_id`` is already
        queued, delayed or in flight.
        """
        pass

    @abstractmethod
    async def dequeue(self, timeout: float = 1.0) -> Optional[Job]:
        """Wait up to ``timeout`` seconds for the next ready job."""
        pass

    @abstractmethod
    async def ack(self, job: Job) -> None:
        """Mark a delivered job as done."""
        pass

    @abstractmethod
    async def fail(self, job: Job, error: BaseException) -> bool:
        """
        Record a failed delivery.

        Returns True if the job was scheduled for redelivery, False if it was
        dead-lettered.
        """
        pass

    @abstractmethod
    async def dead_letters(self) -> list[Job]:
        """Failed jobs retained for inspection, newest first."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    async def enqueue_status_update(self, task_id: UUID | str, status: TaskStatus | str) -> None:
        """Queue a status-update notification for the worker."""
        payload = StatusUpdateJob(task_id=task_id, status=TaskStatus.parse(status))
        await self.enqueue(JobName.TASK_STATUS_UPDATE.value, payload.model_dump(mode="json"))


class InMemoryTaskQueue(TaskQueue):
    """
    Process-local queue.

    Good for development and tests. Not durable and not shared between
    processes.
    """

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self._ready: deque[Job] = deque()
        self._delayed: list[tuple[float, Job]] = []
        self._dead: deque[Job] = deque(maxlen=self.dead_letter_limit)
        self._job_ids: set[str] = set()
        self._available = asyncio.Event()

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        job_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ) -> bool:
        if job_id and job_id in self._job_ids:
            logger.debug(f"Job {job_id} already queued, skipping")
            return False

        job = self._build_job(name, data, job_id, max_attempts, backoff_seconds)
        self._job_ids.add(job.id)
        self._ready.append(job)
        self._available.set()
        return True

    def _promote_due(self) -> None:
        now = time.monotonic()
        due = [entry for entry in self._delayed if entry[0] <= now]
        if not due:
            return
        self._delayed = [entry for entry in self._delayed if entry[0] > now]
        for _, job in sorted(due, key=lambda entry: entry[0]):
            self._ready.append(job)

    def _seconds_until_next_delayed(self) -> Optional[float]:
        if not self._delayed:
            return None
        return max(0.0, min(entry[0] for entry in self._delayed) - time.monotonic())

    async def dequeue(self, timeout: float = 1.0) -> Optional[Job]:
        deadline = time.monotonic() + timeout
        while True:
            self._promote_due()
            if self._ready:
                return self._ready.popleft()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None

            next_delayed = self._seconds_until_next_delayed()
            wait_for = remaining if next_delayed is None else min(remaining, next_delayed)

            self._available.clear()
            try:
                await asyncio.wait_for(self._available.wait(), timeout=wait_for)
            except asyncio.TimeoutError:
                pass

    async def ack(self, job: Job) -> None:
        self._job_ids.discard(job.id)

    async def fail(self, job: Job, error: BaseException) -> bool:
        job.attempts_made += 1
        job.last_error = str(error)

        if job.exhausted:
            job.failed_at = utc_now()
            self._dead.appendleft(job)
            self._job_ids.discard(job.id)
            logger.error(
                f"Job {job.id} ({job.name}) dead-lettered after {job.attempts_made} attempts: {error}"
            )
            return False

        delay = job.next_backoff()
        self._delayed.append((time.monotonic() + delay, job))
        self._available.set()
        logger.warning(
            f"Job {job.id} ({job.name}) failed attempt {job.attempts_made}/"
            f"{job.max_attempts}, redelivering in {delay}s"
        )
        return True

    async def dead_letters(self) -> list[Job]:
        return list(self._dead)

    def clear(self) -> None:
        """Drop every waiting job and dedup marker."""
        self._ready.clear()
        self._delayed.clear()
        self._job_ids.clear()

    def pending(self) -> list[Job]:
        """Jobs waiting for delivery (ready first, then delayed)."""
        return list(self._ready) + [job for _, job in sorted(self._delayed, key=lambda e: e[0])]


class RedisTaskQueue(TaskQueue):
    """
    Redis-backed queue.

    Layout under ``<namespace>``:
    - ``:ready`` list of job payloads (LPUSH / BLMOVE from the right)
    - ``:processing`` list of payloads handed to a consumer and not yet settled
    - ``:leases`` sorted set of processing payloads scored by lease expiry
    - ``:delayed`` sorted set scored by redelivery unix time
    - ``:dead`` list trimmed to ``dead_letter_limit``
    - ``:job:<id>`` dedup markers for explicit job ids, expiring after
      ``dedup_ttl`` seconds

    A consumer that dies before ack or fail leaves its payload in
    ``:processing``; once the lease expires the next dequeue moves it back
    to ``:ready``.
    """

    def __init__(
        self,
        redis_url: str,
        namespace: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
        visibility_timeout: Optional[float] = None,
        dedup_ttl: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.redis = client or aioredis.from_url(redis_url, decode_responses=True)
        self.namespace = namespace or settings.queue_name
        self.visibility_timeout = visibility_timeout or settings.queue_visibility_timeout_seconds
        self.dedup_ttl = dedup_ttl or settings.queue_dedup_ttl_seconds
        # Raw payloads this instance delivered, keyed by job id, for LREM on settle
        self._in_flight: dict[str, str] = {}
        logger.info(f"Redis task queue initialized: {self.namespace}")

    def _key(self, suffix: str) -> str:
        return f"{self.namespace}:{suffix}"

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        job_id: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ) -> bool:
        job = self._build_job(name, data, job_id, max_attempts, backoff_seconds)

        if job_id:
            claimed = await self.redis.set(
                self._key(f"job:{job.id}"), "1", nx=True, ex=self.dedup_ttl
            )
            if not claimed:
                logger.debug(f"Job {job_id} already queued, skipping")
                return False

        await self.redis.lpush(self._key("ready"), job.model_dump_json())
        return True

    async def _promote_due(self) -> None:
        now = time.time()

        due = await self.redis.zrangebyscore(self._key("delayed"), 0, now)
        for payload in due:
            # Only the instance that wins the ZREM moves the job
            if await self.redis.zrem(self._key("delayed"), payload):
                await self.redis.lpush(self._key("ready"), payload)

        expired = await self.redis.zrangebyscore(self._key("leases"), 0, now)
        for payload in expired:
            if await self.redis.zrem(self._key("leases"), payload):
                await self.redis.lrem(self._key("processing"), 1, payload)
                await self.redis.lpush(self._key("ready"), payload)
                logger.warning(f"Lease expired, requeued job: {payload[:120]}")

    async def dequeue(self, timeout: float = 1.0) -> Optional[Job]:
        await self._promote_due()
        payload = await self.redis.blmove(
            self._key("ready"),
            self._key("processing"),
            max(1, math.ceil(timeout)),
            src="RIGHT",
            dest="LEFT",
        )
        if payload is None:
            return None

        await self.redis.zadd(
            self._key("leases"), {payload: time.time() + self.visibility_timeout}
        )
        job = Job.model_validate_json(payload)
        self._in_flight[job.id] = payload
        return job

    def _release(self, pipe: Any, job: Job) -> None:
        """Queue removal of the delivered payload from processing and leases."""
        payload = self._in_flight.pop(job.id, None)
        if payload is not None:
            pipe.lrem(self._key("processing"), 1, payload)
            pipe.zrem(self._key("leases"), payload)

    async def ack(self, job: Job) -> None:
        pipe = self.redis.pipeline()
        self._release(pipe, job)
        pipe.delete(self._key(f"job:{job.id}"))
        await pipe.execute()

    async def fail(self, job: Job, error: BaseException) -> bool:
        job.attempts_made += 1
        job.last_error = str(error)

        pipe = self.redis.pipeline()
        self._release(pipe, job)

        if job.exhausted:
            job.failed_at = utc_now()
            pipe.lpush(self._key("dead"), job.model_dump_json())
            pipe.ltrim(self._key("dead"), 0, self.dead_letter_limit - 1)
            pipe.delete(self._key(f"job:{job.id}"))
            await pipe.execute()
            logger.error(
                f"Job {job.id} ({job.name}) dead-lettered after {job.attempts_made} attempts: {error}"
            )
            return False

        delay = job.next_backoff()
        pipe.zadd(self._key("delayed"), {job.model_dump_json(): time.time() + delay})
        await pipe.execute()
        logger.warning(
            f"Job {job.id} ({job.name}) failed attempt {job.attempts_made}/"
            f"{job.max_attempts}, redelivering in {delay}s"
        )
        return True

    async def dead_letters(self) -> list[Job]:
        payloads = await self.redis.lrange(self._key("dead"), 0, -1)
        return [Job.model_validate_json(p) for p in payloads]

    async def close(self) -> None:
        await self.redis.aclose()


# Process-wide queue handle
_task_queue: Optional[TaskQueue] = None


def _build_default_queue() -> TaskQueue:
    if settings.queue_backend == QueueBackend.REDIS:
        if not settings.redis_url:
            raise ValueError("redis_url required for redis queue backend")
        return RedisTaskQueue(settings.redis_url)
    logger.info("Using in-memory task queue (dev only)")
    return InMemoryTaskQueue()


def get_task_queue() -> TaskQueue:
    """Get or create the task queue singleton."""
    global _task_queue
    if _task_queue is None:
        _task_queue = _build_default_queue()
    return _task_queue


def init_task_queue(queue: Optional[TaskQueue] = None) -> TaskQueue:
    """Install the process-wide queue (explicit instance or from settings)."""
    global _task_queue
    _task_queue = queue or _build_default_queue()
    return _task_queue


async def close_task_queue() -> None:
    """Close and forget the process-wide queue."""
    global _task_queue
    if _task_queue is not None:
        await _task_queue.close()
    _task_queue = None
