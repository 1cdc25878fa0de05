"""Out-of-band retry of failed outbound operations"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SYNC_OPERATION = "sync"
REMOVE_OPERATION = "remove"

TASK_NAMES = {
    SYNC_OPERATION: "sync_appointment_task",
    REMOVE_OPERATION: "remove_appointment_task",
}


class RetryJob(ABC):
    """A deferred background task; `job_id` must be deterministic so duplicates collapse"""

    @property
    @abstractmethod
    def task_name(self) -> str: ...

    @property
    @abstractmethod
    def job_id(self) -> str: ...

    @abstractmethod
    def task_args(self) -> tuple: ...

    @abstractmethod
    def task_kwargs(self) -> dict: ...


@dataclass(frozen=True)
class SyncJob(RetryJob):
    operation: str  # sync | remove
    salon_id: str
    appointment_id: str
    provider: str
    attempt: int

    @property
    def task_name(self) -> str:
        return TASK_NAMES[self.operation]

    @property
    def job_id(self) -> str:
        return f"{self.operation}:{self.salon_id}:{self.appointment_id}:{self.provider}:{self.attempt}"

    def task_args(self) -> tuple:
        return (self.salon_id, self.appointment_id)

    def task_kwargs(self) -> dict:
        return {"providers": [self.provider], "attempt": self.attempt}


class RetryQueue(ABC):
    @abstractmethod
    async def schedule(self, job: RetryJob, delay_seconds: int) -> None: ...


class ArqRetryQueue(RetryQueue):
    """Defers jobs on the arq worker"""

    def __init__(self, redis):
        self._redis = redis

    async def schedule(self, job: RetryJob, delay_seconds: int) -> None:
        queued = await self._redis.enqueue_job(
            job.task_name,
            *job.task_args(),
            _job_id=job.job_id,
            _defer_by=delay_seconds,
            **job.task_kwargs(),
        )
        if queued is None:
            logger.info(f"ℹ️ Retry {job.job_id} already queued")
        else:
            logger.info(f"🔄 Retry {job.job_id} scheduled in {delay_seconds}s")


class InMemoryRetryQueue(RetryQueue):
    """Keeps jobs in memory; used when no Redis is configured and in tests"""

    def __init__(self):
        self.jobs: dict[str, tuple[RetryJob, int]] = {}

    async def schedule(self, job: RetryJob, delay_seconds: int) -> None:
        if job.job_id in self.jobs:
            return
        self.jobs[job.job_id] = (job, delay_seconds)
        logger.warning(f"⚠️ Retry {job.job_id} kept in memory (no background worker configured)")
