"""
Sync triggers - how use cases hand work to the orchestrator after a local write

Triggering never raises into the caller: the booking outcome depends only
on the local store.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from .orchestrator import SyncOrchestrator
from .retry import REMOVE_OPERATION, SYNC_OPERATION, TASK_NAMES

logger = logging.getLogger(__name__)


class SyncTrigger(ABC):
    @abstractmethod
    async def appointment_changed(self, salon_id: str, appointment_id: str) -> None: ...

    @abstractmethod
    async def appointment_cancelled(self, salon_id: str, appointment_id: str) -> None: ...


class BackgroundSyncTrigger(SyncTrigger):
    """Runs the orchestrator as fire-and-forget tasks in the current event loop"""

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self._tasks: set[asyncio.Task] = set()

    async def appointment_changed(self, salon_id: str, appointment_id: str) -> None:
        self._spawn(self.orchestrator.sync_appointment(salon_id, appointment_id), appointment_id)

    async def appointment_cancelled(self, salon_id: str, appointment_id: str) -> None:
        self._spawn(self.orchestrator.remove_appointment(salon_id, appointment_id), appointment_id)

    async def drain(self) -> None:
        """Wait for in-flight sync tasks (shutdown and tests)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro, appointment_id: str) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, appointment_id))

    def _on_done(self, task: asyncio.Task, appointment_id: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Background sync for appointment {appointment_id} crashed: {error}")


class ArqSyncTrigger(SyncTrigger):
    """Enqueues sync work on the arq worker"""

    def __init__(self, redis):
        self._redis = redis

    async def appointment_changed(self, salon_id: str, appointment_id: str) -> None:
        await self._enqueue(SYNC_OPERATION, salon_id, appointment_id)

    async def appointment_cancelled(self, salon_id: str, appointment_id: str) -> None:
        await self._enqueue(REMOVE_OPERATION, salon_id, appointment_id)

    async def _enqueue(self, operation: str, salon_id: str, appointment_id: str) -> None:
        try:
            await self._redis.enqueue_job(TASK_NAMES[operation], salon_id, appointment_id)
            logger.info(f"📤 Queued {operation} for appointment {appointment_id}")
        except Exception as e:
            logger.error(f"❌ Failed to queue {operation} for appointment {appointment_id}: {e}")
