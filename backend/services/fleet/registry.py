"""In-memory registry of loaded workers.

The registry is the single owner of live worker handles. Each entry keeps the
worker, its owning tenant, the stop token the controller sets to end its run
loop, and the supervised task currently running it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from interfaces.worker import Worker
from services.fleet.errors import DuplicateWorkerError, WorkerNotFoundError
from services.fleet.rwlock import AsyncRWLock
from utils.logger import registry_logger as logger


@dataclass
class WorkerEntry:
    worker_id: str
    worker: Worker
    tenant_id: Optional[str] = None
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None

    def is_active(self) -> bool:
        """A run task has been dispatched and has not finished."""
        return self.task is not None and not self.task.done()

    def is_stopping(self) -> bool:
        """Stop was requested and the run task has not exited yet."""
        return self.is_active() and self.stop_event.is_set()

    def signal_stop(self) -> None:
        self.stop_event.set()
        self.worker.stop()


class WorkerRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, WorkerEntry] = {}
        self._lock = AsyncRWLock()

    @property
    def lock(self) -> AsyncRWLock:
        return self._lock

    async def add(self, worker_id: str, worker: Worker, tenant_id: Optional[str] = None) -> WorkerEntry:
        async with self._lock.write():
            if worker_id in self._entries:
                raise DuplicateWorkerError(worker_id)
            entry = WorkerEntry(worker_id=worker_id, worker=worker, tenant_id=tenant_id)
            self._entries[worker_id] = entry
        logger.debug("Worker registered", worker_id=worker_id, tenant_id=tenant_id)
        return entry

    async def get_entry(self, worker_id: str) -> WorkerEntry:
        async with self._lock.read():
            entry = self._entries.get(worker_id)
        if entry is None:
            raise WorkerNotFoundError(worker_id)
        return entry

    async def get(self, worker_id: str) -> Worker:
        return (await self.get_entry(worker_id)).worker

    async def contains(self, worker_id: str) -> bool:
        async with self._lock.read():
            return worker_id in self._entries

    async def remove(self, worker_id: str) -> bool:
        """Stop (if running) and drop a worker. Returns False when it was not registered.

        The entry is deleted even when the worker's stop raises.
        """
        async with self._lock.write():
            entry = self._entries.get(worker_id)
            if entry is None:
                return False
            try:
                if entry.is_active() or entry.worker.status().is_running:
                    entry.signal_stop()
            except Exception as exc:
                logger.warning(
                    "Worker stop failed during removal",
                    worker_id=worker_id,
                    tenant_id=entry.tenant_id,
                    error=str(exc),
                )
            finally:
                entry.stop_event.set()
                del self._entries[worker_id]
        logger.info("Worker removed", worker_id=worker_id, tenant_id=entry.tenant_id)
        return True

    async def list(self) -> dict[str, WorkerEntry]:
        async with self._lock.read():
            return dict(self._entries)

    async def ids(self) -> list[str]:
        async with self._lock.read():
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
