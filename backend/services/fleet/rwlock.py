"""Async reader/writer lock.

Any number of readers may hold the lock together; a writer holds it alone.
Waiting writers block new readers, so a steady stream of snapshot reads
cannot starve ``add``/``remove``.

Releasing is synchronous: a task cancelled inside a ``read()``/``write()``
block always gives its slot back.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator


class AsyncRWLock:
    def __init__(self) -> None:
        self._readers = 0
        self._writer = False
        self._read_waiters: deque[asyncio.Future] = deque()
        self._write_waiters: deque[asyncio.Future] = deque()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer

    def _grant(self) -> None:
        """Hand the lock to whoever is next in line, writers first."""
        if self._writer:
            return
        while self._write_waiters and self._write_waiters[0].done():
            self._write_waiters.popleft()
        if self._write_waiters:
            if self._readers == 0:
                self._writer = True
                self._write_waiters.popleft().set_result(None)
            return
        while self._read_waiters:
            waiter = self._read_waiters.popleft()
            if not waiter.done():
                self._readers += 1
                waiter.set_result(None)

    async def _wait(self, queue: deque, waiter: asyncio.Future, release) -> None:
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Granted just as the task was cancelled
                release()
            else:
                if waiter in queue:
                    queue.remove(waiter)
                self._grant()
            raise

    async def acquire_read(self) -> None:
        if not self._writer and not self._write_waiters:
            self._readers += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._read_waiters.append(waiter)
        await self._wait(self._read_waiters, waiter, self.release_read)

    def release_read(self) -> None:
        if self._readers <= 0:
            raise RuntimeError("release_read() called without a held read lock")
        self._readers -= 1
        if self._readers == 0:
            self._grant()

    async def acquire_write(self) -> None:
        if not self._writer and self._readers == 0 and not self._write_waiters:
            self._writer = True
            return
        waiter = asyncio.get_running_loop().create_future()
        self._write_waiters.append(waiter)
        await self._wait(self._write_waiters, waiter, self.release_write)

    def release_write(self) -> None:
        if not self._writer:
            raise RuntimeError("release_write() called without a held write lock")
        self._writer = False
        self._grant()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        await self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        await self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
