"""Worker contract consumed by the fleet controller.

A worker is one independently scheduled trader. The controller only builds,
starts, stops and queries it; trading decisions happen behind ``run``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from models.fleet import AccountSnapshot, ResolvedWorkerConfig, WorkerStatus


@runtime_checkable
class Worker(Protocol):
    @property
    def worker_id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def ai_model_label(self) -> str: ...

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set, ``stop()`` is called, or a fatal error is raised."""

    def stop(self) -> None:
        """Request the run loop to end. Idempotent and non-blocking."""

    def status(self) -> "WorkerStatus": ...

    async def account_info(self) -> "AccountSnapshot":
        """Point-in-time account figures; raises when the exchange cannot be queried."""

    def set_custom_prompt(self, prompt: str) -> None: ...

    def set_override_base_prompt(self, override: bool) -> None: ...


WorkerFactory = Callable[["ResolvedWorkerConfig"], Worker]
