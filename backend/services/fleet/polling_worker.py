"""
Polling worker base class.

Runs ``run_cycle()`` once per scan interval until the controller sets the
stop token or ``stop()`` is called. A cycle that raises is logged and the
loop keeps going; ``FatalWorkerError`` ends the loop and reaches the
supervising task.

Subclasses implement ``run_cycle`` (one decision/execution pass) and
``fetch_account`` (current exchange account figures).
"""

import asyncio
from typing import Optional

from models.fleet import AccountSnapshot, ResolvedWorkerConfig, WorkerStatus
from services.fleet.errors import FatalWorkerError
from utils.logger import get_logger


class PollingWorker:
    def __init__(self, config: ResolvedWorkerConfig):
        self.config = config
        self.custom_prompt = config.custom_prompt
        self.override_base_prompt = config.override_base_prompt
        self._running = False
        self._stop_requested = asyncio.Event()
        self._call_count = 0
        self._last_error: Optional[str] = None
        self._logger = get_logger("fleet.worker").with_context(
            worker_id=config.worker_id,
            tenant_id=config.tenant_id,
        )

    @property
    def worker_id(self) -> str:
        return self.config.worker_id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def ai_model_label(self) -> str:
        return self.config.ai_provider

    @property
    def interval_seconds(self) -> float:
        return max(self.config.scan_interval.total_seconds(), 0.0)

    def set_custom_prompt(self, prompt: str) -> None:
        self.custom_prompt = prompt

    def set_override_base_prompt(self, override: bool) -> None:
        self.override_base_prompt = bool(override)

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            is_running=self._running,
            call_count=self._call_count,
            last_error=self._last_error,
        )

    async def account_info(self) -> AccountSnapshot:
        return await self.fetch_account()

    def stop(self) -> None:
        self._stop_requested.set()

    def _should_stop(self, stop_event: asyncio.Event) -> bool:
        return stop_event.is_set() or self._stop_requested.is_set()

    async def _wait_interval(self, stop_event: asyncio.Event) -> None:
        """Sleep one interval, waking early when either stop signal fires."""
        waiters = [
            asyncio.ensure_future(stop_event.wait()),
            asyncio.ensure_future(self._stop_requested.wait()),
        ]
        try:
            await asyncio.wait(waiters, timeout=self.interval_seconds, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def run(self, stop_event: asyncio.Event) -> None:
        if self._running:
            raise RuntimeError(f"Worker {self.worker_id} is already running")
        self._stop_requested.clear()
        self._running = True
        self._logger.info("Worker loop started", interval_seconds=self.interval_seconds)
        try:
            while not self._should_stop(stop_event):
                self._call_count += 1
                try:
                    await self.run_cycle()
                    self._last_error = None
                except FatalWorkerError:
                    raise
                except Exception as e:
                    self._last_error = str(e)
                    self._logger.error(f"Worker cycle failed: {e}", cycle=self._call_count)

                if self._should_stop(stop_event):
                    break
                await self._wait_interval(stop_event)
        finally:
            self._running = False
            self._logger.info("Worker loop stopped", cycles=self._call_count)

    async def run_cycle(self) -> None:
        raise NotImplementedError

    async def fetch_account(self) -> AccountSnapshot:
        raise NotImplementedError
