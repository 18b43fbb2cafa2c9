import sys
from pathlib import Path

import asyncio
from datetime import timedelta

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from conftest import make_config, wait_until
from models.fleet import AccountSnapshot
from services.fleet.errors import FatalWorkerError
from services.fleet.polling_worker import PollingWorker


class ScriptedWorker(PollingWorker):
    def __init__(self, config, outcomes=()):
        super().__init__(config)
        self.outcomes = list(outcomes)
        self.cycles = 0

    async def run_cycle(self):
        self.cycles += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome is not None:
                raise outcome

    async def fetch_account(self):
        return AccountSnapshot(total_equity=1000.0 + self.cycles)


def _config(seconds: float = 0.01, **overrides):
    return make_config(scan_interval=timedelta(seconds=seconds), **overrides)


def test_worker_identity_comes_from_config():
    worker = ScriptedWorker(_config(worker_id="admin_w9", name="Night shift", ai_provider="qwen"))
    assert worker.worker_id == "admin_w9"
    assert worker.name == "Night shift"
    assert worker.ai_model_label == "qwen"
    assert worker.status().is_running is False


@pytest.mark.asyncio
async def test_cycle_errors_are_logged_and_loop_continues():
    worker = ScriptedWorker(_config(), outcomes=[RuntimeError("api 502"), None])
    stop = asyncio.Event()
    task = asyncio.create_task(worker.run(stop))

    await wait_until(lambda: worker.cycles >= 3)
    assert worker.status().is_running is True
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    status = worker.status()
    assert status.is_running is False
    assert status.call_count == worker.cycles
    assert status.last_error is None


@pytest.mark.asyncio
async def test_fatal_error_ends_loop_and_propagates():
    worker = ScriptedWorker(_config(), outcomes=[None, FatalWorkerError("account liquidated")])

    with pytest.raises(FatalWorkerError):
        await asyncio.wait_for(worker.run(asyncio.Event()), timeout=1.0)

    assert worker.cycles == 2
    assert worker.status().is_running is False


@pytest.mark.asyncio
async def test_stop_interrupts_long_interval_promptly():
    worker = ScriptedWorker(_config(seconds=3600))
    task = asyncio.create_task(worker.run(asyncio.Event()))
    await wait_until(lambda: worker.cycles == 1)

    worker.stop()

    await asyncio.wait_for(task, timeout=0.5)
    assert worker.cycles == 1


@pytest.mark.asyncio
async def test_stop_token_set_before_first_cycle_skips_work():
    worker = ScriptedWorker(_config())
    stop = asyncio.Event()
    stop.set()

    await asyncio.wait_for(worker.run(stop), timeout=0.5)

    assert worker.cycles == 0


@pytest.mark.asyncio
async def test_worker_can_run_again_after_stop():
    worker = ScriptedWorker(_config(seconds=3600))
    task = asyncio.create_task(worker.run(asyncio.Event()))
    await wait_until(lambda: worker.cycles == 1)
    worker.stop()
    await task

    task = asyncio.create_task(worker.run(asyncio.Event()))
    await wait_until(lambda: worker.cycles == 2)
    worker.stop()
    await asyncio.wait_for(task, timeout=0.5)
    assert (await worker.account_info()).total_equity == 1002.0
