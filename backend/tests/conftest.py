"""Shared fixtures for trader fleet tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import asyncio
from datetime import timedelta
from typing import Optional

import pytest

from models.fleet import (
    AccountSnapshot,
    ExchangeConfig,
    ExchangeCredentials,
    ProviderConfig,
    ResolvedWorkerConfig,
    WorkerDefinition,
    WorkerStatus,
)


class FakeWorker:
    """In-memory worker that runs until stopped and records every interaction."""

    def __init__(
        self,
        worker_id: str,
        name: str = "",
        ai_model: str = "deepseek",
        *,
        account: Optional[AccountSnapshot] = None,
        run_error: Optional[BaseException] = None,
        account_error: Optional[BaseException] = None,
        stop_error: Optional[BaseException] = None,
    ):
        self._worker_id = worker_id
        self._name = name or worker_id
        self._ai_model = ai_model
        self.account = account or AccountSnapshot(total_equity=1000.0)
        self.run_error = run_error
        self.account_error = account_error
        self.stop_error = stop_error
        self.running = False
        self.run_calls = 0
        self.stop_calls = 0
        self.call_count = 0
        self.custom_prompt: Optional[str] = None
        self.override_base_prompt: Optional[bool] = None
        self.started = asyncio.Event()
        self._stop_requested = asyncio.Event()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def ai_model_label(self) -> str:
        return self._ai_model

    async def run(self, stop_event: asyncio.Event) -> None:
        self.run_calls += 1
        self._stop_requested.clear()
        self.running = True
        self.started.set()
        try:
            if self.run_error is not None:
                raise self.run_error
            stop_wait = asyncio.ensure_future(stop_event.wait())
            own_wait = asyncio.ensure_future(self._stop_requested.wait())
            try:
                await asyncio.wait([stop_wait, own_wait], return_when=asyncio.FIRST_COMPLETED)
            finally:
                stop_wait.cancel()
                own_wait.cancel()
        finally:
            self.running = False

    def stop(self) -> None:
        self.stop_calls += 1
        self._stop_requested.set()
        if self.stop_error is not None:
            raise self.stop_error

    def status(self) -> WorkerStatus:
        return WorkerStatus(is_running=self.running, call_count=self.call_count)

    async def account_info(self) -> AccountSnapshot:
        if self.account_error is not None:
            raise self.account_error
        return self.account

    def set_custom_prompt(self, prompt: str) -> None:
        self.custom_prompt = prompt

    def set_override_base_prompt(self, override: bool) -> None:
        self.override_base_prompt = override


class FakeStore:
    """Config store backed by plain lists, with per-call failure injection."""

    def __init__(
        self,
        definitions=None,
        providers=None,
        exchanges=None,
        settings=None,
    ):
        self.definitions: list[WorkerDefinition] = list(definitions or [])
        self.providers: list[ProviderConfig] = list(providers or [])
        self.exchanges: list[ExchangeConfig] = list(exchanges or [])
        self.settings: dict[str, str] = dict(settings or {})
        self.fail: set[str] = set()
        self.run_flag_calls: list[tuple[str, str, bool]] = []

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    async def get_worker_definitions(self, tenant_id):
        self._check("get_worker_definitions")
        return [d for d in self.definitions if d.tenant_id == tenant_id]

    async def get_all_worker_definitions(self):
        self._check("get_all_worker_definitions")
        return list(self.definitions)

    async def get_provider_configs(self, tenant_id):
        self._check("get_provider_configs")
        return [p for p in self.providers if p.tenant_id == tenant_id]

    async def get_exchange_configs(self, tenant_id):
        self._check("get_exchange_configs")
        return [e for e in self.exchanges if e.tenant_id == tenant_id]

    async def get_system_setting(self, key):
        self._check("get_system_setting")
        return self.settings.get(key)

    async def get_system_settings(self, keys):
        self._check("get_system_settings")
        return {key: self.settings.get(key) for key in keys}

    async def set_worker_run_flag(self, tenant_id, worker_id, running):
        self.run_flag_calls.append((tenant_id, worker_id, running))
        for definition in self.definitions:
            if definition.id == worker_id and definition.tenant_id == tenant_id:
                definition.is_running = running
                return True
        return False


def make_definition(worker_id: str, tenant_id: str = "admin", **overrides) -> WorkerDefinition:
    values = {
        "id": worker_id,
        "tenant_id": tenant_id,
        "name": f"Trader {worker_id}",
        "ai_provider_id": "p1",
        "exchange_id": "e1",
    }
    values.update(overrides)
    return WorkerDefinition(**values)


def make_provider(provider_id: str = "p1", tenant_id: str = "admin", **overrides) -> ProviderConfig:
    values = {
        "id": provider_id,
        "tenant_id": tenant_id,
        "provider": "deepseek",
        "enabled": True,
        "api_key": "sk-test",
    }
    values.update(overrides)
    return ProviderConfig(**values)


def make_exchange(exchange_id: str = "e1", tenant_id: str = "admin", **overrides) -> ExchangeConfig:
    values = {
        "id": exchange_id,
        "tenant_id": tenant_id,
        "exchange_type": "binance",
        "enabled": True,
        "api_key": "binance-key",
        "secret_key": "binance-secret",
    }
    values.update(overrides)
    return ExchangeConfig(**values)


def make_config(worker_id: str = "admin_w1", tenant_id: str = "admin", **overrides) -> ResolvedWorkerConfig:
    values = {
        "worker_id": worker_id,
        "tenant_id": tenant_id,
        "name": f"Trader {worker_id}",
        "ai_provider": "deepseek",
        "ai_api_key": "sk-test",
        "exchange_id": "e1",
        "exchange_kind": "binance",
        "exchange_credentials": ExchangeCredentials(kind="binance", api_key="k", secret_key="s"),
        "scan_interval": timedelta(minutes=3),
        "initial_balance": 1000.0,
        "is_cross_margin": True,
        "custom_prompt": "",
        "override_base_prompt": False,
        "max_daily_loss": 10.0,
        "max_drawdown": 20.0,
        "stop_trading_time": timedelta(minutes=60),
        "btc_eth_leverage": 5,
        "altcoin_leverage": 5,
    }
    values.update(overrides)
    return ResolvedWorkerConfig(**values)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the event loop until it is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_worker_factory():
    """Factory returning FakeWorkers and remembering every one it built."""
    built: dict[str, FakeWorker] = {}

    def factory(config: ResolvedWorkerConfig) -> FakeWorker:
        worker = FakeWorker(config.worker_id, config.name, config.ai_provider)
        built[config.worker_id] = worker
        return worker

    factory.built = built
    return factory
