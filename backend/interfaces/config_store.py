"""Persisted fleet configuration consumed by the controller and snapshot views."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from models.fleet import ExchangeConfig, ProviderConfig, WorkerDefinition


class FleetConfigReader(Protocol):
    async def get_worker_definitions(self, tenant_id: str) -> list[WorkerDefinition]:
        """Definitions owned by one tenant."""

    async def get_all_worker_definitions(self) -> list[WorkerDefinition]:
        """Definitions of every tenant (fleet-wide mode)."""

    async def get_provider_configs(self, tenant_id: str) -> list[ProviderConfig]: ...

    async def get_exchange_configs(self, tenant_id: str) -> list[ExchangeConfig]: ...

    async def get_system_setting(self, key: str) -> Optional[str]:
        """Stored value, or None when the key is absent."""

    async def get_system_settings(self, keys: Iterable[str]) -> dict[str, Optional[str]]: ...

    async def set_worker_run_flag(self, tenant_id: str, worker_id: str, running: bool) -> bool:
        """Persist the "should be running" flag. False when no such definition exists."""
