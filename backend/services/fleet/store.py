"""Session-scoped adapter exposing fleet_state as the controller's config store."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models.fleet import ExchangeConfig, ProviderConfig, WorkerDefinition
from services import fleet_state


class FleetConfigStore:
    """Opens one session per call so concurrent readers never share a session."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    # Reads

    async def get_worker_definitions(self, tenant_id: str) -> list[WorkerDefinition]:
        async with self._session_factory() as session:
            return await fleet_state.list_worker_definitions(session, tenant_id)

    async def get_all_worker_definitions(self) -> list[WorkerDefinition]:
        async with self._session_factory() as session:
            return await fleet_state.list_all_worker_definitions(session)

    async def get_worker_definition(self, tenant_id: str, worker_id: str) -> Optional[WorkerDefinition]:
        async with self._session_factory() as session:
            return await fleet_state.get_worker_definition(session, tenant_id, worker_id)

    async def get_provider_configs(self, tenant_id: str) -> list[ProviderConfig]:
        async with self._session_factory() as session:
            return await fleet_state.list_provider_configs(session, tenant_id)

    async def get_exchange_configs(self, tenant_id: str) -> list[ExchangeConfig]:
        async with self._session_factory() as session:
            return await fleet_state.list_exchange_configs(session, tenant_id)

    async def get_system_setting(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            return await fleet_state.get_system_setting(session, key)

    async def get_system_settings(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        async with self._session_factory() as session:
            return await fleet_state.get_system_settings(session, keys)

    # Writes

    async def set_worker_run_flag(self, tenant_id: str, worker_id: str, running: bool) -> bool:
        async with self._session_factory() as session:
            return await fleet_state.set_worker_run_flag(session, tenant_id, worker_id, running)

    async def set_system_setting(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            await fleet_state.set_system_setting(session, key, value)

    async def seed_system_settings(self, defaults: Optional[dict[str, str]] = None) -> list[str]:
        async with self._session_factory() as session:
            return await fleet_state.seed_system_settings(session, defaults)

    async def create_provider_config(self, tenant_id: str, payload: dict[str, Any]) -> ProviderConfig:
        async with self._session_factory() as session:
            return await fleet_state.create_provider_config(session, tenant_id, payload)

    async def update_provider_config(
        self, tenant_id: str, provider_id: str, payload: dict[str, Any]
    ) -> Optional[ProviderConfig]:
        async with self._session_factory() as session:
            return await fleet_state.update_provider_config(session, tenant_id, provider_id, payload)

    async def delete_provider_config(self, tenant_id: str, provider_id: str) -> bool:
        async with self._session_factory() as session:
            return await fleet_state.delete_provider_config(session, tenant_id, provider_id)

    async def create_exchange_config(self, tenant_id: str, payload: dict[str, Any]) -> ExchangeConfig:
        async with self._session_factory() as session:
            return await fleet_state.create_exchange_config(session, tenant_id, payload)

    async def update_exchange_config(
        self, tenant_id: str, exchange_id: str, payload: dict[str, Any]
    ) -> Optional[ExchangeConfig]:
        async with self._session_factory() as session:
            return await fleet_state.update_exchange_config(session, tenant_id, exchange_id, payload)

    async def delete_exchange_config(self, tenant_id: str, exchange_id: str) -> bool:
        async with self._session_factory() as session:
            return await fleet_state.delete_exchange_config(session, tenant_id, exchange_id)

    async def create_worker_definition(self, tenant_id: str, payload: dict[str, Any]) -> WorkerDefinition:
        async with self._session_factory() as session:
            return await fleet_state.create_worker_definition(session, tenant_id, payload)

    async def update_worker_prompt(
        self,
        tenant_id: str,
        worker_id: str,
        custom_prompt: Optional[str],
        override_base_prompt: bool,
    ) -> Optional[WorkerDefinition]:
        async with self._session_factory() as session:
            return await fleet_state.update_worker_prompt(
                session, tenant_id, worker_id, custom_prompt, override_base_prompt
            )

    async def delete_worker_definition(self, tenant_id: str, worker_id: str) -> bool:
        async with self._session_factory() as session:
            return await fleet_state.delete_worker_definition(session, tenant_id, worker_id)
