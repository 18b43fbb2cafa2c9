"""Point-in-time fleet views for display.

Each call is an independent read: the registry is copied under its read lock,
then every worker is queried outside the lock. Workers that are loaded but no
longer have a persisted definition are left out, as are workers whose status
or account query fails.
"""

from __future__ import annotations

from typing import Optional

from interfaces.config_store import FleetConfigReader
from interfaces.worker import Worker
from models.fleet import (
    AccountSnapshot,
    ComparisonRecord,
    FleetRecord,
    FleetSnapshot,
    WorkerDefinition,
    WorkerStatus,
)
from services.fleet.errors import WorkerQueryError
from services.fleet.registry import WorkerEntry, WorkerRegistry
from services.fleet.tenancy import entry_belongs_to_tenant
from utils.logger import aggregation_logger as logger
from utils.utcnow import unix_now

UNKNOWN_EXCHANGE = "Unknown"


async def query_worker(worker_id: str, worker: Worker) -> tuple[WorkerStatus, AccountSnapshot]:
    """Read status and account together; any failure becomes WorkerQueryError."""
    try:
        status = worker.status()
        account = await worker.account_info()
    except Exception as exc:
        raise WorkerQueryError(worker_id, str(exc)) from exc
    return status, account


class FleetViews:
    def __init__(self, registry: WorkerRegistry, store: FleetConfigReader, legacy_tenant_id: str = "default"):
        self.registry = registry
        self.store = store
        self.legacy_tenant_id = legacy_tenant_id

    async def _persisted_definitions(self, tenant_id: Optional[str]) -> Optional[dict[str, WorkerDefinition]]:
        """Current definitions keyed by id, or None when they cannot be read."""
        try:
            if tenant_id is None:
                definitions = await self.store.get_all_worker_definitions()
            else:
                definitions = await self.store.get_worker_definitions(tenant_id)
        except Exception as exc:
            logger.warning(
                "Could not read worker definitions; stale-entry filter skipped",
                tenant_id=tenant_id,
                error=str(exc),
            )
            return None
        return {definition.id: definition for definition in definitions}

    async def _exchange_label(
        self,
        definition: Optional[WorkerDefinition],
        cache: dict[str, dict[str, str]],
    ) -> str:
        if definition is None:
            return UNKNOWN_EXCHANGE
        labels = cache.get(definition.tenant_id)
        if labels is None:
            try:
                exchanges = await self.store.get_exchange_configs(definition.tenant_id)
            except Exception as exc:
                logger.warning(
                    "Could not read exchange configs for label",
                    tenant_id=definition.tenant_id,
                    error=str(exc),
                )
                exchanges = []
            labels = {exchange.id: exchange.exchange_type for exchange in exchanges}
            cache[definition.tenant_id] = labels
        return labels.get(definition.exchange_id) or UNKNOWN_EXCHANGE

    def _in_scope(self, worker_id: str, entry: WorkerEntry, tenant_id: Optional[str]) -> bool:
        if tenant_id is None:
            return True
        return entry_belongs_to_tenant(worker_id, entry.tenant_id, tenant_id, self.legacy_tenant_id)

    @staticmethod
    def _is_stale(
        worker_id: str,
        entry: WorkerEntry,
        definitions: Optional[dict[str, WorkerDefinition]],
    ) -> bool:
        if definitions is None:
            return False
        definition = definitions.get(worker_id)
        if definition is None:
            return True
        return entry.tenant_id is not None and entry.tenant_id != definition.tenant_id

    async def snapshot(self, tenant_id: Optional[str] = None) -> FleetSnapshot:
        """One record per live, persisted, queryable worker in scope (all tenants when None)."""
        entries = await self.registry.list()
        definitions = await self._persisted_definitions(tenant_id)
        label_cache: dict[str, dict[str, str]] = {}
        records: list[FleetRecord] = []

        for worker_id, entry in entries.items():
            if not self._in_scope(worker_id, entry, tenant_id):
                continue
            if self._is_stale(worker_id, entry, definitions):
                logger.info("Skipping worker without persisted definition", worker_id=worker_id)
                continue

            worker = entry.worker
            try:
                status, account = await query_worker(worker_id, worker)
            except WorkerQueryError as exc:
                logger.warning("Worker query failed, skipping", worker_id=worker_id, error=exc.reason)
                continue

            definition = definitions.get(worker_id) if definitions is not None else None
            exchange_type = await self._exchange_label(definition, label_cache)
            owner = entry.tenant_id or (definition.tenant_id if definition else None) or tenant_id or ""
            records.append(
                FleetRecord(
                    worker_id=worker.worker_id,
                    worker_name=worker.name,
                    tenant_id=owner,
                    ai_model=worker.ai_model_label,
                    exchange_type=exchange_type,
                    display_name=f"{worker.ai_model_label} - {exchange_type}",
                    total_equity=account.total_equity,
                    total_pnl=account.total_pnl,
                    total_pnl_pct=account.total_pnl_pct,
                    position_count=account.position_count,
                    margin_used_pct=account.margin_used_pct,
                    is_running=status.is_running,
                )
            )

        return FleetSnapshot(
            records=records,
            count=len(records),
            timestamp=unix_now() if tenant_id is None else None,
        )

    async def comparison(self) -> FleetSnapshot:
        """Performance comparison of every loaded worker, including call counts."""
        records: list[ComparisonRecord] = []
        for worker_id, entry in (await self.registry.list()).items():
            worker = entry.worker
            try:
                status, account = await query_worker(worker_id, worker)
            except WorkerQueryError as exc:
                logger.warning("Worker query failed, skipping", worker_id=worker_id, error=exc.reason)
                continue
            records.append(
                ComparisonRecord(
                    worker_id=worker.worker_id,
                    worker_name=worker.name,
                    ai_model=worker.ai_model_label,
                    total_equity=account.total_equity,
                    total_pnl=account.total_pnl,
                    total_pnl_pct=account.total_pnl_pct,
                    position_count=account.position_count,
                    margin_used_pct=account.margin_used_pct,
                    call_count=status.call_count,
                    is_running=status.is_running,
                )
            )
        return FleetSnapshot(records=records, count=len(records))
