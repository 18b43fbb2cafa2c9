"""Fleet lifecycle: load workers from persisted configuration, start, stop, restore.

Per worker states are unloaded, loaded-stopped and loaded-running. ``start``
dispatches the worker's run loop on its own supervised task and returns
immediately; run failures are logged against that worker and never reach the
caller. ``restore_all`` only starts workers that are already loaded.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Optional

from interfaces.config_store import FleetConfigReader
from interfaces.worker import Worker, WorkerFactory
from models.fleet import (
    FleetMode,
    LoadReport,
    ResolvedWorkerConfig,
    RestoreReport,
    WorkerDefinition,
)
from services.fleet.errors import (
    FleetError,
    InvalidDependencyError,
    WorkerConstructionError,
    WorkerNotFoundError,
)
from services.fleet.registry import WorkerEntry, WorkerRegistry
from services.fleet.resolver import RISK_SETTING_KEYS, parse_risk_settings, resolve_worker_configs
from utils.logger import lifecycle_logger as logger

MULTI_USER_MODE_KEY = "multi_user_mode"
ADMIN_MODE_KEY = "admin_mode"


class FleetController:
    def __init__(
        self,
        registry: WorkerRegistry,
        store: FleetConfigReader,
        worker_factory: WorkerFactory,
        *,
        admin_tenant_id: str = "admin",
        legacy_tenant_id: str = "default",
    ):
        self.registry = registry
        self.store = store
        self._worker_factory = worker_factory
        self.admin_tenant_id = admin_tenant_id
        self.legacy_tenant_id = legacy_tenant_id

    # ==================== MODE ====================

    async def resolve_mode(self) -> FleetMode:
        """Fleet-wide when multi_user_mode is "true"; else one tenant picked by admin_mode."""
        multi_user = await self.store.get_system_setting(MULTI_USER_MODE_KEY)
        if multi_user == "true":
            return FleetMode(fleet_wide=True)
        admin_mode = await self.store.get_system_setting(ADMIN_MODE_KEY)
        # admin_mode defaults to true when unset
        tenant_id = self.legacy_tenant_id if admin_mode == "false" else self.admin_tenant_id
        return FleetMode(fleet_wide=False, tenant_id=tenant_id)

    # ==================== LOADING ====================

    async def load(self, config: ResolvedWorkerConfig) -> Worker:
        """Construct and register one worker. Raises on any failure."""
        config.exchange_credentials.require()
        try:
            worker = self._worker_factory(config)
        except FleetError:
            raise
        except Exception as exc:
            raise WorkerConstructionError(f"Failed to build worker {config.worker_id!r}: {exc}") from exc

        if config.custom_prompt:
            try:
                worker.set_custom_prompt(config.custom_prompt)
                worker.set_override_base_prompt(config.override_base_prompt)
            except Exception as exc:
                raise WorkerConstructionError(
                    f"Failed to apply custom prompt to worker {config.worker_id!r}: {exc}"
                ) from exc

        await self.registry.add(config.worker_id, worker, tenant_id=config.tenant_id)
        logger.info(
            "Worker loaded",
            worker_id=config.worker_id,
            tenant_id=config.tenant_id,
            ai_provider=config.ai_provider,
            exchange=config.exchange_kind,
            custom_prompt=bool(config.custom_prompt),
        )
        return worker

    async def _definitions_for(self, tenant_id: Optional[str]) -> list[WorkerDefinition]:
        if tenant_id is None:
            return await self.store.get_all_worker_definitions()
        return await self.store.get_worker_definitions(tenant_id)

    async def load_scope(self, tenant_id: Optional[str] = None, *, skip_loaded: bool = False) -> LoadReport:
        """Resolve and load every definition in scope (one tenant, or all when None).

        Failures are recorded per definition; the batch always completes.
        """
        definitions = await self._definitions_for(tenant_id)
        risk = parse_risk_settings(await self.store.get_system_settings(RISK_SETTING_KEYS))
        report = LoadReport()

        loaded_ids = set(await self.registry.ids()) if skip_loaded else set()
        by_tenant: "OrderedDict[str, list[WorkerDefinition]]" = OrderedDict()
        for definition in definitions:
            if definition.id in loaded_ids:
                report.skipped[definition.id] = "already loaded"
                continue
            by_tenant.setdefault(definition.tenant_id, []).append(definition)

        for owner, owned in by_tenant.items():
            report.merge(await self._load_tenant_batch(owner, owned, risk))

        logger.info(
            "Fleet scope loaded",
            tenant_id=tenant_id,
            loaded=len(report.loaded),
            skipped=len(report.skipped),
            failed=len(report.failed),
            registry_size=len(self.registry),
        )
        return report

    async def _load_tenant_batch(self, tenant_id, definitions, risk) -> LoadReport:
        report = LoadReport()
        try:
            providers = await self.store.get_provider_configs(tenant_id)
            exchanges = await self.store.get_exchange_configs(tenant_id)
        except Exception as exc:
            logger.error("Failed to read tenant configuration", tenant_id=tenant_id, error=str(exc))
            for definition in definitions:
                report.failed[definition.id] = f"config read failed: {exc}"
            return report

        resolution = resolve_worker_configs(definitions, providers, exchanges, risk)
        report.skipped.update(resolution.skipped)

        for config in resolution.configs:
            try:
                await self.load(config)
            except FleetError as exc:
                logger.warning(
                    "Failed to load worker",
                    worker_id=config.worker_id,
                    tenant_id=config.tenant_id,
                    error=str(exc),
                )
                report.failed[config.worker_id] = str(exc)
                continue
            report.loaded.append(config.worker_id)
        return report

    async def load_tenant(self, tenant_id: str) -> LoadReport:
        """Load a tenant's workers that are not in the registry yet."""
        return await self.load_scope(tenant_id, skip_loaded=True)

    # ==================== RUN STATE ====================

    def _dispatch(self, entry: WorkerEntry) -> bool:
        # No await between the check and the dispatch: concurrent starts cannot both pass
        previous = None
        if entry.is_active():
            if not entry.is_stopping():
                return False
            # Stop requested but the old loop has not exited yet: queue the new run behind it
            previous = entry.task
        stop_event = asyncio.Event()
        entry.stop_event = stop_event
        entry.task = asyncio.create_task(
            self._supervise(entry, stop_event, previous),
            name=f"fleet-worker:{entry.worker_id}",
        )
        return True

    async def _supervise(
        self,
        entry: WorkerEntry,
        stop_event: asyncio.Event,
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        log = logger.with_context(worker_id=entry.worker_id, tenant_id=entry.tenant_id)
        if previous is not None:
            # The previous task logs its own outcome
            try:
                await asyncio.wait([previous])
            except asyncio.CancelledError:
                previous.cancel()
                raise
            if stop_event.is_set():
                log.info("Worker stopped before restart")
                return
        log.info("Worker started")
        try:
            await entry.worker.run(stop_event)
        except asyncio.CancelledError:
            log.info("Worker task cancelled")
            raise
        except Exception as exc:
            log.error("Worker run failed", error=str(exc), exc_info=True)
        else:
            log.info("Worker run finished")

    async def start(self, worker_id: str) -> bool:
        """Dispatch the worker's run loop. False when it is already running."""
        entry = await self.registry.get_entry(worker_id)
        return self._dispatch(entry)

    async def stop(self, worker_id: str) -> bool:
        """Signal the worker to stop. False (no-op) when it is not running."""
        entry = await self.registry.get_entry(worker_id)
        if not entry.is_active() or entry.is_stopping():
            return False
        entry.signal_stop()
        logger.info("Worker stop requested", worker_id=worker_id, tenant_id=entry.tenant_id)
        return True

    async def remove(self, worker_id: str) -> bool:
        return await self.registry.remove(worker_id)

    async def set_running(self, tenant_id: str, worker_id: str, running: bool) -> bool:
        """Start or stop the worker, persisting its run flag.

        Starting a worker that is not loaded loads its tenant first; if the
        worker still cannot be loaded the flag is left untouched.
        """
        if running and not await self.registry.contains(worker_id):
            report = await self.load_tenant(tenant_id)
            if not await self.registry.contains(worker_id):
                if worker_id in report.skipped:
                    raise InvalidDependencyError(
                        f"Worker {worker_id!r} cannot be loaded: {report.skipped[worker_id]}"
                    )
                if worker_id in report.failed:
                    raise WorkerConstructionError(report.failed[worker_id])
                raise WorkerNotFoundError(worker_id)
        if not await self.store.set_worker_run_flag(tenant_id, worker_id, running):
            raise WorkerNotFoundError(worker_id)
        if not running:
            if not await self.registry.contains(worker_id):
                return False
            return await self.stop(worker_id)
        return await self.start(worker_id)

    async def restore_all(self, tenant_id: Optional[str] = None) -> RestoreReport:
        """Start loaded workers whose persisted run flag is set. Idempotent; never loads."""
        if tenant_id is None:
            mode = await self.resolve_mode()
            tenant_id = None if mode.fleet_wide else mode.tenant_id

        definitions = await self._definitions_for(tenant_id)
        entries = await self.registry.list()
        report = RestoreReport()

        for definition in definitions:
            if not definition.is_running:
                continue
            entry = entries.get(definition.id)
            if entry is None:
                logger.warning(
                    "Worker marked running but not loaded, skipping restore",
                    worker_id=definition.id,
                    tenant_id=definition.tenant_id,
                )
                report.skipped[definition.id] = "not loaded"
                continue
            if not self._dispatch(entry):
                report.skipped[definition.id] = "already running"
                continue
            report.started.append(definition.id)

        logger.info(
            "Restore complete",
            tenant_id=tenant_id,
            started=len(report.started),
            skipped=len(report.skipped),
        )
        return report

    async def start_all(self) -> list[str]:
        entries = await self.registry.list()
        return [worker_id for worker_id, entry in entries.items() if self._dispatch(entry)]

    async def stop_all(self) -> list[str]:
        stopped: list[str] = []
        for worker_id, entry in (await self.registry.list()).items():
            if not entry.is_active() or entry.is_stopping():
                continue
            try:
                entry.signal_stop()
            except Exception as exc:
                logger.warning("Worker stop failed", worker_id=worker_id, error=str(exc))
                continue
            stopped.append(worker_id)
        return stopped

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every worker and wait for their tasks; cancel stragglers after ``timeout``."""
        await self.stop_all()
        tasks = [entry.task for entry in (await self.registry.list()).values() if entry.is_active()]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled workers that did not stop in time", count=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    async def boot(self, *, restore: bool = True) -> tuple[FleetMode, LoadReport, RestoreReport]:
        """Mode selection, then load, then (optionally) restore, all for the same scope."""
        mode = await self.resolve_mode()
        scope = None if mode.fleet_wide else mode.tenant_id
        logger.info("Booting fleet", fleet_wide=mode.fleet_wide, tenant_id=mode.tenant_id)
        load_report = await self.load_scope(scope)
        restore_report = await self.restore_all(scope) if restore else RestoreReport()
        return mode, load_report, restore_report