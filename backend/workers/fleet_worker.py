"""Trader fleet worker process: boot the fleet and keep it alive until signalled.

Run from backend/ with:
    FLEET_WORKER_FACTORY=package.module:build_worker python -m workers.fleet_worker
"""

from __future__ import annotations

import asyncio
import signal
from importlib import import_module
from typing import Optional

from config import settings
from interfaces.worker import WorkerFactory
from models.database import AsyncSessionLocal, init_database
from services.fleet.aggregation import FleetViews
from services.fleet.lifecycle import FleetController
from services.fleet.registry import WorkerRegistry
from services.fleet.store import FleetConfigStore
from utils.logger import get_logger, setup_logging

logger = get_logger("fleet_worker")


def load_worker_factory(path: Optional[str]) -> WorkerFactory:
    """Import ``"package.module:callable"`` and return the callable."""
    if not path:
        raise RuntimeError("FLEET_WORKER_FACTORY is not configured")
    module_name, sep, attr_name = path.partition(":")
    if not sep or not module_name or not attr_name:
        raise RuntimeError(f"FLEET_WORKER_FACTORY must look like 'module:callable', got {path!r}")
    factory = getattr(import_module(module_name), attr_name, None)
    if not callable(factory):
        raise RuntimeError(f"FLEET_WORKER_FACTORY {path!r} is not callable")
    return factory


def build_fleet(worker_factory: WorkerFactory, session_factory=AsyncSessionLocal) -> tuple[FleetController, FleetViews]:
    registry = WorkerRegistry()
    store = FleetConfigStore(session_factory)
    controller = FleetController(
        registry,
        store,
        worker_factory,
        admin_tenant_id=settings.FLEET_ADMIN_TENANT_ID,
        legacy_tenant_id=settings.FLEET_LEGACY_TENANT_ID,
    )
    views = FleetViews(registry, store, legacy_tenant_id=settings.FLEET_LEGACY_TENANT_ID)
    return controller, views


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: fall back to the synchronous handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run_fleet(controller: FleetController, stop: asyncio.Event) -> None:
    """Boot, then wait for ``stop`` and shut every worker down."""
    mode, load_report, restore_report = await controller.boot(restore=settings.FLEET_RESTORE_ON_BOOT)
    logger.info(
        "Fleet running",
        fleet_wide=mode.fleet_wide,
        tenant_id=mode.tenant_id,
        loaded=len(load_report.loaded),
        skipped=len(load_report.skipped),
        failed=len(load_report.failed),
        restored=len(restore_report.started),
    )
    try:
        await stop.wait()
    finally:
        logger.info("Fleet worker shutting down")
        await controller.shutdown(timeout=settings.FLEET_SHUTDOWN_TIMEOUT_SECONDS)


async def main() -> None:
    """Initialize DB schema, seed settings, then run the fleet until SIGINT/SIGTERM."""
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, log_file=settings.LOG_FILE)
    await init_database()

    worker_factory = load_worker_factory(settings.FLEET_WORKER_FACTORY)
    controller, _ = build_fleet(worker_factory)
    if settings.FLEET_SEED_SYSTEM_SETTINGS:
        await controller.store.seed_system_settings()

    stop = asyncio.Event()
    _install_stop_handlers(stop)
    try:
        await run_fleet(controller, stop)
    except asyncio.CancelledError:
        logger.info("Fleet worker cancelled")


if __name__ == "__main__":
    asyncio.run(main())
