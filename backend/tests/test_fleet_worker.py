import sys
from pathlib import Path

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from config import settings
from conftest import wait_until
from models.database import Base
from workers import fleet_worker


def test_load_worker_factory_rejects_missing_or_malformed_paths():
    with pytest.raises(RuntimeError, match="not configured"):
        fleet_worker.load_worker_factory(None)
    with pytest.raises(RuntimeError, match="module:callable"):
        fleet_worker.load_worker_factory("conftest.make_config")
    with pytest.raises(RuntimeError, match="not callable"):
        fleet_worker.load_worker_factory("conftest:BACKEND_ROOT")


def test_load_worker_factory_imports_callable():
    import conftest

    assert fleet_worker.load_worker_factory("conftest:make_config") is conftest.make_config


@pytest.mark.asyncio
async def test_run_fleet_restores_flagged_workers_and_shuts_down(tmp_path, monkeypatch, fake_worker_factory):
    monkeypatch.setattr(settings, "FLEET_RESTORE_ON_BOOT", True)
    monkeypatch.setattr(settings, "FLEET_SHUTDOWN_TIMEOUT_SECONDS", 1.0)
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fleet.db'}")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        controller, views = fleet_worker.build_fleet(fake_worker_factory, session_factory)
        store = controller.store
        await store.seed_system_settings()
        await store.create_provider_config("admin", {"id": "p1", "provider": "qwen", "enabled": True, "api_key": "sk"})
        await store.create_exchange_config(
            "admin", {"id": "e1", "exchange_type": "binance", "enabled": True, "api_key": "k", "secret_key": "s"}
        )
        flagged = await store.create_worker_definition(
            "admin", {"name": "Majors", "ai_provider_id": "p1", "exchange_id": "e1"}
        )
        idle = await store.create_worker_definition("admin", {"name": "Alts", "ai_provider_id": "p1", "exchange_id": "e1"})
        await store.set_worker_run_flag("admin", flagged.id, True)

        stop = asyncio.Event()
        task = asyncio.create_task(fleet_worker.run_fleet(controller, stop))
        await wait_until(lambda: flagged.id in fake_worker_factory.built and fake_worker_factory.built[flagged.id].running)

        snapshot = await views.snapshot("admin")
        assert sorted(r.worker_id for r in snapshot.records) == sorted([flagged.id, idle.id])
        running = {r.worker_id: r.is_running for r in snapshot.records}
        assert running == {flagged.id: True, idle.id: False}
        assert all(r.display_name == "qwen - binance" for r in snapshot.records)

        stop.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert fake_worker_factory.built[flagged.id].running is False
        assert fake_worker_factory.built[idle.id].run_calls == 0
    finally:
        await engine.dispose()
