import sys
from pathlib import Path

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models import database


@pytest.mark.asyncio
async def test_init_database_creates_parent_dir_and_fleet_tables(tmp_path, monkeypatch):
    db_path = tmp_path / "nested" / "data" / "fleet.db"
    url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(url)
    monkeypatch.setattr(database.settings, "DATABASE_URL", url)
    monkeypatch.setattr(database, "async_engine", engine)
    try:
        await database.init_database()
        # Second call is a no-op on an existing schema
        await database.init_database()

        assert db_path.parent.is_dir()
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        assert {
            "worker_definitions",
            "ai_provider_configs",
            "exchange_configs",
            "system_settings",
        } <= tables
    finally:
        await engine.dispose()
