import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import config


def test_detect_project_root_backend_only_layout(tmp_path):
    backend_dir = tmp_path / "app"
    backend_dir.mkdir(parents=True, exist_ok=True)

    resolved = config._detect_project_root(backend_dir.resolve())
    assert resolved == backend_dir.resolve()


def test_detect_project_root_repo_layout(tmp_path):
    backend_dir = tmp_path / "project" / "backend"
    backend_dir.mkdir(parents=True, exist_ok=True)

    assert config._detect_project_root(backend_dir) == (tmp_path / "project").resolve()


def test_relative_sqlite_path_is_anchored_at_project_root(tmp_path, monkeypatch):
    project_root = tmp_path / "project"
    monkeypatch.setattr(config, "_PROJECT_ROOT", project_root.resolve())

    normalized = config.Settings._normalize_database_url(" 'sqlite+aiosqlite:///./data/fleet.db' ")

    expected_path = (project_root / "data" / "fleet.db").resolve()
    assert normalized == f"sqlite+aiosqlite:///{expected_path}"
    assert config.sqlite_database_path(normalized) == expected_path


def test_memory_and_non_sqlite_urls_are_untouched():
    assert config.Settings._normalize_database_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"
    assert config.sqlite_database_path("sqlite+aiosqlite:///:memory:") is None

    pg = "postgresql+asyncpg://fleet:pw@db/fleet"
    assert config.Settings._normalize_database_url(pg) == pg
    assert config.sqlite_database_path(pg) is None


def test_fleet_settings_from_environment(monkeypatch):
    monkeypatch.setenv("FLEET_ADMIN_TENANT_ID", "  root ")
    monkeypatch.setenv("FLEET_RESTORE_ON_BOOT", "false")
    monkeypatch.setenv("FLEET_WORKER_FACTORY", "my_traders.factory:build")
    monkeypatch.setenv("FLEET_SHUTDOWN_TIMEOUT_SECONDS", "12.5")

    loaded = config.Settings(_env_file=None)

    assert loaded.FLEET_ADMIN_TENANT_ID == "root"
    assert loaded.FLEET_LEGACY_TENANT_ID == "default"
    assert loaded.FLEET_RESTORE_ON_BOOT is False
    assert loaded.FLEET_WORKER_FACTORY == "my_traders.factory:build"
    assert loaded.FLEET_SHUTDOWN_TIMEOUT_SECONDS == 12.5


def test_empty_tenant_id_is_rejected(monkeypatch):
    monkeypatch.setenv("FLEET_LEGACY_TENANT_ID", "   ")
    with pytest.raises(ValidationError):
        config.Settings(_env_file=None)
