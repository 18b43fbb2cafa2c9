from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    if backend_dir.name == "backend":
        return backend_dir.parent.resolve()
    return backend_dir.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_DEFAULT_DB_PATH = (_PROJECT_ROOT / "data" / "fleet.db").resolve()
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"


class Settings(BaseSettings):
    # Database - canonical path under project-root data directory
    DATABASE_URL: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"
    DATABASE_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None

    # Fernet key material for credential columns (enc:v1: envelope)
    APP_SECRETS_KEY: Optional[str] = None

    # Fleet deployment mode. The admin tenant is used in single-tenant mode
    # unless the admin_mode system setting is "false", in which case the
    # legacy tenant owns the fleet.
    FLEET_ADMIN_TENANT_ID: str = "admin"
    FLEET_LEGACY_TENANT_ID: str = "default"

    # Boot behaviour
    FLEET_RESTORE_ON_BOOT: bool = True
    FLEET_SEED_SYSTEM_SETTINGS: bool = True

    # "package.module:callable" returning a Worker for a ResolvedWorkerConfig
    FLEET_WORKER_FACTORY: Optional[str] = None

    # Only used at process exit; the orchestration core itself never times out a worker
    FLEET_SHUTDOWN_TIMEOUT_SECONDS: Optional[float] = None

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so worker cwd changes never split databases."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            return f"{prefix}{absolute}"

        return text

    @field_validator("FLEET_ADMIN_TENANT_ID", "FLEET_LEGACY_TENANT_ID", mode="before")
    @classmethod
    def _normalize_tenant_id(cls, value: object) -> object:
        if value is None:
            return value
        text = str(value).strip()
        if not text:
            raise ValueError("tenant id must not be empty")
        return text

    model_config = SettingsConfigDict(
        # Load project-root .env first, then backend/.env as an override if present.
        env_file=(
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        ),
        env_file_encoding="utf-8",
        extra="ignore",
    )


def sqlite_database_path(database_url: str) -> Optional[Path]:
    """Return the on-disk path of a file-backed SQLite URL, else None."""
    for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
        if database_url.startswith(prefix):
            path_part = database_url[len(prefix) :]
            if not path_part or path_part == ":memory:":
                return None
            return Path(path_part)
    return None


settings = Settings()
