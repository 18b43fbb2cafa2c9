from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
import logging

from config import settings, sqlite_database_path
from models.types import PreciseFloat

logger = logging.getLogger(__name__)

Base = declarative_base()


# ==================== FLEET CONFIGURATION ====================


class WorkerDefinitionRow(Base):
    """Persisted definition of one trader worker owned by a tenant."""

    __tablename__ = "worker_definitions"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    ai_provider_id = Column(String, nullable=False)
    exchange_id = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    initial_balance = Column(PreciseFloat, nullable=False, default=1000.0)
    scan_interval_minutes = Column(Integer, nullable=False, default=3)
    # Persisted "should be running" flag consulted by restore-on-boot
    is_running = Column(Boolean, nullable=False, default=False)
    custom_prompt = Column(Text, nullable=True)
    override_base_prompt = Column(Boolean, nullable=False, default=False)
    is_cross_margin = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_worker_definitions_tenant_running", "tenant_id", "is_running"),
    )


class ProviderConfigRow(Base):
    """AI provider credentials, scoped per tenant."""

    __tablename__ = "ai_provider_configs"

    id = Column(String, nullable=False)
    tenant_id = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    provider = Column(String, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    api_key = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (PrimaryKeyConstraint("id", "tenant_id"),)


class ExchangeConfigRow(Base):
    """Exchange credentials, scoped per tenant. Populated columns depend on exchange_type."""

    __tablename__ = "exchange_configs"

    id = Column(String, nullable=False)
    tenant_id = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    exchange_type = Column(String, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    api_key = Column(Text, nullable=True)
    secret_key = Column(Text, nullable=True)
    testnet = Column(Boolean, nullable=False, default=False)
    wallet_address = Column(String, nullable=True)
    account_user = Column(String, nullable=True)
    signer_address = Column(String, nullable=True)
    signer_private_key = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (PrimaryKeyConstraint("id", "tenant_id"),)


class SystemSettingRow(Base):
    """Global key/value settings (deployment mode switches, risk limits, quotas)."""

    __tablename__ = "system_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ==================== DATABASE SETUP ====================

# SQLite-specific: improve concurrency (WAL + busy_timeout applied in _set_sqlite_pragma)
_engine_kw: dict = {"echo": settings.DATABASE_ECHO}
if "sqlite" in settings.DATABASE_URL:
    _engine_kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked

async_engine = create_async_engine(settings.DATABASE_URL, **_engine_kw)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for better concurrent access (WAL mode, busy timeout)."""
    if "sqlite" not in settings.DATABASE_URL:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# Apply pragmas on each new SQLite connection
event.listens_for(async_engine.sync_engine, "connect")(_set_sqlite_pragma)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


async def init_database():
    """Create the fleet tables if they do not exist yet."""
    db_path = sqlite_database_path(settings.DATABASE_URL)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")
