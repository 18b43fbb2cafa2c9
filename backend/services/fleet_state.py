"""DB-backed state for the trader fleet: definitions, credentials and system settings."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.database import (
    ExchangeConfigRow,
    ProviderConfigRow,
    SystemSettingRow,
    WorkerDefinitionRow,
)
from models.fleet import ExchangeConfig, ProviderConfig, WorkerDefinition
from services.fleet.errors import InvalidDependencyError, TenantQuotaExceededError
from services.fleet.tenancy import make_worker_id
from utils.logger import store_logger as logger
from utils.secrets import decrypt_secret, encrypt_secret
from utils.utcnow import utcnow

QUOTA_SETTING_KEY = "max_workers_per_tenant"
DEFAULT_WORKER_QUOTA = 10
DEFAULT_SYSTEM_SETTINGS: dict[str, str] = {
    "admin_mode": "true",
    "multi_user_mode": "false",
    "max_daily_loss": "10.0",
    "max_drawdown": "20.0",
    "stop_trading_minutes": "60",
    "btc_eth_leverage": "5",
    "altcoin_leverage": "3",
    QUOTA_SETTING_KEY: str(DEFAULT_WORKER_QUOTA),
    "coin_pool_api_url": "",
}
_EXCHANGE_SECRET_FIELDS = ("api_key", "secret_key", "signer_private_key")
_EXCHANGE_PLAIN_FIELDS = ("wallet_address", "account_user", "signer_address")


def _now() -> datetime:
    return utcnow()


def _new_id() -> str:
    return uuid.uuid4().hex


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _serialize_definition(row: WorkerDefinitionRow) -> WorkerDefinition:
    return WorkerDefinition(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        ai_provider_id=row.ai_provider_id,
        exchange_id=row.exchange_id,
        description=row.description,
        enabled=bool(row.enabled),
        initial_balance=float(row.initial_balance if row.initial_balance is not None else 1000.0),
        scan_interval_minutes=int(row.scan_interval_minutes or 3),
        is_running=bool(row.is_running),
        custom_prompt=row.custom_prompt,
        override_base_prompt=bool(row.override_base_prompt),
        is_cross_margin=bool(row.is_cross_margin),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _serialize_provider(row: ProviderConfigRow) -> ProviderConfig:
    return ProviderConfig(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name or "",
        provider=row.provider,
        enabled=bool(row.enabled),
        api_key=decrypt_secret(row.api_key),
    )


def _serialize_exchange(row: ExchangeConfigRow) -> ExchangeConfig:
    return ExchangeConfig(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name or "",
        exchange_type=row.exchange_type,
        enabled=bool(row.enabled),
        api_key=decrypt_secret(row.api_key),
        secret_key=decrypt_secret(row.secret_key),
        testnet=bool(row.testnet),
        wallet_address=row.wallet_address,
        account_user=row.account_user,
        signer_address=row.signer_address,
        signer_private_key=decrypt_secret(row.signer_private_key),
    )


# ==================== SYSTEM SETTINGS ====================


async def get_system_setting(session: AsyncSession, key: str) -> Optional[str]:
    row = await session.get(SystemSettingRow, key)
    return row.value if row is not None else None


async def get_system_settings(session: AsyncSession, keys: Iterable[str]) -> dict[str, Optional[str]]:
    wanted = list(dict.fromkeys(keys))
    values: dict[str, Optional[str]] = {key: None for key in wanted}
    if not wanted:
        return values
    rows = (await session.execute(select(SystemSettingRow).where(SystemSettingRow.key.in_(wanted)))).scalars().all()
    for row in rows:
        values[row.key] = row.value
    return values


async def set_system_setting(session: AsyncSession, key: str, value: Any) -> None:
    text = "" if value is None else str(value)
    row = await session.get(SystemSettingRow, key)
    if row is None:
        session.add(SystemSettingRow(key=key, value=text, updated_at=_now()))
    else:
        row.value = text
        row.updated_at = _now()
    await session.commit()


async def seed_system_settings(session: AsyncSession, defaults: Optional[dict[str, str]] = None) -> list[str]:
    """Insert defaults for keys that are not stored yet. Returns the keys inserted."""
    defaults = DEFAULT_SYSTEM_SETTINGS if defaults is None else defaults
    existing = (
        await session.execute(select(SystemSettingRow.key).where(SystemSettingRow.key.in_(list(defaults))))
    ).scalars().all()
    present = set(existing)
    inserted: list[str] = []
    for key, value in defaults.items():
        if key in present:
            continue
        session.add(SystemSettingRow(key=key, value=value, updated_at=_now()))
        inserted.append(key)
    if inserted:
        await session.commit()
        logger.info("Seeded system settings", keys=inserted)
    return inserted


# ==================== AI PROVIDERS ====================


async def list_provider_configs(session: AsyncSession, tenant_id: str) -> list[ProviderConfig]:
    rows = (
        await session.execute(
            select(ProviderConfigRow)
            .where(ProviderConfigRow.tenant_id == tenant_id)
            .order_by(ProviderConfigRow.id.asc())
        )
    ).scalars().all()
    return [_serialize_provider(row) for row in rows]


async def create_provider_config(
    session: AsyncSession,
    tenant_id: str,
    payload: dict[str, Any],
) -> ProviderConfig:
    provider = _clean_str(payload.get("provider"))
    if not provider:
        raise ValueError("Provider kind is required")
    row = ProviderConfigRow(
        id=_clean_str(payload.get("id")) or make_worker_id(tenant_id, _new_id()),
        tenant_id=tenant_id,
        name=_clean_str(payload.get("name")) or provider,
        provider=provider.lower(),
        enabled=bool(payload.get("enabled", False)),
        api_key=encrypt_secret(_clean_str(payload.get("api_key"))),
        created_at=_now(),
        updated_at=_now(),
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return _serialize_provider(row)


async def update_provider_config(
    session: AsyncSession,
    tenant_id: str,
    provider_id: str,
    payload: dict[str, Any],
) -> Optional[ProviderConfig]:
    row = await session.get(ProviderConfigRow, (provider_id, tenant_id))
    if row is None:
        return None
    if "name" in payload:
        row.name = _clean_str(payload.get("name")) or row.name
    if "enabled" in payload:
        row.enabled = bool(payload.get("enabled"))
    # Empty key keeps the stored one
    if _clean_str(payload.get("api_key")):
        row.api_key = encrypt_secret(_clean_str(payload.get("api_key")))
    row.updated_at = _now()
    await session.commit()
    await session.refresh(row)
    return _serialize_provider(row)


async def delete_provider_config(session: AsyncSession, tenant_id: str, provider_id: str) -> bool:
    row = await session.get(ProviderConfigRow, (provider_id, tenant_id))
    if row is None:
        return False
    await session.delete(row)
    await session.commit()
    return True


# ==================== EXCHANGES ====================


async def list_exchange_configs(session: AsyncSession, tenant_id: str) -> list[ExchangeConfig]:
    rows = (
        await session.execute(
            select(ExchangeConfigRow)
            .where(ExchangeConfigRow.tenant_id == tenant_id)
            .order_by(ExchangeConfigRow.id.asc())
        )
    ).scalars().all()
    return [_serialize_exchange(row) for row in rows]


async def create_exchange_config(
    session: AsyncSession,
    tenant_id: str,
    payload: dict[str, Any],
) -> ExchangeConfig:
    exchange_type = _clean_str(payload.get("exchange_type"))
    if not exchange_type:
        raise ValueError("Exchange type is required")
    row = ExchangeConfigRow(
        id=_clean_str(payload.get("id")) or make_worker_id(tenant_id, _new_id()),
        tenant_id=tenant_id,
        name=_clean_str(payload.get("name")) or exchange_type,
        exchange_type=exchange_type.lower(),
        enabled=bool(payload.get("enabled", False)),
        testnet=bool(payload.get("testnet", False)),
        created_at=_now(),
        updated_at=_now(),
    )
    for field in _EXCHANGE_SECRET_FIELDS:
        setattr(row, field, encrypt_secret(_clean_str(payload.get(field))))
    for field in _EXCHANGE_PLAIN_FIELDS:
        setattr(row, field, _clean_str(payload.get(field)))
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return _serialize_exchange(row)


async def update_exchange_config(
    session: AsyncSession,
    tenant_id: str,
    exchange_id: str,
    payload: dict[str, Any],
) -> Optional[ExchangeConfig]:
    row = await session.get(ExchangeConfigRow, (exchange_id, tenant_id))
    if row is None:
        return None
    if "name" in payload:
        row.name = _clean_str(payload.get("name")) or row.name
    if "enabled" in payload:
        row.enabled = bool(payload.get("enabled"))
    if "testnet" in payload:
        row.testnet = bool(payload.get("testnet"))
    for field in _EXCHANGE_SECRET_FIELDS:
        if _clean_str(payload.get(field)):
            setattr(row, field, encrypt_secret(_clean_str(payload.get(field))))
    for field in _EXCHANGE_PLAIN_FIELDS:
        if field in payload:
            setattr(row, field, _clean_str(payload.get(field)))
    row.updated_at = _now()
    await session.commit()
    await session.refresh(row)
    return _serialize_exchange(row)


async def delete_exchange_config(session: AsyncSession, tenant_id: str, exchange_id: str) -> bool:
    row = await session.get(ExchangeConfigRow, (exchange_id, tenant_id))
    if row is None:
        return False
    await session.delete(row)
    await session.commit()
    return True


# ==================== WORKER DEFINITIONS ====================


async def list_worker_definitions(session: AsyncSession, tenant_id: str) -> list[WorkerDefinition]:
    rows = (
        await session.execute(
            select(WorkerDefinitionRow)
            .where(WorkerDefinitionRow.tenant_id == tenant_id)
            .order_by(WorkerDefinitionRow.created_at.desc())
        )
    ).scalars().all()
    return [_serialize_definition(row) for row in rows]


async def list_all_worker_definitions(session: AsyncSession) -> list[WorkerDefinition]:
    rows = (
        await session.execute(select(WorkerDefinitionRow).order_by(WorkerDefinitionRow.created_at.desc()))
    ).scalars().all()
    return [_serialize_definition(row) for row in rows]


async def get_worker_definition(
    session: AsyncSession,
    tenant_id: str,
    worker_id: str,
) -> Optional[WorkerDefinition]:
    row = await session.get(WorkerDefinitionRow, worker_id)
    if row is None or row.tenant_id != tenant_id:
        return None
    return _serialize_definition(row)


async def _require_enabled(session: AsyncSession, model: type, config_id: str, tenant_id: str, label: str) -> None:
    row = await session.get(model, (config_id, tenant_id))
    if row is None:
        raise InvalidDependencyError(f"{label} {config_id!r} does not exist for tenant {tenant_id!r}")
    if not row.enabled:
        raise InvalidDependencyError(f"{label} {config_id!r} is disabled")


async def worker_quota(session: AsyncSession) -> int:
    return _safe_int(await get_system_setting(session, QUOTA_SETTING_KEY), DEFAULT_WORKER_QUOTA)


async def create_worker_definition(
    session: AsyncSession,
    tenant_id: str,
    payload: dict[str, Any],
) -> WorkerDefinition:
    name = _clean_str(payload.get("name"))
    if not name:
        raise ValueError("Worker name is required")
    ai_provider_id = _clean_str(payload.get("ai_provider_id")) or ""
    exchange_id = _clean_str(payload.get("exchange_id")) or ""

    await _require_enabled(session, ProviderConfigRow, ai_provider_id, tenant_id, "AI provider")
    await _require_enabled(session, ExchangeConfigRow, exchange_id, tenant_id, "Exchange")

    owned = int(
        (
            await session.execute(
                select(func.count(WorkerDefinitionRow.id)).where(WorkerDefinitionRow.tenant_id == tenant_id)
            )
        ).scalar()
        or 0
    )
    limit = await worker_quota(session)
    if owned >= limit:
        raise TenantQuotaExceededError(tenant_id, limit)

    worker_id = _clean_str(payload.get("id")) or make_worker_id(tenant_id, _new_id())
    if await session.get(WorkerDefinitionRow, worker_id) is not None:
        raise ValueError(f"Worker id {worker_id!r} already exists")

    row = WorkerDefinitionRow(
        id=worker_id,
        tenant_id=tenant_id,
        name=name,
        ai_provider_id=ai_provider_id,
        exchange_id=exchange_id,
        description=_clean_str(payload.get("description")),
        enabled=bool(payload.get("enabled", True)),
        initial_balance=float(payload.get("initial_balance") or 1000.0),
        scan_interval_minutes=max(1, _safe_int(payload.get("scan_interval_minutes"), 3)),
        is_running=False,
        custom_prompt=_clean_str(payload.get("custom_prompt")),
        override_base_prompt=bool(payload.get("override_base_prompt", False)),
        is_cross_margin=bool(payload.get("is_cross_margin", True)),
        created_at=_now(),
        updated_at=_now(),
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    logger.info("Worker definition created", worker_id=worker_id, tenant_id=tenant_id)
    return _serialize_definition(row)


async def set_worker_run_flag(session: AsyncSession, tenant_id: str, worker_id: str, running: bool) -> bool:
    row = await session.get(WorkerDefinitionRow, worker_id)
    if row is None or row.tenant_id != tenant_id:
        return False
    row.is_running = bool(running)
    row.updated_at = _now()
    await session.commit()
    return True


async def update_worker_prompt(
    session: AsyncSession,
    tenant_id: str,
    worker_id: str,
    custom_prompt: Optional[str],
    override_base_prompt: bool,
) -> Optional[WorkerDefinition]:
    row = await session.get(WorkerDefinitionRow, worker_id)
    if row is None or row.tenant_id != tenant_id:
        return None
    row.custom_prompt = _clean_str(custom_prompt)
    row.override_base_prompt = bool(override_base_prompt)
    row.updated_at = _now()
    await session.commit()
    await session.refresh(row)
    return _serialize_definition(row)


async def delete_worker_definition(session: AsyncSession, tenant_id: str, worker_id: str) -> bool:
    result = await session.execute(
        delete(WorkerDefinitionRow).where(
            WorkerDefinitionRow.id == worker_id,
            WorkerDefinitionRow.tenant_id == tenant_id,
        )
    )
    await session.commit()
    return bool(result.rowcount)
