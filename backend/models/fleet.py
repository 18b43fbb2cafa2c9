"""In-memory types for the trader fleet.

Read models returned by the config store, the resolved per-worker
configuration handed to worker factories, typed worker status/account
structures, and the pydantic display payloads built by the aggregation views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from pydantic import BaseModel, Field

from services.fleet.errors import UnknownExchangeKindError


# ==================== PERSISTED READ MODELS ====================


@dataclass
class WorkerDefinition:
    id: str
    tenant_id: str
    name: str
    ai_provider_id: str
    exchange_id: str
    description: Optional[str] = None
    enabled: bool = True
    initial_balance: float = 1000.0
    scan_interval_minutes: int = 3
    is_running: bool = False
    custom_prompt: Optional[str] = None
    override_base_prompt: bool = False
    is_cross_margin: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ProviderConfig:
    id: str
    tenant_id: str
    provider: str
    enabled: bool = False
    name: str = ""
    api_key: Optional[str] = None


@dataclass
class ExchangeConfig:
    id: str
    tenant_id: str
    exchange_type: str
    enabled: bool = False
    name: str = ""
    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    testnet: bool = False
    wallet_address: Optional[str] = None
    account_user: Optional[str] = None
    signer_address: Optional[str] = None
    signer_private_key: Optional[str] = None


@dataclass(frozen=True)
class RiskSettings:
    """Global risk limits parsed from system settings."""

    max_daily_loss: float = 10.0
    max_drawdown: float = 20.0
    stop_trading_minutes: int = 60
    btc_eth_leverage: int = 5
    altcoin_leverage: int = 5
    coin_pool_api_url: str = ""


# ==================== RESOLVED CONFIGURATION ====================


@dataclass(frozen=True)
class ExchangeCredentials:
    """Credential fields populated for one exchange kind.

    ``configured`` is False when the kind has no credential mapping; such a
    config must never reach a worker factory (see ``require``).
    """

    kind: str
    api_key: str = ""
    secret_key: str = ""
    wallet_address: str = ""
    private_key: str = ""
    account_user: str = ""
    signer_address: str = ""
    testnet: bool = False
    configured: bool = True

    def require(self) -> "ExchangeCredentials":
        if not self.configured:
            raise UnknownExchangeKindError(f"No credential mapping for exchange kind {self.kind!r}")
        return self


@dataclass(frozen=True)
class ResolvedWorkerConfig:
    worker_id: str
    tenant_id: str
    name: str
    ai_provider: str
    ai_api_key: str
    exchange_id: str
    exchange_kind: str
    exchange_credentials: ExchangeCredentials
    scan_interval: timedelta
    initial_balance: float
    is_cross_margin: bool
    custom_prompt: str
    override_base_prompt: bool
    max_daily_loss: float
    max_drawdown: float
    stop_trading_time: timedelta
    btc_eth_leverage: int
    altcoin_leverage: int
    coin_pool_api_url: str = ""


# ==================== WORKER STATE ====================


@dataclass
class WorkerStatus:
    is_running: bool
    call_count: int = 0
    last_error: Optional[str] = None


@dataclass
class AccountSnapshot:
    total_equity: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    position_count: int = 0
    margin_used_pct: float = 0.0


# ==================== DISPLAY PAYLOADS ====================


class FleetRecord(BaseModel):
    """One worker row of a fleet snapshot."""

    worker_id: str
    worker_name: str
    tenant_id: str
    ai_model: str
    exchange_type: str = "Unknown"
    display_name: str
    total_equity: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    position_count: int = 0
    margin_used_pct: float = 0.0
    is_running: bool = False


class ComparisonRecord(BaseModel):
    """Performance comparison row across every loaded worker."""

    worker_id: str
    worker_name: str
    ai_model: str
    total_equity: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    position_count: int = 0
    margin_used_pct: float = 0.0
    call_count: int = 0
    is_running: bool = False


class FleetSnapshot(BaseModel):
    records: list[Union[FleetRecord, ComparisonRecord]] = Field(default_factory=list)
    count: int = 0
    # Unix seconds; only set for all-tenant views
    timestamp: Optional[int] = None


# ==================== CONTROLLER RESULTS ====================


@dataclass(frozen=True)
class FleetMode:
    fleet_wide: bool
    tenant_id: Optional[str] = None


@dataclass
class LoadReport:
    loaded: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    def merge(self, other: "LoadReport") -> None:
        self.loaded.extend(other.loaded)
        self.skipped.update(other.skipped)
        self.failed.update(other.failed)


@dataclass
class RestoreReport:
    started: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
