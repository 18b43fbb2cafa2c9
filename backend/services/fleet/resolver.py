"""Join worker definitions with provider, exchange and risk configuration.

Resolution is pure: it reads the typed records handed in and never touches the
store. Definitions whose dependencies are missing or disabled are skipped with
a reason; the rest of the batch still resolves.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable, Mapping, Optional

from models.fleet import (
    ExchangeConfig,
    ExchangeCredentials,
    ProviderConfig,
    ResolvedWorkerConfig,
    RiskSettings,
    WorkerDefinition,
)
from utils.logger import fleet_logger

logger = fleet_logger.with_context(component="resolver")

RISK_SETTING_KEYS = (
    "max_daily_loss",
    "max_drawdown",
    "stop_trading_minutes",
    "btc_eth_leverage",
    "altcoin_leverage",
    "coin_pool_api_url",
)

_DEFAULT_RISK = RiskSettings()


def _parse_float(raw: Optional[str], default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value):
        return default
    return value


def _parse_int(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def _parse_leverage(raw: Optional[str], default: int) -> int:
    value = _parse_int(raw, default)
    return value if value > 0 else default


def parse_risk_settings(values: Mapping[str, Optional[str]]) -> RiskSettings:
    """Risk settings from stored strings; absent or unparsable values keep their defaults."""
    return RiskSettings(
        max_daily_loss=_parse_float(values.get("max_daily_loss"), _DEFAULT_RISK.max_daily_loss),
        max_drawdown=_parse_float(values.get("max_drawdown"), _DEFAULT_RISK.max_drawdown),
        stop_trading_minutes=_parse_int(
            values.get("stop_trading_minutes"), _DEFAULT_RISK.stop_trading_minutes
        ),
        btc_eth_leverage=_parse_leverage(values.get("btc_eth_leverage"), _DEFAULT_RISK.btc_eth_leverage),
        altcoin_leverage=_parse_leverage(values.get("altcoin_leverage"), _DEFAULT_RISK.altcoin_leverage),
        coin_pool_api_url=(values.get("coin_pool_api_url") or "").strip(),
    )


# ==================== EXCHANGE CREDENTIALS ====================


def _binance_credentials(exchange: ExchangeConfig) -> ExchangeCredentials:
    return ExchangeCredentials(
        kind=exchange.exchange_type,
        api_key=exchange.api_key or "",
        secret_key=exchange.secret_key or "",
        testnet=exchange.testnet,
    )


def _hyperliquid_credentials(exchange: ExchangeConfig) -> ExchangeCredentials:
    # The api_key column holds the wallet private key for this kind
    return ExchangeCredentials(
        kind=exchange.exchange_type,
        private_key=exchange.api_key or "",
        wallet_address=exchange.wallet_address or "",
        testnet=exchange.testnet,
    )


def _aster_credentials(exchange: ExchangeConfig) -> ExchangeCredentials:
    return ExchangeCredentials(
        kind=exchange.exchange_type,
        account_user=exchange.account_user or "",
        signer_address=exchange.signer_address or "",
        private_key=exchange.signer_private_key or "",
        testnet=exchange.testnet,
    )


CREDENTIAL_BUILDERS: dict[str, Callable[[ExchangeConfig], ExchangeCredentials]] = {
    "binance": _binance_credentials,
    "hyperliquid": _hyperliquid_credentials,
    "aster": _aster_credentials,
}


def build_exchange_credentials(exchange: ExchangeConfig) -> ExchangeCredentials:
    builder = CREDENTIAL_BUILDERS.get((exchange.exchange_type or "").strip().lower())
    if builder is None:
        return ExchangeCredentials(kind=exchange.exchange_type, testnet=exchange.testnet, configured=False)
    return builder(exchange)


# ==================== RESOLUTION ====================


@dataclass
class ResolutionResult:
    configs: list[ResolvedWorkerConfig] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


def resolve_worker_config(
    definition: WorkerDefinition,
    provider: ProviderConfig,
    exchange: ExchangeConfig,
    risk: RiskSettings,
) -> ResolvedWorkerConfig:
    return ResolvedWorkerConfig(
        worker_id=definition.id,
        tenant_id=definition.tenant_id,
        name=definition.name,
        ai_provider=provider.provider,
        ai_api_key=provider.api_key or "",
        exchange_id=exchange.id,
        exchange_kind=exchange.exchange_type,
        exchange_credentials=build_exchange_credentials(exchange),
        scan_interval=timedelta(minutes=definition.scan_interval_minutes),
        initial_balance=definition.initial_balance,
        is_cross_margin=definition.is_cross_margin,
        custom_prompt=definition.custom_prompt or "",
        override_base_prompt=definition.override_base_prompt,
        max_daily_loss=risk.max_daily_loss,
        max_drawdown=risk.max_drawdown,
        stop_trading_time=timedelta(minutes=risk.stop_trading_minutes),
        btc_eth_leverage=risk.btc_eth_leverage,
        altcoin_leverage=risk.altcoin_leverage,
        coin_pool_api_url=risk.coin_pool_api_url,
    )


def _skip_reason(
    definition: WorkerDefinition,
    provider: Optional[ProviderConfig],
    exchange: Optional[ExchangeConfig],
) -> Optional[str]:
    if not definition.enabled:
        return "worker definition disabled"
    if provider is None:
        return f"ai provider {definition.ai_provider_id!r} not found"
    if not provider.enabled:
        return f"ai provider {definition.ai_provider_id!r} disabled"
    if exchange is None:
        return f"exchange {definition.exchange_id!r} not found"
    if not exchange.enabled:
        return f"exchange {definition.exchange_id!r} disabled"
    return None


def resolve_worker_configs(
    definitions: Iterable[WorkerDefinition],
    providers: Iterable[ProviderConfig],
    exchanges: Iterable[ExchangeConfig],
    risk: RiskSettings,
) -> ResolutionResult:
    """Resolve one tenant's definitions against that tenant's providers and exchanges."""
    providers_by_id = {provider.id: provider for provider in providers}
    exchanges_by_id = {exchange.id: exchange for exchange in exchanges}
    result = ResolutionResult()

    for definition in definitions:
        provider = providers_by_id.get(definition.ai_provider_id)
        exchange = exchanges_by_id.get(definition.exchange_id)
        reason = _skip_reason(definition, provider, exchange)
        if reason is not None:
            logger.warning(
                "Skipping worker definition",
                worker_id=definition.id,
                tenant_id=definition.tenant_id,
                reason=reason,
            )
            result.skipped[definition.id] = reason
            continue
        result.configs.append(resolve_worker_config(definition, provider, exchange, risk))

    return result
