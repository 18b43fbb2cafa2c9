from .fleet import (
    AccountSnapshot,
    ComparisonRecord,
    ExchangeConfig,
    ExchangeCredentials,
    FleetMode,
    FleetRecord,
    FleetSnapshot,
    LoadReport,
    ProviderConfig,
    ResolvedWorkerConfig,
    RestoreReport,
    RiskSettings,
    WorkerDefinition,
    WorkerStatus,
)

__all__ = [
    "AccountSnapshot",
    "ComparisonRecord",
    "ExchangeConfig",
    "ExchangeCredentials",
    "FleetMode",
    "FleetRecord",
    "FleetSnapshot",
    "LoadReport",
    "ProviderConfig",
    "ResolvedWorkerConfig",
    "RestoreReport",
    "RiskSettings",
    "WorkerDefinition",
    "WorkerStatus",
]
