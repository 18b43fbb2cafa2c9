"""Exception taxonomy for the trader fleet.

Single-item operations (load one, get, remove one) raise these to the caller.
Batch operations (load scope, restore, snapshots) record them per item and
keep going.
"""


class FleetError(Exception):
    """Base class for fleet orchestration errors."""


class DuplicateWorkerError(FleetError):
    """A worker with this identifier is already registered."""

    def __init__(self, worker_id: str):
        super().__init__(f"Worker {worker_id!r} is already registered")
        self.worker_id = worker_id


class WorkerNotFoundError(FleetError, KeyError):
    def __init__(self, worker_id: str):
        super().__init__(f"Worker {worker_id!r} is not registered")
        self.worker_id = worker_id

    def __str__(self) -> str:
        return str(self.args[0])


class WorkerQueryError(FleetError):
    """A registered worker failed to answer a status or account query."""

    def __init__(self, worker_id: str, reason: str):
        super().__init__(f"Query for worker {worker_id!r} failed: {reason}")
        self.worker_id = worker_id
        self.reason = reason


class WorkerConstructionError(FleetError):
    """The worker factory could not build a worker from a resolved config."""


class UnknownExchangeKindError(WorkerConstructionError):
    """The exchange kind has no credential mapping."""


class InvalidDependencyError(FleetError):
    """A referenced provider or exchange config is missing or disabled."""


class TenantQuotaExceededError(FleetError):
    def __init__(self, tenant_id: str, limit: int):
        super().__init__(f"Tenant {tenant_id!r} already owns the maximum of {limit} workers")
        self.tenant_id = tenant_id
        self.limit = limit


class FatalWorkerError(FleetError):
    """Raised inside a worker cycle to end its run loop."""
