from importlib import import_module

__all__ = [
    "FleetController",
    "FleetViews",
    "WorkerRegistry",
    "FleetConfigStore",
    "PollingWorker",
]

_LAZY_EXPORTS = {
    "FleetController": ("services.fleet.lifecycle", "FleetController"),
    "FleetViews": ("services.fleet.aggregation", "FleetViews"),
    "WorkerRegistry": ("services.fleet.registry", "WorkerRegistry"),
    "FleetConfigStore": ("services.fleet.store", "FleetConfigStore"),
    "PollingWorker": ("services.fleet.polling_worker", "PollingWorker"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
