"""Domain services for Medilocker.

Subpackages are imported lazily to keep application startup free of
circular imports.
"""

from importlib import import_module

__all__ = [
    "AccessGrantEngine",
    "ActivityAggregator",
    "NotificationFanout",
    "NotificationService",
    "RecordStore",
    "UserDirectory",
]

_LAZY_IMPORTS = {
    "AccessGrantEngine": ("medilocker.services.access", "AccessGrantEngine"),
    "ActivityAggregator": ("medilocker.services.activity", "ActivityAggregator"),
    "NotificationFanout": ("medilocker.services.notifications", "NotificationFanout"),
    "NotificationService": ("medilocker.services.notifications", "NotificationService"),
    "RecordStore": ("medilocker.services.records", "RecordStore"),
    "UserDirectory": ("medilocker.services.users", "UserDirectory"),
}


def __getattr__(name: str):
    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)
