__all__ = [
    "inventory_router",
    "transaction_router",
    "transfer_router",
    "warehouse_router",
    "register_error_handlers",
]

# Resolved lazily: protean's domain traversal loads the submodules before this
# package, so eager re-exports here would form an import cycle.
_SOURCES = {
    "register_error_handlers": "warehousing.api.errors",
    "inventory_router": "warehousing.api.routes",
    "transaction_router": "warehousing.api.routes",
    "transfer_router": "warehousing.api.routes",
    "warehouse_router": "warehousing.api.routes",
}


def __getattr__(name):
    if name in _SOURCES:
        import importlib

        return getattr(importlib.import_module(_SOURCES[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
