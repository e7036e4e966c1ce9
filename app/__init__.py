"""DramaBrowse catalog core and FastAPI facade."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "app": "app.main",
    "create_app": "app.main",
    "build_services": "app.main",
    "CatalogClient": "app.services.catalog_client",
    "FallbackResolver": "app.services.resolver",
    "ProgressStore": "app.services.progress",
    "TTLCache": "app.cache",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    # Deferred so importing a submodule does not build the FastAPI app.
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
