"""Daekho movie discovery service.

The FastAPI application is imported lazily so that service modules and tests
can use ``app.*`` without building the app and its settings-driven lifespan.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "1.0.0"

_LAZY_EXPORTS: dict[str, str] = {
    "app": "app.main",
    "create_app": "app.main",
    "settings": "app.config",
}

__all__ = ["__version__", *_LAZY_EXPORTS]


def __getattr__(name: str) -> Any:
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
