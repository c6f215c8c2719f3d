"""StreamFlix catalog API package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["app", "create_app"]


def __getattr__(name: str) -> Any:
    # Defer importing the FastAPI app so ``app.services`` can be used on its own.
    if name in __all__:
        return getattr(import_module("app.main"), name)
    raise AttributeError(f"module 'app' has no attribute {name}")
