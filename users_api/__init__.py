"""Core utilities for the users REST API."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings
from .storage import StorageAccessor


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the API application with the users page."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Settings",
    "StorageAccessor",
    "create_app",
    "load_settings",
]
