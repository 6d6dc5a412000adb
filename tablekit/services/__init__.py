"""Service package exports."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = ["tables"]


def __getattr__(name: str) -> Any:
    if name == "tables":
        return importlib.import_module("tablekit.services.tables")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
