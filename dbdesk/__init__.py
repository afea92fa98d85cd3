"""Embedded multi-engine SQL client core."""

from __future__ import annotations

from .handlers import DatabaseHandlers
from .models import EngineKind
from .registry import ConnectionRegistry

__version__ = "0.1.0"

__all__ = ["ConnectionRegistry", "DatabaseHandlers", "EngineKind", "__version__"]
