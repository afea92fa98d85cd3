"""Per-engine dialect helpers."""

from __future__ import annotations

from ..models import EngineKind
from .base import Dialect
from .mysql import MysqlDialect
from .postgresql import PostgresDialect
from .sqlite import SqliteDialect

_DIALECTS: dict[str, Dialect] = {
    "generic": Dialect(),
    "mysql": MysqlDialect(),
    "postgresql": PostgresDialect(),
    "postgres": PostgresDialect(),
    "sqlite": SqliteDialect(),
}


def get_dialect(name: Dialect | EngineKind | str | None) -> Dialect:
    """Return the dialect helper for an engine kind or dialect name."""

    if isinstance(name, Dialect):
        return name
    if isinstance(name, EngineKind):
        key = name.value
    else:
        key = (name or "generic").lower()
    try:
        return _DIALECTS[key]
    except KeyError:
        raise ValueError(f"Unknown SQL dialect '{name}'") from None


__all__ = ["Dialect", "MysqlDialect", "PostgresDialect", "SqliteDialect", "get_dialect"]
