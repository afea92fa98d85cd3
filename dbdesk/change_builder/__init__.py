"""DDL change builders, one per dialect."""

from __future__ import annotations

from ..models import EngineKind
from .base import ChangeBuilderBase
from .mysql import MySqlChangeBuilder
from .postgresql import PostgresChangeBuilder
from .sqlite import SqliteChangeBuilder


def change_builder_for(kind: EngineKind | str, table: str, schema: str | None = None) -> ChangeBuilderBase:
    """Return the change builder matching an engine kind."""

    match EngineKind.parse(kind):
        case EngineKind.MYSQL:
            return MySqlChangeBuilder(table, schema)
        case EngineKind.POSTGRESQL:
            return PostgresChangeBuilder(table, schema)
        case EngineKind.SQLITE:
            return SqliteChangeBuilder(table, schema)
    raise ValueError(f"No change builder for {kind!r}")


__all__ = [
    "ChangeBuilderBase",
    "MySqlChangeBuilder",
    "PostgresChangeBuilder",
    "SqliteChangeBuilder",
    "change_builder_for",
]
