"""SQLite identifier quoting and DDL helpers."""

from __future__ import annotations

from ..models import CreateIndexSpec, DropIndexSpec
from .base import Dialect


class SqliteDialect(Dialect):
    name = "sqlite"
    sqlglot_name = "sqlite"

    def drop_index_sql(self, spec: DropIndexSpec, table: str, schema: str | None = None) -> str:
        return f"DROP INDEX {self.wrap_identifier(spec.name)}"

    def create_index_sql(self, spec: CreateIndexSpec, table: str, schema: str | None = None) -> str:
        # SQLite qualifies the index name, never the indexed table.
        unique = "UNIQUE " if spec.unique else ""
        columns = ", ".join(self.wrap_identifier(column) for column in spec.columns)
        return (
            f"CREATE {unique}INDEX {self.qualify(spec.name, schema)} "
            f"ON {self.wrap_identifier(table)} ({columns})"
        )


__all__ = ["SqliteDialect"]
