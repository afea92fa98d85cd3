"""MySQL identifier quoting and DDL helpers."""

from __future__ import annotations

from typing import Sequence

from ..models import DropIndexSpec
from .base import Dialect


class MysqlDialect(Dialect):
    name = "mysql"
    sqlglot_name = "mysql"

    def drop_index_sql(self, spec: DropIndexSpec, table: str, schema: str | None = None) -> str:
        return f"DROP INDEX {self.wrap_identifier(spec.name)} ON {self.qualify(table, schema)}"

    def upsert_clause(self, columns: Sequence[str], primary_keys: Sequence[str]) -> str:
        updates = [column for column in columns if column not in primary_keys] or list(primary_keys[:1])
        assignments = ", ".join(
            f"{self.wrap_identifier(column)} = VALUES({self.wrap_identifier(column)})"
            for column in updates
        )
        return f"ON DUPLICATE KEY UPDATE {assignments}"


__all__ = ["MysqlDialect"]
