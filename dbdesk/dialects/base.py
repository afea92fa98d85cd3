"""Dialect contract shared by the per-engine identifier/DDL helpers."""

from __future__ import annotations

from typing import Sequence

from sqlglot import exp

from ..models import CreateIndexSpec, DropIndexSpec


class Dialect:
    """Identifier quoting and DDL fragments for one SQL dialect."""

    name = "generic"
    sqlglot_name = ""

    def wrap_identifier(self, value: str) -> str:
        """Quote a single identifier the way the engine expects."""

        if value == "*":
            return value
        return exp.to_identifier(value, quoted=True).sql(dialect=self.sqlglot_name or None)

    def wrap_literal(self, value: str) -> str:
        return "'" + str(value).replace("'", "''") + "'"

    def qualify(self, table: str, schema: str | None = None) -> str:
        """Quote `schema.table`, omitting the schema when absent."""

        if schema:
            return f"{self.wrap_identifier(schema)}.{self.wrap_identifier(table)}"
        return self.wrap_identifier(table)

    def drop_index_sql(self, spec: DropIndexSpec, table: str, schema: str | None = None) -> str:
        return f"DROP INDEX {self.qualify(spec.name, schema)}"

    def create_index_sql(self, spec: CreateIndexSpec, table: str, schema: str | None = None) -> str:
        unique = "UNIQUE " if spec.unique else ""
        columns = ", ".join(self.wrap_identifier(column) for column in spec.columns)
        return (
            f"CREATE {unique}INDEX {self.wrap_identifier(spec.name)} "
            f"ON {self.qualify(table, schema)} ({columns})"
        )

    def upsert_clause(self, columns: Sequence[str], primary_keys: Sequence[str]) -> str:
        """Conflict-merge tail appended to an INSERT statement."""

        targets = ", ".join(self.wrap_identifier(key) for key in primary_keys)
        updates = [column for column in columns if column not in primary_keys]
        if not updates:
            return f"ON CONFLICT ({targets}) DO NOTHING"
        assignments = ", ".join(
            f"{self.wrap_identifier(column)} = excluded.{self.wrap_identifier(column)}"
            for column in updates
        )
        return f"ON CONFLICT ({targets}) DO UPDATE SET {assignments}"


__all__ = ["Dialect"]
