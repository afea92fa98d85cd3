"""Common contract for the per-dialect DDL change builders."""

from __future__ import annotations

from typing import Iterable, Mapping

from ..dialects import Dialect
from ..models import CreateIndexSpec, DropIndexSpec
from ..querybuilder import escape_string


class ChangeBuilderBase:
    """Turns schema edits for one table into DDL text."""

    dialect: Dialect

    def __init__(self, table: str, schema: str | None = None) -> None:
        self.table = table
        self.schema = schema

    def wrap_identifier(self, value: str) -> str:
        return self.dialect.wrap_identifier(value)

    def wrap_literal(self, value: str) -> str:
        return self.dialect.wrap_literal(value)

    @staticmethod
    def escape_string(value: object) -> str:
        return escape_string(value)

    def drop_indexes(self, drops: Iterable[DropIndexSpec | Mapping[str, str]] | None) -> str | None:
        specs = [_drop_spec(item) for item in drops or ()]
        if not specs:
            return None
        return ";".join(self.dialect.drop_index_sql(spec, self.table, self.schema) for spec in specs)

    def create_indexes(self, creates: Iterable[CreateIndexSpec] | None) -> str | None:
        specs = list(creates or ())
        if not specs:
            return None
        return ";".join(self.dialect.create_index_sql(spec, self.table, self.schema) for spec in specs)


def _drop_spec(item: DropIndexSpec | Mapping[str, str]) -> DropIndexSpec:
    if isinstance(item, DropIndexSpec):
        return item
    return DropIndexSpec(name=str(item["name"]))


__all__ = ["ChangeBuilderBase"]
