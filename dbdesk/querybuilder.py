"""Dialect-agnostic SQL statement construction and statement-safety helpers."""

from __future__ import annotations

import copy
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

from .dialects import Dialect, get_dialect
from .models import (
    ColumnInfo,
    Row,
    TableChanges,
    TableDelete,
    TableFilter,
    TableInsert,
    TableUpdate,
)
from .statements import IdentifiedStatement

LOG = logging.getLogger(__name__)

READ_ONLY_MESSAGE = "The database is opened in read-only mode and this query is not allowed."
READ_ONLY_ALLOWED = frozenset({"select", "pragma", "explain", "describe", "show"})

FilterLike = TableFilter | Mapping[str, Any]
FilterJoiner = Callable[[Sequence[str], Sequence[TableFilter]], str]
UpsertFactory = Callable[[dict[str, Any], list[Row], Sequence[str]], str]
OrderByItem = str | Mapping[str, Any]


def escape_string(value: Any) -> str:
    """Render a Python value as an inline SQL literal."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"0x{bytes(value).hex()}"
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat()}'"
    return "'" + str(value).replace("'", "''") + "'"


def join_filters(clauses: Sequence[str], filters: Sequence[TableFilter]) -> str:
    """Join filter clauses, honouring each filter's `op` against its predecessor."""

    joined = ""
    for index, clause in enumerate(clauses):
        if index == 0:
            joined = clause
            continue
        op = (filters[index].op or "AND").upper()
        joined = f"{joined} {op} {clause}"
    return joined


def build_filter_clause(item: TableFilter, *, inline: bool = False) -> str:
    """Render one filter descriptor as a boolean SQL expression.

    Plain comparisons bind their value as `?` unless `inline` is set, in which
    case the value is rendered as a literal and a `None` becomes an IS (NOT) NULL test.
    """

    kind = item.type
    if kind == "isNull":
        return f"{item.field} IS NULL"
    if kind == "isNotNull":
        return f"{item.field} IS NOT NULL"
    if kind in ("in", "notIn"):
        values = item.value if isinstance(item.value, (list, tuple)) else [item.value]
        keyword = "IN" if kind == "in" else "NOT IN"
        return f"{item.field} {keyword} ({', '.join(escape_string(value) for value in values)})"
    if kind == "between":
        low, high = item.value
        return f"{item.field} BETWEEN {escape_string(low)} AND {escape_string(high)}"
    if kind == "like":
        return f"{item.field} LIKE {escape_string(item.value)}"
    if kind == "notLike":
        return f"{item.field} NOT LIKE {escape_string(item.value)}"
    if not inline:
        return f"{item.field} {kind.upper()} ?"
    if item.value is None and kind in ("=", "!=", "<>"):
        return f"{item.field} IS NULL" if kind == "=" else f"{item.field} IS NOT NULL"
    return f"{item.field} {kind.upper()} {escape_string(item.value)}"


def build_database_filter(
    filters: Iterable[FilterLike] | None,
    dialect: Dialect | str | None = None,
    *,
    joiner: FilterJoiner = join_filters,
    inline: bool = False,
) -> str:
    """Build a `WHERE ...` clause; fields are passed through verbatim in every dialect."""

    items = _coerce_filters(filters)
    if not items:
        return ""
    clauses = [build_filter_clause(item, inline=inline) for item in items]
    return "WHERE " + joiner(clauses, items)


def build_schema_filter(schema: str | None) -> str:
    if not schema:
        return ""
    return f"AND table_schema = {escape_string(schema)}"


def build_select_top_query(
    table: str,
    offset: int,
    limit: int,
    order_by: Sequence[OrderByItem] | None,
    filters: Iterable[FilterLike] | None,
    count_title: str = "total",
    columns: Sequence[str] = (),
    selects: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Build a paginated SELECT plus a COUNT query sharing the same WHERE clause.

    `selects` wins over `columns`; when neither is given every column is selected.
    """

    LOG.debug(
        "Building select-top query",
        extra={"table": table, "offset": offset, "limit": limit, "order_by": order_by},
    )
    order_by_string = ""
    if order_by:
        parts: list[str] = []
        for item in order_by:
            if isinstance(item, Mapping):
                direction = str(item.get("direction") or "ASC").upper()
                parts.append(f"{item['field']} {direction}")
            else:
                parts.append(str(item))
        order_by_string = "ORDER BY " + ", ".join(parts)

    items = _coerce_filters(filters)
    filter_string = build_database_filter(items)
    params: list[Any] = []
    for item in items:
        if not item.value:
            continue
        if isinstance(item.value, (list, tuple)):
            params.extend(item.value)
        else:
            params.append(item.value)

    projection = selects or columns or ("*",)
    query = _join_parts(
        f"SELECT {', '.join(projection)} FROM {table}",
        filter_string,
        order_by_string,
        f"LIMIT {int(limit)} OFFSET {int(offset)}",
    )
    count_query = _join_parts(f"SELECT COUNT(*) as {count_title} FROM {table}", filter_string)
    return {"query": query, "countQuery": count_query, "params": params}


def build_insert_query(
    insert: TableInsert | Mapping[str, Any],
    columns: Sequence[ColumnInfo] = (),
    primary_keys: Sequence[str] = (),
    run_as_upsert: bool = False,
    upsert_factory: UpsertFactory | None = None,
    bit_conversion: Callable[[Any], Any] = lambda value: value,
    *,
    dialect: Dialect | str | None = None,
) -> str:
    """Build a multi-row INSERT, or an upsert when every primary key is present."""

    sql_dialect = get_dialect(dialect)
    insert = TableInsert.from_value(insert)
    if not insert.data:
        raise ValueError(f"Insert into '{insert.table}' has no rows")
    data = _prepare_insert_rows(copy.deepcopy(insert.data), columns, bit_conversion)
    first_keys = {_unescape_placeholder(key) for key in data[0]}
    can_upsert = run_as_upsert and bool(primary_keys) and all(key in first_keys for key in primary_keys)

    if can_upsert and upsert_factory is not None:
        target = {"schema": insert.schema, "name": insert.table, "entityType": "table"}
        return upsert_factory(target, data, list(primary_keys))

    insert_columns: list[str] = []
    for row in data:
        for key in row:
            if key not in insert_columns:
                insert_columns.append(key)
    missing = "NULL" if sql_dialect.name == "sqlite" else "DEFAULT"
    values = ", ".join(
        "(" + ", ".join(escape_string(row[key]) if key in row else missing for key in insert_columns) + ")"
        for row in data
    )
    column_list = ", ".join(_render_identifier(sql_dialect, key) for key in insert_columns)
    statement = (
        f"INSERT INTO {_qualified_table(sql_dialect, insert.table, insert.schema, insert.dataset)} "
        f"({column_list}) VALUES {values}"
    )
    if can_upsert:
        plain_columns = [_unescape_placeholder(key) for key in insert_columns]
        statement = f"{statement} {sql_dialect.upsert_clause(plain_columns, list(primary_keys))}"
    return statement


def build_insert_queries(
    inserts: Iterable[TableInsert | Mapping[str, Any]] | None,
    *,
    dialect: Dialect | str | None = None,
    run_as_upsert: bool = False,
    primary_keys: Sequence[str] = (),
    upsert_factory: UpsertFactory | None = None,
) -> list[str]:
    if not inserts:
        return []
    return [
        build_insert_query(
            insert,
            (),
            primary_keys,
            run_as_upsert,
            upsert_factory,
            dialect=dialect,
        )
        for insert in inserts
    ]


def build_update_queries(
    updates: Iterable[TableUpdate | Mapping[str, Any]] | None,
    *,
    dialect: Dialect | str | None = None,
) -> list[str]:
    sql_dialect = get_dialect(dialect)
    queries: list[str] = []
    for update in updates or ():
        update = TableUpdate.from_value(update)
        assignments = ", ".join(
            f"{sql_dialect.wrap_identifier(column)} = {escape_string(value)}"
            for column, value in update.data.items()
        )
        queries.append(
            _join_parts(
                f"UPDATE {_qualified_table(sql_dialect, update.table, update.schema)} SET {assignments}",
                build_database_filter(update.filters, inline=True),
            )
        )
    return queries


def build_delete_queries(
    deletes: Iterable[TableDelete | Mapping[str, Any]] | None,
    *,
    dialect: Dialect | str | None = None,
) -> list[str]:
    sql_dialect = get_dialect(dialect)
    queries: list[str] = []
    for delete in deletes or ():
        delete = TableDelete.from_value(delete)
        queries.append(
            _join_parts(
                f"DELETE FROM {_qualified_table(sql_dialect, delete.table, delete.schema)}",
                build_database_filter(delete.filters, inline=True),
            )
        )
    return queries


def build_select_queries_from_updates(
    updates: Iterable[TableUpdate | Mapping[str, Any]] | None,
    *,
    dialect: Dialect | str | None = None,
) -> list[str]:
    """SELECTs returning the rows an update batch is about to touch."""

    sql_dialect = get_dialect(dialect)
    queries: list[str] = []
    for update in updates or ():
        update = TableUpdate.from_value(update)
        queries.append(
            _join_parts(
                f"SELECT * FROM {_qualified_table(sql_dialect, update.table, update.schema)}",
                build_database_filter(update.filters, inline=True),
            )
        )
    return queries


def join_queries(queries: Sequence[str]) -> str:
    if not queries:
        return ""
    joined = ";\n".join(queries)
    return joined if joined.endswith(";") else f"{joined};"


def apply_changes_sql(
    changes: TableChanges | Mapping[str, Any] | None,
    dialect: Dialect | str | None = None,
) -> str:
    """Compile a change set into inserts, then updates, then deletes."""

    if not changes:
        return ""
    changes = TableChanges.from_value(changes)
    queries: list[str] = []
    queries.extend(build_insert_queries(changes.inserts, dialect=dialect))
    queries.extend(build_update_queries(changes.updates, dialect=dialect))
    queries.extend(build_delete_queries(changes.deletes, dialect=dialect))
    return join_queries(queries)


def is_allowed_read_only_query(statements: Sequence[IdentifiedStatement], read_only: bool) -> bool:
    """Return True when every statement is permitted under the read-only policy."""

    if not read_only or not statements:
        return True
    return all(statement.type.lower() in READ_ONLY_ALLOWED for statement in statements)


def _coerce_filters(filters: Iterable[FilterLike] | None) -> list[TableFilter]:
    return [TableFilter.from_value(item) for item in filters or ()]


def _prepare_insert_rows(
    data: list[Row],
    columns: Sequence[ColumnInfo],
    bit_conversion: Callable[[Any], Any],
) -> list[Row]:
    by_name = {column.column_name: column for column in columns}
    prepared: list[Row] = []
    for item in data:
        row: Row = {}
        for column, value in item.items():
            info = by_name.get(column)
            data_type = (info.data_type or "").lower() if info else ""
            if data_type.startswith("bit(") and value is not None:
                if data_type == "bit(1)":
                    value = bit_conversion(value)
                else:
                    value = _parse_bit_literal(value)
            elif data_type.startswith("bit") and isinstance(value, bool):
                value = 1 if value else 0
            if "?" in column:
                # `?` would read as a bind placeholder downstream.
                column = column.replace("?", "\\?")
            row[column] = value
        prepared.append(row)
    return prepared


def _parse_bit_literal(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    if "'" in text:
        text = text.split("'")[1]
    return int(text, 2)


def _unescape_placeholder(identifier: str) -> str:
    return identifier.replace("\\?", "?")


def _render_identifier(dialect: Dialect, identifier: str) -> str:
    return dialect.wrap_identifier(_unescape_placeholder(identifier))


def _qualified_table(
    dialect: Dialect,
    table: str,
    schema: str | None = None,
    dataset: str | None = None,
) -> str:
    parts = [part for part in (schema, dataset, table) if part]
    return ".".join(dialect.wrap_identifier(part) for part in parts)


def _join_parts(*parts: str) -> str:
    return " ".join(part for part in parts if part)


__all__ = [
    "READ_ONLY_ALLOWED",
    "READ_ONLY_MESSAGE",
    "apply_changes_sql",
    "build_database_filter",
    "build_delete_queries",
    "build_filter_clause",
    "build_insert_queries",
    "build_insert_query",
    "build_schema_filter",
    "build_select_queries_from_updates",
    "build_select_top_query",
    "build_update_queries",
    "escape_string",
    "is_allowed_read_only_query",
    "join_filters",
    "join_queries",
]
