"""Shared dataclasses used across the registry, clients, and query builders."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from .errors import UnsupportedEngineError

if TYPE_CHECKING:
    from .clients.base import BasicDatabaseClient

Row = dict[str, Any]


class EngineKind(str, Enum):
    """Database backends the core can talk to."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: "EngineKind | str") -> "EngineKind":
        """Resolve user input into an engine kind."""

        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key == "postgres":
            key = cls.POSTGRESQL.value
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedEngineError(f"Unsupported database type: {value}") from None

    @property
    def is_network(self) -> bool:
        return self is not EngineKind.SQLITE

    @property
    def sqlglot_dialect(self) -> str:
        return _SQLGLOT_DIALECTS[self]


_SQLGLOT_DIALECTS = {
    EngineKind.MYSQL: "mysql",
    EngineKind.POSTGRESQL: "postgres",
    EngineKind.SQLITE: "sqlite",
}


@dataclass(frozen=True, slots=True)
class DatabaseSelector:
    """Optional per-connection database override (file path for SQLite)."""

    database: str = ""

    @classmethod
    def from_value(cls, value: "DatabaseSelector | Mapping[str, Any] | str | None") -> "DatabaseSelector | None":
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(database=value)
        return cls(database=str(value.get("database") or ""))


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Column descriptor attached to a query result."""

    name: str
    data_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "dataType": self.data_type}


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Fully materialized outcome of one executed statement."""

    command: str
    row_count: int
    affected_rows: int
    fields: tuple[FieldDescriptor, ...] = ()
    rows: tuple[Row, ...] = ()


@dataclass(frozen=True, slots=True)
class TableRef:
    """Table or view discovered by `list_tables`."""

    name: str
    schema: str | None = None
    entity_type: str = "table"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "schema": self.schema, "entityType": self.entity_type}


@dataclass(frozen=True, slots=True)
class TableFilter:
    """Single WHERE-clause filter descriptor."""

    field: str
    type: str = "="
    value: Any = None
    op: str = "AND"

    @classmethod
    def from_value(cls, value: "TableFilter | Mapping[str, Any]") -> "TableFilter":
        if isinstance(value, cls):
            return value
        return cls(
            field=str(value["field"]),
            type=str(value.get("type") or "="),
            value=value.get("value"),
            op=str(value.get("op") or "AND"),
        )


@dataclass(slots=True)
class TableInsert:
    table: str
    data: list[Row]
    schema: str | None = None
    dataset: str | None = None

    @classmethod
    def from_value(cls, value: "TableInsert | Mapping[str, Any]") -> "TableInsert":
        if isinstance(value, cls):
            return value
        return cls(
            table=str(value["table"]),
            data=[dict(row) for row in value.get("data") or ()],
            schema=value.get("schema"),
            dataset=value.get("dataset"),
        )


@dataclass(slots=True)
class TableUpdate:
    table: str
    data: Row
    filters: list[TableFilter] = field(default_factory=list)
    schema: str | None = None

    @classmethod
    def from_value(cls, value: "TableUpdate | Mapping[str, Any]") -> "TableUpdate":
        if isinstance(value, cls):
            return value
        return cls(
            table=str(value["table"]),
            data=dict(value.get("data") or {}),
            filters=[TableFilter.from_value(item) for item in value.get("filters") or ()],
            schema=value.get("schema"),
        )


@dataclass(slots=True)
class TableDelete:
    table: str
    filters: list[TableFilter] = field(default_factory=list)
    schema: str | None = None

    @classmethod
    def from_value(cls, value: "TableDelete | Mapping[str, Any]") -> "TableDelete":
        if isinstance(value, cls):
            return value
        return cls(
            table=str(value["table"]),
            filters=[TableFilter.from_value(item) for item in value.get("filters") or ()],
            schema=value.get("schema"),
        )


@dataclass(slots=True)
class TableChanges:
    """Batch of pending row-level mutations to be compiled into SQL."""

    inserts: list[TableInsert] = field(default_factory=list)
    updates: list[TableUpdate] = field(default_factory=list)
    deletes: list[TableDelete] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: "TableChanges | Mapping[str, Any]") -> "TableChanges":
        if isinstance(value, cls):
            return value
        return cls(
            inserts=[TableInsert.from_value(item) for item in value.get("inserts") or ()],
            updates=[TableUpdate.from_value(item) for item in value.get("updates") or ()],
            deletes=[TableDelete.from_value(item) for item in value.get("deletes") or ()],
        )


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Column metadata consulted when building inserts."""

    column_name: str
    data_type: str | None = None


@dataclass(frozen=True, slots=True)
class DropIndexSpec:
    name: str


@dataclass(frozen=True, slots=True)
class CreateIndexSpec:
    name: str
    columns: Sequence[str]
    unique: bool = False


@dataclass(slots=True)
class Connection:
    """One configured database target owned by the registry."""

    id: str
    name: str
    engine_kind: EngineKind
    config: dict[str, Any]
    database: DatabaseSelector | None = None
    connected: bool = False
    client: "BasicDatabaseClient | None" = None

    def summary(self) -> dict[str, Any]:
        """Minimal serializable view for listing connections."""

        return {
            "id": self.id,
            "name": self.name,
            "engineKind": self.engine_kind.value,
            "connected": self.connected,
        }

    def metadata(self) -> dict[str, Any]:
        """Full metadata without the bound client."""

        payload = self.summary()
        payload["config"] = self.config
        if self.database is not None:
            payload["database"] = self.database.database
        return payload


__all__ = [
    "ColumnInfo",
    "Connection",
    "CreateIndexSpec",
    "DatabaseSelector",
    "DropIndexSpec",
    "EngineKind",
    "FieldDescriptor",
    "QueryResult",
    "Row",
    "TableChanges",
    "TableDelete",
    "TableFilter",
    "TableInsert",
    "TableRef",
    "TableUpdate",
]
