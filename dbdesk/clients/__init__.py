"""Database clients, one per supported engine kind."""

from __future__ import annotations

from ..config import ServerWrapper
from ..models import DatabaseSelector, EngineKind
from .base import BasicDatabaseClient, parse_command_status
from .mysql import MysqlClient
from .postgresql import PostgresClient
from .sqlite import SqliteClient


def create_client(
    kind: EngineKind | str,
    server: ServerWrapper,
    database: DatabaseSelector | None = None,
    *,
    connect_timeout: float = 10.0,
    pool_size: int = 5,
) -> BasicDatabaseClient:
    """Instantiate the client class for an engine kind."""

    options = {"connect_timeout": connect_timeout, "pool_size": pool_size}
    match EngineKind.parse(kind):
        case EngineKind.MYSQL:
            return MysqlClient(server, database, **options)
        case EngineKind.POSTGRESQL:
            return PostgresClient(server, database, **options)
        case EngineKind.SQLITE:
            return SqliteClient(server, database, **options)


__all__ = [
    "BasicDatabaseClient",
    "MysqlClient",
    "PostgresClient",
    "SqliteClient",
    "create_client",
    "parse_command_status",
]
