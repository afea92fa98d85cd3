"""Uniform client contract implemented once per database engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, ClassVar, Mapping

from ..config import ServerConfig, ServerWrapper
from ..dialects import Dialect, get_dialect
from ..errors import (
    DatabaseConnectionError,
    DbDeskError,
    NotConnectedError,
    QueryExecutionError,
    ReadOnlyViolationError,
)
from ..models import DatabaseSelector, EngineKind, QueryResult, TableChanges, TableRef
from ..querybuilder import READ_ONLY_MESSAGE, apply_changes_sql, is_allowed_read_only_query
from ..statements import IdentifiedStatement, identify


class BasicDatabaseClient(ABC):
    """Owns one driver connection or pool for a single physical database."""

    engine_kind: ClassVar[EngineKind]

    def __init__(
        self,
        server: ServerWrapper,
        database: DatabaseSelector | None = None,
        *,
        connect_timeout: float = 10.0,
        pool_size: int = 5,
    ) -> None:
        self.server = server
        self.database = database or DatabaseSelector(database=server.config.default_database or "")
        self._connect_timeout = connect_timeout
        self._pool_size = pool_size
        self._connected = False

    @property
    def config(self) -> ServerConfig:
        return self.server.config

    @property
    def read_only(self) -> bool:
        return self.server.config.read_only

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.engine_kind)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Open the driver connection; repeated calls are no-ops."""

        if self._connected:
            return
        try:
            await self._open()
        except DbDeskError:
            raise
        except Exception as exc:
            raise DatabaseConnectionError(
                f"Failed to connect to {self.engine_kind.value} database: {exc}",
                cause=exc,
            ) from exc
        self._connected = True

    async def disconnect(self) -> None:
        if not self._connected:
            return
        try:
            await self._close()
        finally:
            self._connected = False

    async def execute_query(self, sql: str) -> list[QueryResult]:
        """Run every statement in `sql` on one connection and return materialized results."""

        return await self._run(sql, atomic=False)

    async def list_databases(self) -> list[str]:
        self._require_connection()
        try:
            return await self._list_databases()
        except DbDeskError:
            raise
        except Exception as exc:
            raise QueryExecutionError(f"Failed to list databases: {exc}") from exc

    async def list_tables(self, database: str | None = None, schema: str | None = None) -> list[TableRef]:
        self._require_connection()
        try:
            return await self._list_tables(database=database, schema=schema)
        except DbDeskError:
            raise
        except Exception as exc:
            raise QueryExecutionError(f"Failed to list tables: {exc}") from exc

    async def apply_changes(self, changes: TableChanges | Mapping[str, Any]) -> list[QueryResult]:
        """Compile a change set for this engine and execute it."""

        sql = apply_changes_sql(changes, self.dialect)
        if not sql:
            return []
        return await self._run(sql, atomic=True)

    async def _run(self, sql: str, *, atomic: bool) -> list[QueryResult]:
        if not sql or not sql.strip():
            raise QueryExecutionError("Provide SQL to execute.")
        statements = identify(sql, self.engine_kind.sqlglot_dialect)
        if not is_allowed_read_only_query(statements, self.read_only):
            raise ReadOnlyViolationError(READ_ONLY_MESSAGE)
        self._require_connection()
        try:
            async with self._session() as session:
                if not atomic:
                    return await self._execute_all(session, statements)
                async with self._transaction(session):
                    return await self._execute_all(session, statements)
        except DbDeskError:
            raise
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc

    async def _execute_all(self, session: Any, statements: list[IdentifiedStatement]) -> list[QueryResult]:
        results: list[QueryResult] = []
        for statement in statements:
            results.append(await self._execute_statement(session, statement))
        return results

    def _require_connection(self) -> None:
        if not self._connected:
            raise NotConnectedError(f"{self.engine_kind.value} client is not connected")

    @abstractmethod
    async def _open(self) -> None:
        """Open the underlying connection or pool."""

    @abstractmethod
    async def _close(self) -> None:
        """Release the underlying connection or pool."""

    @abstractmethod
    def _session(self) -> AbstractAsyncContextManager[Any]:
        """Hold one driver connection for the duration of a batch."""

    @abstractmethod
    def _transaction(self, session: Any) -> AbstractAsyncContextManager[Any]:
        """Wrap a batch on `session` in a transaction."""

    @abstractmethod
    async def _execute_statement(self, session: Any, statement: IdentifiedStatement) -> QueryResult:
        """Execute one statement on `session`."""

    @abstractmethod
    async def _list_databases(self) -> list[str]: ...

    @abstractmethod
    async def _list_tables(self, *, database: str | None, schema: str | None) -> list[TableRef]: ...


def parse_command_status(status: str) -> tuple[str, int]:
    """Split a driver status tag like `INSERT 0 3` into `("INSERT", 3)`."""

    parts = status.split()
    count = int(parts[-1]) if parts and parts[-1].isdigit() else 0
    command = " ".join(part for part in parts if not part.isdigit())
    return command, count


__all__ = ["BasicDatabaseClient", "parse_command_status"]
