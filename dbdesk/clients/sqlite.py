"""SQLite client backed by a single aiosqlite connection."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from ..errors import DatabaseConnectionError
from ..models import EngineKind, FieldDescriptor, QueryResult, TableRef
from ..statements import IdentifiedStatement
from .base import BasicDatabaseClient


class SqliteClient(BasicDatabaseClient):
    """Runs SQL statements against an embedded SQLite file."""

    engine_kind = EngineKind.SQLITE

    _db: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        """Database file resolved from the selector, then the server config."""

        return self.database.database or self.config.database or self.config.default_database or ""

    async def _open(self) -> None:
        path = self.path
        if not path:
            raise DatabaseConnectionError("Database file path is required for SQLite connections")
        # isolation_level=None keeps every statement in autocommit mode.
        self._db = await aiosqlite.connect(path, isolation_level=None, timeout=self._connect_timeout)

    async def _close(self) -> None:
        db, self._db = self._db, None
        if db is not None:
            await db.close()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiosqlite.Connection]:
        assert self._db is not None
        yield self._db

    @asynccontextmanager
    async def _transaction(self, session: aiosqlite.Connection) -> AsyncIterator[None]:
        await session.execute("BEGIN")
        try:
            yield
        except BaseException:
            await session.execute("ROLLBACK")
            raise
        await session.execute("COMMIT")

    async def _execute_statement(self, session: aiosqlite.Connection, statement: IdentifiedStatement) -> QueryResult:
        async with session.execute(statement.text) as cursor:
            description = cursor.description
            records = await cursor.fetchall()
            changes = cursor.rowcount
        names = tuple(column[0] for column in description or ())
        rows = tuple(dict(zip(names, record)) for record in records)
        affected = max(changes, 0) if not names else 0
        return QueryResult(
            command=statement.type.upper(),
            row_count=len(rows) if names else affected,
            affected_rows=affected,
            fields=tuple(FieldDescriptor(name=name) for name in names),
            rows=rows,
        )

    async def _list_databases(self) -> list[str]:
        return [self.path]

    async def _list_tables(self, *, database: str | None, schema: str | None) -> list[TableRef]:
        """Tables of the main file, or of an attached database named by `schema` or `database`."""

        assert self._db is not None
        attached = schema or (database if database and database != self.path else None)
        master = f"{self.dialect.wrap_identifier(attached)}.sqlite_master" if attached else "sqlite_master"
        query = (
            f"SELECT name, type FROM {master} "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        async with self._db.execute(query) as cursor:
            rows = await cursor.fetchall()
        return [TableRef(name=str(row[0]), schema=attached, entity_type=str(row[1])) for row in rows]


__all__ = ["SqliteClient"]
