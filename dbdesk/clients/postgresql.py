"""PostgreSQL client backed by an asyncpg pool."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from ..models import EngineKind, FieldDescriptor, QueryResult, TableRef
from ..statements import IdentifiedStatement
from .base import BasicDatabaseClient, parse_command_status

_WRITE_COMMANDS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE", "COPY"})


class PostgresClient(BasicDatabaseClient):
    """Runs SQL statements against PostgreSQL via asyncpg."""

    engine_kind = EngineKind.POSTGRESQL

    _DATABASES_QUERY = """
        SELECT datname
        FROM pg_database
        WHERE datistemplate = false
        ORDER BY datname
    """

    _TABLES_QUERY = """
        SELECT table_schema, table_name, table_type
        FROM information_schema.tables
        WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
          AND ($1::text IS NULL OR table_schema = $1)
        ORDER BY table_schema, table_name
    """

    _pool: asyncpg.Pool | None = None

    async def _open(self) -> None:
        self._pool = await asyncpg.create_pool(
            min_size=1,
            max_size=self._pool_size,
            **self._connect_kwargs(),
        )

    async def _close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    def _session(self) -> AbstractAsyncContextManager[Any]:
        return self._acquire()

    def _transaction(self, session: Any) -> AbstractAsyncContextManager[Any]:
        return session.transaction()

    async def _execute_statement(self, session: Any, statement: IdentifiedStatement) -> QueryResult:
        prepared = await session.prepare(statement.text)
        records = await prepared.fetch()
        attributes = prepared.get_attributes()
        status = prepared.get_statusmsg() or statement.type.upper()
        command, count = parse_command_status(status)
        fields = tuple(
            FieldDescriptor(name=attribute.name, data_type=attribute.type.name)
            for attribute in attributes
        )
        rows = tuple(dict(record.items()) for record in records)
        return QueryResult(
            command=command or statement.type.upper(),
            row_count=len(rows) if fields else count,
            affected_rows=count if command in _WRITE_COMMANDS else 0,
            fields=fields,
            rows=rows,
        )

    async def _list_databases(self) -> list[str]:
        async with self._acquire() as conn:
            rows = await conn.fetch(self._DATABASES_QUERY)
        return [str(row["datname"]) for row in rows]

    async def _list_tables(self, *, database: str | None, schema: str | None) -> list[TableRef]:
        async with self._acquire(database) as conn:
            rows = await conn.fetch(self._TABLES_QUERY, schema)
        return [
            TableRef(
                name=str(row["table_name"]),
                schema=str(row["table_schema"]),
                entity_type="view" if row["table_type"] == "VIEW" else "table",
            )
            for row in rows
        ]

    @asynccontextmanager
    async def _acquire(self, database: str | None = None) -> AsyncIterator[Any]:
        if database and database != self._current_database():
            conn = await asyncpg.connect(**self._connect_kwargs(database))
            try:
                yield conn
            finally:
                await conn.close()
            return
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            yield conn

    def _current_database(self) -> str | None:
        return self.database.database or self.config.default_database or None

    def _connect_kwargs(self, database: str | None = None) -> dict[str, object]:
        config = self.config
        kwargs: dict[str, object] = {"host": config.socket_path or config.host or "localhost"}
        if config.port is not None:
            kwargs["port"] = config.port
        if config.user:
            kwargs["user"] = config.user
        if config.password:
            kwargs["password"] = config.password
        target = database or self._current_database()
        if target:
            kwargs["database"] = target
        if config.ssl:
            kwargs["ssl"] = "require"
        kwargs["timeout"] = self._connect_timeout
        return kwargs


__all__ = ["PostgresClient"]
