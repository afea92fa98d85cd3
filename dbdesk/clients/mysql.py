"""MySQL client backed by an aiomysql pool."""

from __future__ import annotations

import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiomysql
from pymysql.constants import FIELD_TYPE

from ..models import EngineKind, FieldDescriptor, QueryResult, TableRef
from ..statements import IdentifiedStatement
from .base import BasicDatabaseClient

_FIELD_TYPE_NAMES = {
    value: name.lower()
    for name, value in vars(FIELD_TYPE).items()
    if name.isupper() and isinstance(value, int)
}


class MysqlClient(BasicDatabaseClient):
    """Runs SQL statements against MySQL/MariaDB via aiomysql."""

    engine_kind = EngineKind.MYSQL

    _TABLES_QUERY = """
        SELECT table_schema, table_name, table_type
        FROM information_schema.tables
        WHERE table_schema = COALESCE(%s, DATABASE())
        ORDER BY table_name
    """

    _pool: Any = None

    async def _open(self) -> None:
        self._pool = await aiomysql.create_pool(
            minsize=1,
            maxsize=self._pool_size,
            autocommit=True,
            **self._connect_kwargs(),
        )

    async def _close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            await pool.wait_closed()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[Any]:
        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def _transaction(self, session: Any) -> AsyncIterator[None]:
        await session.begin()
        try:
            yield
        except BaseException:
            await session.rollback()
            raise
        await session.commit()

    async def _execute_statement(self, session: Any, statement: IdentifiedStatement) -> QueryResult:
        async with session.cursor(aiomysql.DictCursor) as cursor:
            await cursor.execute(statement.text)
            description = cursor.description
            rows = await cursor.fetchall() if description else ()
            affected = max(cursor.rowcount, 0)
        fields = tuple(
            FieldDescriptor(name=column[0], data_type=_FIELD_TYPE_NAMES.get(column[1]))
            for column in description or ()
        )
        materialized = tuple(dict(row) for row in rows)
        return QueryResult(
            command=statement.type.upper(),
            row_count=len(materialized) if fields else affected,
            affected_rows=0 if fields else affected,
            fields=fields,
            rows=materialized,
        )

    async def _list_databases(self) -> list[str]:
        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SHOW DATABASES")
                rows = await cursor.fetchall()
        return [str(row[0]) for row in rows]

    async def _list_tables(self, *, database: str | None, schema: str | None) -> list[TableRef]:
        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute(self._TABLES_QUERY, (database or schema,))
                rows = await cursor.fetchall()
        return [
            TableRef(
                name=str(row[1]),
                schema=str(row[0]),
                entity_type="view" if row[2] == "VIEW" else "table",
            )
            for row in rows
        ]

    def _connect_kwargs(self) -> dict[str, object]:
        config = self.config
        kwargs: dict[str, object] = {
            "host": config.host or "localhost",
            "port": config.port or 3306,
            "user": config.user or "",
            "password": config.password or "",
            "connect_timeout": self._connect_timeout,
        }
        database = self.database.database or config.default_database
        if database:
            kwargs["db"] = database
        if config.socket_path:
            kwargs["unix_socket"] = config.socket_path
        if config.ssl:
            kwargs["ssl"] = ssl.create_default_context()
        return kwargs


__all__ = ["MysqlClient"]
