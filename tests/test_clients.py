"""Tests for the per-engine database clients."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest
from pymysql.constants import FIELD_TYPE

from dbdesk.clients import MysqlClient, PostgresClient, SqliteClient, create_client, parse_command_status
from dbdesk.config import normalize_server_config
from dbdesk.errors import (
    DatabaseConnectionError,
    NotConnectedError,
    QueryExecutionError,
    ReadOnlyViolationError,
    UnsupportedEngineError,
)
from dbdesk.models import DatabaseSelector


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _Type:
    def __init__(self, name: str) -> None:
        self.name = name


class _Attribute:
    def __init__(self, name: str, type_name: str) -> None:
        self.name = name
        self.type = _Type(type_name)


class _FakePrepared:
    def __init__(self, records: list[dict[str, Any]], attributes: list[_Attribute], status: str) -> None:
        self._records = records
        self._attributes = attributes
        self._status = status

    async def fetch(self) -> list[dict[str, Any]]:
        return self._records

    def get_attributes(self) -> list[_Attribute]:
        return self._attributes

    def get_statusmsg(self) -> str:
        return self._status


class _FakePgConnection:
    def __init__(self, prepared: _FakePrepared | Exception | None = None, rows: list[dict[str, Any]] | None = None) -> None:
        self.prepared = prepared
        self.rows = rows or []
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False
        self.events: list[str] = []

    async def prepare(self, sql: str) -> _FakePrepared:
        self.queries.append((sql, ()))
        if isinstance(self.prepared, Exception):
            raise self.prepared
        assert self.prepared is not None
        return self.prepared

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((sql, args))
        return self.rows

    @asynccontextmanager
    async def transaction(self):  # type: ignore[no-untyped-def]
        self.events.append("begin")
        try:
            yield
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")

    async def close(self) -> None:
        self.closed = True


class _FakePgPool:
    def __init__(self, connection: _FakePgConnection) -> None:
        self.connection = connection
        self.closed = False
        self.acquired = 0

    @asynccontextmanager
    async def acquire(self):  # type: ignore[no-untyped-def]
        self.acquired += 1
        yield self.connection

    async def close(self) -> None:
        self.closed = True


def _server(**config: Any):  # type: ignore[no-untyped-def]
    return normalize_server_config(config)


def _patch_pg_pool(monkeypatch: pytest.MonkeyPatch, connection: _FakePgConnection) -> dict[str, Any]:
    captured: dict[str, Any] = {}

    async def _create_pool(**kwargs: Any) -> _FakePgPool:
        captured.update(kwargs)
        captured["pool"] = _FakePgPool(connection)
        return captured["pool"]

    monkeypatch.setattr("dbdesk.clients.postgresql.asyncpg.create_pool", _create_pool)
    return captured


@pytest.mark.anyio
async def test_postgres_connect_builds_pool_kwargs(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _patch_pg_pool(monkeypatch, _FakePgConnection())
    client = PostgresClient(
        _server(host="db", port=5433, user="app", password="pw", defaultDatabase="main", ssl=True),
        pool_size=3,
        connect_timeout=4.0,
    )

    await client.connect()
    await client.connect()

    assert client.is_connected is True
    assert captured["host"] == "db"
    assert captured["port"] == 5433
    assert captured["user"] == "app"
    assert captured["password"] == "pw"
    assert captured["database"] == "main"
    assert captured["ssl"] == "require"
    assert captured["timeout"] == 4.0
    assert (captured["min_size"], captured["max_size"]) == (1, 3)

    await client.disconnect()
    assert captured["pool"].closed is True
    assert client.is_connected is False


@pytest.mark.anyio
async def test_postgres_execute_materializes_rows(monkeypatch: pytest.MonkeyPatch) -> None:
    prepared = _FakePrepared(
        records=[{"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"}],
        attributes=[_Attribute("id", "int4"), _Attribute("email", "text")],
        status="SELECT 2",
    )
    _patch_pg_pool(monkeypatch, _FakePgConnection(prepared))
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    [result] = await client.execute_query("SELECT id, email FROM accounts")

    assert result.command == "SELECT"
    assert result.row_count == 2
    assert result.affected_rows == 0
    assert [field.to_dict() for field in result.fields] == [
        {"name": "id", "dataType": "int4"},
        {"name": "email", "dataType": "text"},
    ]
    assert result.rows == ({"id": 1, "email": "a@example.com"}, {"id": 2, "email": "b@example.com"})


@pytest.mark.anyio
async def test_postgres_execute_reports_write_counts(monkeypatch: pytest.MonkeyPatch) -> None:
    prepared = _FakePrepared(records=[], attributes=[], status="INSERT 0 3")
    _patch_pg_pool(monkeypatch, _FakePgConnection(prepared))
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    [result] = await client.execute_query("INSERT INTO t SELECT * FROM s")

    assert (result.command, result.row_count, result.affected_rows) == ("INSERT", 3, 3)


@pytest.mark.anyio
async def test_postgres_driver_errors_are_wrapped(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_pg_pool(monkeypatch, _FakePgConnection(RuntimeError("syntax error at or near")))
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    with pytest.raises(QueryExecutionError, match="syntax error"):
        await client.execute_query("SELECT nonsense")


@pytest.mark.anyio
async def test_postgres_batch_runs_on_one_pooled_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakePgConnection(_FakePrepared(records=[], attributes=[], status="UPDATE 1"))
    captured = _patch_pg_pool(monkeypatch, connection)
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    results = await client.execute_query("BEGIN; UPDATE t SET v = 1; ROLLBACK")

    assert len(results) == 3
    assert captured["pool"].acquired == 1
    assert [sql for sql, _ in connection.queries] == ["BEGIN", "UPDATE t SET v = 1", "ROLLBACK"]
    assert connection.events == []


@pytest.mark.anyio
async def test_postgres_apply_changes_runs_in_a_transaction(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakePgConnection(_FakePrepared(records=[], attributes=[], status="UPDATE 1"))
    captured = _patch_pg_pool(monkeypatch, connection)
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    await client.apply_changes(
        {
            "updates": [{"table": "t", "data": {"v": 2}, "filters": [{"field": "id", "value": 1}]}],
            "deletes": [{"table": "t", "filters": [{"field": "id", "value": 2}]}],
        }
    )

    assert captured["pool"].acquired == 1
    assert connection.events == ["begin", "commit"]
    assert [sql for sql, _ in connection.queries] == [
        'UPDATE "t" SET "v" = 2 WHERE id = 1',
        'DELETE FROM "t" WHERE id = 2',
    ]


@pytest.mark.anyio
async def test_postgres_apply_changes_rolls_back_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = _FakePgConnection(RuntimeError("relation does not exist"))
    _patch_pg_pool(monkeypatch, connection)
    client = PostgresClient(_server(host="db", user="app"))
    await client.connect()

    with pytest.raises(QueryExecutionError, match="relation does not exist"):
        await client.apply_changes({"deletes": [{"table": "t", "filters": [{"field": "id", "value": 2}]}]})

    assert connection.events == ["begin", "rollback"]


@pytest.mark.anyio
async def test_postgres_connect_failure_carries_cause(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _create_pool(**kwargs: Any) -> None:
        raise OSError("connection refused")

    monkeypatch.setattr("dbdesk.clients.postgresql.asyncpg.create_pool", _create_pool)
    client = PostgresClient(_server(host="db", user="app"))

    with pytest.raises(DatabaseConnectionError) as excinfo:
        await client.connect()

    assert isinstance(excinfo.value.cause, OSError)
    assert client.is_connected is False


@pytest.mark.anyio
async def test_postgres_list_tables_in_other_database(monkeypatch: pytest.MonkeyPatch) -> None:
    pooled = _FakePgConnection(rows=[{"datname": "main"}, {"datname": "other"}])
    _patch_pg_pool(monkeypatch, pooled)
    temporary = _FakePgConnection(
        rows=[
            {"table_schema": "public", "table_name": "users", "table_type": "BASE TABLE"},
            {"table_schema": "public", "table_name": "active_users", "table_type": "VIEW"},
        ]
    )
    connect_kwargs: dict[str, Any] = {}

    async def _connect(**kwargs: Any) -> _FakePgConnection:
        connect_kwargs.update(kwargs)
        return temporary

    monkeypatch.setattr("dbdesk.clients.postgresql.asyncpg.connect", _connect)
    client = PostgresClient(_server(host="db", user="app", defaultDatabase="main"))
    await client.connect()

    assert await client.list_databases() == ["main", "other"]
    tables = await client.list_tables(database="other", schema="public")

    assert [table.to_dict() for table in tables] == [
        {"name": "users", "schema": "public", "entityType": "table"},
        {"name": "active_users", "schema": "public", "entityType": "view"},
    ]
    assert connect_kwargs["database"] == "other"
    assert temporary.queries[0][1] == ("public",)
    assert temporary.closed is True


@pytest.mark.anyio
async def test_read_only_rejection_happens_before_driver(monkeypatch: pytest.MonkeyPatch) -> None:
    client = PostgresClient(_server(host="db", user="app", readOnlyMode=True))

    with pytest.raises(ReadOnlyViolationError):
        await client.execute_query("SELECT 1; UPDATE t SET a = 1")
    with pytest.raises(NotConnectedError):
        await client.execute_query("SELECT 1")
    with pytest.raises(QueryExecutionError):
        await client.execute_query("   ")


class _FakeCursor:
    def __init__(self, description, rows, rowcount: int) -> None:  # type: ignore[no-untyped-def]
        self.description = description
        self._rows = rows
        self.rowcount = rowcount
        self.executed: list[tuple[str, Any]] = []

    async def __aenter__(self) -> _FakeCursor:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def execute(self, sql: str, args: Any = None) -> None:
        self.executed.append((sql, args))

    async def fetchall(self):  # type: ignore[no-untyped-def]
        return self._rows


class _FakeMysqlConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor
        self.cursor_classes: list[Any] = []
        self.events: list[str] = []

    def cursor(self, cursor_class: Any = None) -> _FakeCursor:
        self.cursor_classes.append(cursor_class)
        return self._cursor

    async def begin(self) -> None:
        self.events.append("begin")

    async def commit(self) -> None:
        self.events.append("commit")

    async def rollback(self) -> None:
        self.events.append("rollback")


class _FakeMysqlPool:
    def __init__(self, connection: _FakeMysqlConnection) -> None:
        self.connection = connection
        self.closed = False
        self.waited = False
        self.acquired = 0

    @asynccontextmanager
    async def acquire(self):  # type: ignore[no-untyped-def]
        self.acquired += 1
        yield self.connection

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        self.waited = True


def _patch_mysql_pool(monkeypatch: pytest.MonkeyPatch, cursor: _FakeCursor) -> dict[str, Any]:
    captured: dict[str, Any] = {}

    async def _create_pool(**kwargs: Any) -> _FakeMysqlPool:
        captured.update(kwargs)
        captured["pool"] = _FakeMysqlPool(_FakeMysqlConnection(cursor))
        return captured["pool"]

    monkeypatch.setattr("dbdesk.clients.mysql.aiomysql.create_pool", _create_pool)
    return captured


@pytest.mark.anyio
async def test_mysql_select_maps_field_types(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = _FakeCursor(
        description=[("id", FIELD_TYPE.LONG), ("name", FIELD_TYPE.VAR_STRING)],
        rows=[{"id": 1, "name": "a"}],
        rowcount=1,
    )
    captured = _patch_mysql_pool(monkeypatch, cursor)
    client = MysqlClient(_server(host="db", user="root", password="pw"), DatabaseSelector(database="shop"))
    await client.connect()

    [result] = await client.execute_query("SELECT id, name FROM products")

    assert captured["db"] == "shop"
    assert captured["port"] == 3306
    assert captured["autocommit"] is True
    assert [field.to_dict() for field in result.fields] == [
        {"name": "id", "dataType": "long"},
        {"name": "name", "dataType": "var_string"},
    ]
    assert result.rows == ({"id": 1, "name": "a"},)
    assert (result.command, result.row_count, result.affected_rows) == ("SELECT", 1, 0)

    await client.disconnect()
    assert captured["pool"].closed is True
    assert captured["pool"].waited is True


@pytest.mark.anyio
async def test_mysql_update_reports_affected_rows(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = _FakeCursor(description=None, rows=[], rowcount=4)
    _patch_mysql_pool(monkeypatch, cursor)
    client = MysqlClient(_server(host="db", user="root"))
    await client.connect()

    [result] = await client.execute_query("UPDATE products SET price = 1")

    assert (result.command, result.row_count, result.affected_rows) == ("UPDATE", 4, 4)
    assert result.fields == ()


@pytest.mark.anyio
async def test_mysql_batch_shares_one_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = _FakeCursor(description=None, rows=[], rowcount=0)
    captured = _patch_mysql_pool(monkeypatch, cursor)
    client = MysqlClient(_server(host="db", user="root"))
    await client.connect()

    await client.execute_query("SET @limit = 5; SELECT @limit")

    assert captured["pool"].acquired == 1
    assert [sql for sql, _ in cursor.executed] == ["SET @limit = 5", "SELECT @limit"]
    assert captured["pool"].connection.events == []


@pytest.mark.anyio
async def test_mysql_apply_changes_commits_once(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = _FakeCursor(description=None, rows=[], rowcount=1)
    captured = _patch_mysql_pool(monkeypatch, cursor)
    client = MysqlClient(_server(host="db", user="root"))
    await client.connect()

    await client.apply_changes(
        {
            "inserts": [{"table": "t", "data": [{"id": 3}]}],
            "deletes": [{"table": "t", "filters": [{"field": "id", "value": 2}]}],
        }
    )

    assert captured["pool"].acquired == 1
    assert captured["pool"].connection.events == ["begin", "commit"]
    assert [sql for sql, _ in cursor.executed] == ["INSERT INTO `t` (`id`) VALUES (3)", "DELETE FROM `t` WHERE id = 2"]


@pytest.mark.anyio
async def test_mysql_lists_tables_for_schema(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = _FakeCursor(description=None, rows=[("shop", "orders", "BASE TABLE")], rowcount=1)
    _patch_mysql_pool(monkeypatch, cursor)
    client = MysqlClient(_server(host="db", user="root"))
    await client.connect()

    tables = await client.list_tables(database="shop")

    assert [table.to_dict() for table in tables] == [{"name": "orders", "schema": "shop", "entityType": "table"}]
    assert cursor.executed[-1][1] == ("shop",)


@pytest.mark.anyio
async def test_sqlite_requires_a_path() -> None:
    client = SqliteClient(_server())

    with pytest.raises(DatabaseConnectionError):
        await client.connect()


@pytest.mark.anyio
async def test_sqlite_apply_changes(tmp_path: Path) -> None:
    client = SqliteClient(_server(database=str(tmp_path / "changes.db")))
    await client.connect()
    await client.execute_query("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)")

    await client.apply_changes(
        {
            "inserts": [{"table": "t", "data": [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}]}],
            "updates": [{"table": "t", "data": {"v": "z"}, "filters": [{"field": "id", "type": "in", "value": 1}]}],
            "deletes": [{"table": "t", "filters": [{"field": "id", "type": "in", "value": [2]}]}],
        }
    )
    [result] = await client.execute_query("SELECT id, v FROM t ORDER BY id")

    assert result.rows == ({"id": 1, "v": "z"},)
    assert await client.apply_changes({}) == []
    await client.disconnect()


@pytest.mark.anyio
async def test_sqlite_apply_changes_with_equality_filters(tmp_path: Path) -> None:
    client = SqliteClient(_server(database=str(tmp_path / "changes.db")))
    await client.connect()
    await client.execute_query("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT); INSERT INTO t VALUES (1, 'a'), (2, 'b')")

    await client.apply_changes(
        {
            "updates": [{"table": "t", "data": {"v": "z"}, "filters": [{"field": "id", "value": 1}]}],
            "deletes": [{"table": "t", "filters": [{"field": "id", "type": "=", "value": 2}]}],
        }
    )
    [result] = await client.execute_query("SELECT id, v FROM t ORDER BY id")

    assert result.rows == ({"id": 1, "v": "z"},)
    await client.disconnect()


@pytest.mark.anyio
async def test_sqlite_apply_changes_rolls_back_on_failure(tmp_path: Path) -> None:
    client = SqliteClient(_server(database=str(tmp_path / "changes.db")))
    await client.connect()
    await client.execute_query("CREATE TABLE t (id INTEGER PRIMARY KEY)")

    with pytest.raises(QueryExecutionError, match="no such table"):
        await client.apply_changes(
            {"inserts": [{"table": "t", "data": [{"id": 1}]}, {"table": "missing", "data": [{"id": 1}]}]}
        )
    [result] = await client.execute_query("SELECT COUNT(*) AS n FROM t")

    assert result.rows == ({"n": 0},)
    await client.disconnect()


@pytest.mark.anyio
async def test_sqlite_session_state_spans_the_batch(tmp_path: Path) -> None:
    client = SqliteClient(_server(database=str(tmp_path / "changes.db")))
    await client.connect()
    await client.execute_query("CREATE TABLE t (id INTEGER)")

    await client.execute_query("BEGIN; INSERT INTO t VALUES (1); ROLLBACK")
    [result] = await client.execute_query("SELECT COUNT(*) AS n FROM t")

    assert result.rows == ({"n": 0},)
    await client.disconnect()


@pytest.mark.anyio
async def test_sqlite_lists_tables_of_attached_database(tmp_path: Path) -> None:
    path = str(tmp_path / "main.db")
    client = SqliteClient(_server(database=path))
    await client.connect()
    await client.execute_query(
        f"CREATE TABLE t (id INTEGER); ATTACH DATABASE '{tmp_path / 'other.db'}' AS other; "
        "CREATE TABLE other.u (id INTEGER)"
    )

    attached = await client.list_tables(database="other")
    main = await client.list_tables(database=path)

    assert [table.to_dict() for table in attached] == [{"name": "u", "schema": "other", "entityType": "table"}]
    assert [table.to_dict() for table in main] == [{"name": "t", "schema": None, "entityType": "table"}]
    assert await client.list_tables(schema="other") == attached
    await client.disconnect()


def test_create_client_selects_engine() -> None:
    server = _server(host="db", user="u")

    assert isinstance(create_client("postgres", server), PostgresClient)
    assert isinstance(create_client("mysql", server), MysqlClient)
    assert isinstance(create_client("sqlite", server), SqliteClient)
    with pytest.raises(UnsupportedEngineError):
        create_client("oracle", server)


def test_parse_command_status() -> None:
    assert parse_command_status("INSERT 0 3") == ("INSERT", 3)
    assert parse_command_status("CREATE TABLE") == ("CREATE TABLE", 0)
    assert parse_command_status("") == ("", 0)
