"""Connection registry owning every configured database target and its client."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import BaseModel

from .clients import BasicDatabaseClient, create_client
from .config import AppConfig, ConnectionConfig, ServerWrapper, normalize_server_config, redact_config
from .errors import (
    DatabaseConnectionError,
    DbDeskError,
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from .models import Connection, DatabaseSelector, EngineKind
from .store import ConnectionStore
from .transport import sanitize_result

LOG = logging.getLogger(__name__)

CONNECTION_CREATED = "connection-created"
CONNECTION_CLOSED = "connection-closed"
CONNECTION_RECONNECTED = "connection-reconnected"
ACTIVE_CONNECTION_CHANGED = "active-connection-changed"


@dataclass(frozen=True, slots=True)
class RegistryEvent:
    """Notification emitted after a registry mutation."""

    name: str
    connection_id: str | None


RegistryListener = Callable[[RegistryEvent], None]
ClientFactory = Callable[..., BasicDatabaseClient]


class ConnectionRegistry:
    """Maps connection ids to metadata, status, and the bound client."""

    def __init__(
        self,
        store: ConnectionStore,
        *,
        client_factory: ClientFactory = create_client,
        connect_timeout: float = 10.0,
        pool_size: int = 5,
        log_sample_rows: int = 5,
    ) -> None:
        self._store = store
        self._client_factory = client_factory
        self._connect_timeout = connect_timeout
        self._pool_size = pool_size
        self._log_sample_rows = log_sample_rows
        self._connections: dict[str, Connection] = {}
        self._active_id: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: set[RegistryListener] = set()

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> ConnectionRegistry:
        """Build a registry persisting under the configured data directory."""

        return cls(
            ConnectionStore(config.connections_file),
            connect_timeout=config.connect_timeout,
            pool_size=config.pool_size,
            log_sample_rows=config.log_sample_rows,
            **kwargs,
        )

    async def load(self) -> int:
        """Restore saved connections; every entry starts disconnected."""

        entries = await self._store.load()
        for entry in entries:
            connection = entry.to_connection()
            self._connections[connection.id] = connection
        LOG.info("Loaded saved database connections", extra={"count": len(entries)})
        return len(entries)

    async def create_connection(
        self,
        name: str,
        engine_kind: EngineKind | str,
        config: ConnectionConfig | None,
        db_selector: DatabaseSelector | Mapping[str, Any] | str | None = None,
    ) -> str:
        """Validate, connect, and persist a new connection; returns its id."""

        kind = EngineKind.parse(engine_kind)
        raw_config = _raw_config(config)
        server = normalize_server_config(config)
        selector = DatabaseSelector.from_value(db_selector)
        _validate_required_fields(kind, server, selector)

        connection_id = _new_connection_id()
        async with self._lock_for(connection_id):
            client = self._build_client(kind, server, selector)
            LOG.info(
                "Attempting DB connect",
                extra={"connection_id": connection_id, "engine_kind": kind.value, "database": client.database.database},
            )
            try:
                await client.connect()
            except Exception as exc:
                self._log_connect_failure(connection_id, name, kind, raw_config, selector, exc)
                if isinstance(exc, DbDeskError):
                    raise
                raise DatabaseConnectionError(str(exc), cause=exc) from exc

            self._connections[connection_id] = Connection(
                id=connection_id,
                name=name,
                engine_kind=kind,
                config=raw_config,
                database=selector,
                connected=True,
                client=client,
            )
            self._emit(CONNECTION_CREATED, connection_id)
            await self._persist()
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Close the client and forget the connection entirely."""

        async with self._lock_for(connection_id):
            connection = self._require(connection_id)
            client = self._unbind(connection)
            try:
                if client is not None:
                    await client.disconnect()
            finally:
                del self._connections[connection_id]
                self._locks.pop(connection_id, None)
                if self._active_id == connection_id:
                    self._active_id = None
                self._emit(CONNECTION_CLOSED, connection_id)
                await self._persist()

    async def delete_connection(self, connection_id: str) -> None:
        await self.disconnect(connection_id)

    async def close(self, connection_id: str) -> None:
        """Close the client but keep the connection for a later reconnect."""

        async with self._lock_for(connection_id):
            connection = self._require(connection_id)
            client = self._unbind(connection)
            try:
                if client is not None:
                    await client.disconnect()
            finally:
                self._emit(CONNECTION_CLOSED, connection_id)

    async def reconnect(self, connection_id: str) -> bool:
        """Bind a fresh client built from the stored config."""

        async with self._lock_for(connection_id):
            connection = self._require(connection_id)
            if connection.connected and connection.client is not None:
                LOG.info("Connection already connected", extra={"connection_id": connection_id})
                return True
            try:
                server = normalize_server_config(connection.config)
                client = self._build_client(connection.engine_kind, server, connection.database)
                LOG.info(
                    "Attempting DB reconnect",
                    extra={"connection_id": connection_id, "engine_kind": connection.engine_kind.value},
                )
                await client.connect()
            except Exception as exc:
                LOG.error(
                    "Failed to reconnect",
                    extra={"connection_id": connection_id, "engine_kind": connection.engine_kind.value},
                    exc_info=True,
                )
                self._unbind(connection)
                if isinstance(exc, DbDeskError):
                    raise
                raise DatabaseConnectionError(str(exc), cause=exc) from exc

            connection.client = client
            connection.connected = True
            self._emit(CONNECTION_RECONNECTED, connection_id)
            LOG.info("Reconnect successful", extra={"connection_id": connection_id})
            return True

    async def execute_query(self, connection_id: str, sql: str) -> list[dict[str, Any]]:
        """Run `sql` on the bound client and return transport-safe results."""

        client = self._client_for(connection_id)
        results = [sanitize_result(result) for result in await client.execute_query(sql)]
        self._log_query_summary(connection_id, sql, results)
        return results

    async def list_databases(self, connection_id: str) -> list[str]:
        return await self._client_for(connection_id).list_databases()

    async def list_tables(
        self,
        connection_id: str,
        database: str | None = None,
        schema: str | None = None,
    ) -> list[dict[str, Any]]:
        tables = await self._client_for(connection_id).list_tables(database=database, schema=schema)
        return [table.to_dict() for table in tables]

    def get_connection(self, connection_id: str) -> dict[str, Any] | None:
        connection = self._connections.get(connection_id)
        return connection.metadata() if connection else None

    def get_all_connections(self) -> list[dict[str, Any]]:
        return [connection.summary() for connection in self._connections.values()]

    def set_active_connection(self, connection_id: str | None) -> None:
        if connection_id is not None:
            self._require(connection_id)
        self._active_id = connection_id
        self._emit(ACTIVE_CONNECTION_CHANGED, connection_id)

    def get_active_connection(self) -> dict[str, Any] | None:
        if self._active_id is None:
            return None
        return self.get_connection(self._active_id)

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Subscribe to registry events; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def shutdown(self) -> None:
        """Disconnect every bound client at process exit; metadata is kept."""

        for connection in self._connections.values():
            client = self._unbind(connection)
            if client is None:
                continue
            try:
                await client.disconnect()
            except Exception:
                LOG.exception("Failed to disconnect client", extra={"connection_id": connection.id})

    def _require(self, connection_id: str) -> Connection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection

    def _client_for(self, connection_id: str) -> BasicDatabaseClient:
        connection = self._require(connection_id)
        if connection.client is None:
            raise NotConnectedError("Connection not found or not connected")
        return connection.client

    @staticmethod
    def _unbind(connection: Connection) -> BasicDatabaseClient | None:
        client = connection.client
        connection.client = None
        connection.connected = False
        return client

    def _build_client(
        self,
        kind: EngineKind,
        server: ServerWrapper,
        selector: DatabaseSelector | None,
    ) -> BasicDatabaseClient:
        return self._client_factory(
            kind,
            server,
            selector,
            connect_timeout=self._connect_timeout,
            pool_size=self._pool_size,
        )

    def _lock_for(self, connection_id: str) -> asyncio.Lock:
        lock = self._locks.get(connection_id)
        if lock is None:
            lock = self._locks[connection_id] = asyncio.Lock()
        return lock

    async def _persist(self) -> None:
        try:
            await self._store.save(self._connections.values())
        except Exception:
            LOG.exception("Error saving connections to disk", extra={"path": str(self._store.path)})

    def _emit(self, name: str, connection_id: str | None) -> None:
        event = RegistryEvent(name=name, connection_id=connection_id)
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                LOG.exception("Registry listener failed", extra={"event": name})

    def _log_connect_failure(
        self,
        connection_id: str,
        name: str,
        kind: EngineKind,
        config: Mapping[str, Any],
        selector: DatabaseSelector | None,
        error: BaseException,
    ) -> None:
        try:
            LOG.error(
                "Failed to create DB connection",
                extra={
                    "connection_id": connection_id,
                    "connection_name": name,
                    "engine_kind": kind.value,
                    "config": redact_config(config),
                    "database": selector.database if selector else None,
                },
                exc_info=error,
            )
        except Exception:  # pragma: no cover - logging must not replace the connect error
            pass

    def _log_query_summary(self, connection_id: str, sql: str, results: list[dict[str, Any]]) -> None:
        try:
            LOG.info(
                "DB query result",
                extra={
                    "connection_id": connection_id,
                    "query": sql,
                    "summary": [
                        {key: result[key] for key in ("command", "rowCount", "affectedRows")}
                        for result in results
                    ],
                    "sample_rows": results[0]["rows"][: self._log_sample_rows] if results else [],
                },
            )
        except Exception:
            LOG.debug("Failed to log DB query result", exc_info=True)


def _validate_required_fields(
    kind: EngineKind,
    server: ServerWrapper,
    selector: DatabaseSelector | None,
) -> None:
    config = server.config
    if kind.is_network:
        if not config.host:
            raise ValidationError("Host is required for MySQL/PostgreSQL connections")
        if not config.user:
            raise ValidationError("Username is required for MySQL/PostgreSQL connections")
        return
    if not (config.database or config.default_database or (selector and selector.database)):
        raise ValidationError("Database file path is required for SQLite connections")


def _raw_config(config: ConnectionConfig | None) -> dict[str, Any]:
    if isinstance(config, BaseModel):
        return config.model_dump(mode="json", by_alias=True, exclude_none=True)
    return dict(config or {})


def _new_connection_id() -> str:
    return f"conn_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


__all__ = [
    "ACTIVE_CONNECTION_CHANGED",
    "CONNECTION_CLOSED",
    "CONNECTION_CREATED",
    "CONNECTION_RECONNECTED",
    "ConnectionRegistry",
    "RegistryEvent",
]
