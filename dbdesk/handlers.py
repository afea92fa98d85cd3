"""Request handlers exposing the registry over named `database:*` channels."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .errors import DbDeskError
from .registry import ConnectionRegistry

LOG = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateConnectionRequest(_Request):
    name: str
    engine_kind: str = Field(alias="engineKind", validation_alias=AliasChoices("engineKind", "type"))
    config: dict[str, Any] = Field(default_factory=dict)
    database: str | dict[str, Any] | None = None


class ConnectionRequest(_Request):
    connection_id: str = Field(alias="connectionId")


class ExecuteQueryRequest(ConnectionRequest):
    query: str


class ListTablesRequest(ConnectionRequest):
    database: str | None = None
    schema_name: str | None = Field(default=None, alias="schema")


class DatabaseHandlers:
    """Dispatches channel requests to the registry and never raises."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self._channels: dict[str, Handler] = {
            "database:create-connection": self._create_connection,
            "database:disconnect": self._disconnect,
            "database:close-connection": self._close_connection,
            "database:reconnect": self._reconnect,
            "database:execute-query": self._execute_query,
            "database:get-connections": self._get_connections,
            "database:get-connection": self._get_connection,
            "database:set-active-connection": self._set_active_connection,
            "database:get-active-connection": self._get_active_connection,
            "database:list-databases": self._list_databases,
            "database:list-tables": self._list_tables,
        }

    @property
    def channels(self) -> tuple[str, ...]:
        return tuple(self._channels)

    async def handle(self, channel: str, payload: Any = None) -> Any:
        """Run the handler registered for `channel` and return plain data."""

        handler = self._channels.get(channel)
        if handler is None:
            LOG.warning("Unknown channel requested", extra={"channel": channel})
            return _failure(f"Unknown channel: {channel}")
        try:
            return await handler(payload)
        except (DbDeskError, pydantic.ValidationError) as exc:
            LOG.warning("Request failed", extra={"channel": channel, "error": str(exc)})
            return _failure(str(exc))
        except Exception as exc:
            LOG.exception("Unexpected handler failure", extra={"channel": channel})
            return _failure(str(exc) or type(exc).__name__)

    async def _create_connection(self, payload: Any) -> dict[str, Any]:
        request = CreateConnectionRequest.model_validate(payload)
        connection_id = await self._registry.create_connection(
            request.name,
            request.engine_kind,
            request.config,
            request.database,
        )
        return {"success": True, "connectionId": connection_id}

    async def _disconnect(self, payload: Any) -> dict[str, Any]:
        await self._registry.disconnect(_connection_id(payload))
        return {"success": True}

    async def _close_connection(self, payload: Any) -> dict[str, Any]:
        await self._registry.close(_connection_id(payload))
        return {"success": True}

    async def _reconnect(self, payload: Any) -> dict[str, Any]:
        return {"success": await self._registry.reconnect(_connection_id(payload))}

    async def _execute_query(self, payload: Any) -> dict[str, Any]:
        request = ExecuteQueryRequest.model_validate(payload)
        result = await self._registry.execute_query(request.connection_id, request.query)
        return {"success": True, "result": result}

    async def _get_connections(self, payload: Any) -> list[dict[str, Any]]:
        return self._registry.get_all_connections()

    async def _get_connection(self, payload: Any) -> dict[str, Any] | None:
        return self._registry.get_connection(_connection_id(payload))

    async def _set_active_connection(self, payload: Any) -> dict[str, Any]:
        self._registry.set_active_connection(_connection_id(payload))
        return {"success": True}

    async def _get_active_connection(self, payload: Any) -> dict[str, Any] | None:
        return self._registry.get_active_connection()

    async def _list_databases(self, payload: Any) -> dict[str, Any]:
        databases = await self._registry.list_databases(_connection_id(payload))
        return {"success": True, "databases": databases}

    async def _list_tables(self, payload: Any) -> dict[str, Any]:
        request = ListTablesRequest.model_validate(_as_request(payload))
        tables = await self._registry.list_tables(
            request.connection_id,
            database=request.database,
            schema=request.schema_name,
        )
        return {"success": True, "tables": tables}


def _as_request(payload: Any) -> Mapping[str, Any]:
    """Bare string payloads are shorthand for `{"connectionId": payload}`."""

    if isinstance(payload, str):
        return {"connectionId": payload}
    return payload


def _connection_id(payload: Any) -> str:
    return ConnectionRequest.model_validate(_as_request(payload)).connection_id


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


__all__ = [
    "ConnectionRequest",
    "CreateConnectionRequest",
    "DatabaseHandlers",
    "ExecuteQueryRequest",
    "ListTablesRequest",
]
