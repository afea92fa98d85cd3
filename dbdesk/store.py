"""JSON persistence for connection metadata."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .models import Connection, DatabaseSelector, EngineKind

LOG = logging.getLogger(__name__)


class StoredConnection(BaseModel):
    """One persisted entry: `{id, name, engineKind, config, database?}`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    engine_kind: EngineKind = Field(
        alias="engineKind",
        validation_alias=AliasChoices("engineKind", "type"),
    )
    config: dict[str, Any] = Field(default_factory=dict)
    database: str | None = None

    @classmethod
    def from_connection(cls, connection: Connection) -> StoredConnection:
        return cls(
            id=connection.id,
            name=connection.name,
            engine_kind=connection.engine_kind,
            config=connection.config,
            database=connection.database.database if connection.database else None,
        )

    def to_connection(self) -> Connection:
        """Rebuild a disconnected runtime connection."""

        return Connection(
            id=self.id,
            name=self.name,
            engine_kind=self.engine_kind,
            config=dict(self.config),
            database=DatabaseSelector(database=self.database) if self.database else None,
            connected=False,
        )


class ConnectionStore:
    """Reads and writes the connection list under the app data directory."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> list[StoredConnection]:
        """Read saved entries, skipping malformed ones with a warning."""

        return await asyncio.to_thread(self._load_sync)

    async def save(self, connections: Iterable[Connection]) -> None:
        """Atomically replace the saved set with `connections`."""

        entries = [
            StoredConnection.from_connection(connection).model_dump(mode="json", by_alias=True, exclude_none=True)
            for connection in connections
        ]
        await asyncio.to_thread(self._write_sync, entries)
        LOG.info("Saved connections to disk", extra={"count": len(entries), "path": str(self._path)})

    def _load_sync(self) -> list[StoredConnection]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            LOG.info("No saved database connections found", extra={"path": str(self._path)})
            return []
        except (OSError, ValueError):
            LOG.warning("Could not read saved connections", extra={"path": str(self._path)}, exc_info=True)
            return []
        if not isinstance(raw, list):
            LOG.warning("Invalid saved connections format", extra={"path": str(self._path)})
            return []

        entries: list[StoredConnection] = []
        for index, item in enumerate(raw):
            try:
                entries.append(StoredConnection.model_validate(item))
            except pydantic.ValidationError as exc:
                LOG.warning(
                    "Skipping malformed saved connection",
                    extra={"index": index, "errors": exc.error_count()},
                )
        return entries

    def _write_sync(self, entries: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self._path)


__all__ = ["ConnectionStore", "StoredConnection"]
