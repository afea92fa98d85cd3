"""App configuration and connection config normalization helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Union

import pydantic
import tomllib
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError

CONFIG_FILE = Path.home() / ".config" / "dbdesk" / "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".config" / "dbdesk"
CONNECTIONS_FILENAME = "database-connections.json"

_SECRET_KEYS = frozenset({"password", "passwd", "secret", "token", "apikey", "api_key", "passphrase"})
REDACTED = "***"


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR)
    log_level: str = "INFO"
    log_sample_rows: int = 5
    connect_timeout: float = 10.0
    pool_size: int = 5

    @property
    def connections_file(self) -> Path:
        """JSON file holding persisted connection metadata."""

        return self.data_dir / CONNECTIONS_FILENAME

    def with_overrides(self, **updates: object) -> AppConfig:
        """Return a copy with non-empty overrides applied."""

        changes = {key: value for key, value in updates.items() if value is not None}
        if not changes:
            return self
        return self.model_copy(update=changes)


class ServerConfig(BaseModel):
    """Per-server connection settings as supplied by the UI."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    default_database: str | None = Field(default=None, alias="defaultDatabase")
    database: str | None = None
    read_only: bool = Field(
        default=False,
        alias="readOnlyMode",
        validation_alias=AliasChoices("readOnlyMode", "readOnly", "read_only"),
    )
    socket_path: str | None = Field(default=None, alias="socketPath")
    ssl: bool = False

    @field_validator("port", mode="before")
    @classmethod
    def _blank_port(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ServerWrapper(BaseModel):
    """Normalized `{db, config}` shape every client constructor expects."""

    db: dict[str, Any] = Field(default_factory=dict)
    config: ServerConfig = Field(default_factory=ServerConfig)


RawConfig = Mapping[str, Any]
ConnectionConfig = Union[RawConfig, ServerWrapper]


def normalize_server_config(config: ConnectionConfig | None) -> ServerWrapper:
    """Resolve a raw or pre-wrapped config into a `ServerWrapper`."""

    if isinstance(config, ServerWrapper):
        return config
    raw = dict(config or {})
    nested = raw.get("config")
    try:
        if isinstance(nested, Mapping):
            return ServerWrapper(db=dict(raw.get("db") or {}), config=ServerConfig.model_validate(nested))
        return ServerWrapper(db={}, config=ServerConfig.model_validate(raw))
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid connection config: {exc.errors()[0]['msg']}") from exc


def redact_config(value: Any) -> Any:
    """Return a copy of `value` with credential-like keys masked."""

    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)
    if isinstance(value, Mapping):
        return {
            key: (REDACTED if str(key).lower() in _SECRET_KEYS and item else redact_config(item))
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_config(item) for item in value]
    return value


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    try:
        return AppConfig(**data)
    except pydantic.ValidationError:
        return AppConfig()


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    data_dir = raw.get("data_dir")
    if isinstance(data_dir, str) and data_dir.strip():
        data["data_dir"] = Path(data_dir).expanduser()
    log_level = raw.get("log_level")
    if isinstance(log_level, str):
        data["log_level"] = log_level.upper()
    sample_rows = raw.get("log_sample_rows")
    if isinstance(sample_rows, int) and not isinstance(sample_rows, bool):
        data["log_sample_rows"] = sample_rows
    timeout = raw.get("connect_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        data["connect_timeout"] = float(timeout)
    pool_size = raw.get("pool_size")
    if isinstance(pool_size, int) and not isinstance(pool_size, bool) and pool_size > 0:
        data["pool_size"] = pool_size
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionConfig",
    "RawConfig",
    "ServerConfig",
    "ServerWrapper",
    "load_config",
    "normalize_server_config",
    "redact_config",
]
