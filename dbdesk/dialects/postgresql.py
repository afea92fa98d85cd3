"""PostgreSQL identifier quoting and DDL helpers."""

from __future__ import annotations

from .base import Dialect


class PostgresDialect(Dialect):
    name = "postgresql"
    sqlglot_name = "postgres"


__all__ = ["PostgresDialect"]
