"""SQLite DDL change builder."""

from __future__ import annotations

from ..dialects import SqliteDialect
from .base import ChangeBuilderBase


class SqliteChangeBuilder(ChangeBuilderBase):
    dialect = SqliteDialect()


__all__ = ["SqliteChangeBuilder"]
