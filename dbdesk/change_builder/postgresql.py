"""PostgreSQL DDL change builder."""

from __future__ import annotations

from ..dialects import PostgresDialect
from .base import ChangeBuilderBase


class PostgresChangeBuilder(ChangeBuilderBase):
    dialect = PostgresDialect()


__all__ = ["PostgresChangeBuilder"]
