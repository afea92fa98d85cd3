"""MySQL DDL change builder."""

from __future__ import annotations

from ..dialects import MysqlDialect
from .base import ChangeBuilderBase


class MySqlChangeBuilder(ChangeBuilderBase):
    dialect = MysqlDialect()


__all__ = ["MySqlChangeBuilder"]
