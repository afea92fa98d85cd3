"""Dialect-aware statement splitting and classification built on sqlglot."""

from __future__ import annotations

import re
from dataclasses import dataclass

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError
from sqlglot.tokens import Token, TokenType

_FIRST_WORD = re.compile(r"\s*([A-Za-z_]+)")
_ANALYZE_WORD = re.compile(r"\banaly[sz]e\b", re.IGNORECASE)

_EXPLAIN_HEADS = frozenset({"explain", "describe", "desc"})
_ANALYZE_WORDS = frozenset({"analyze", "analyse"})
_FALSE_WORDS = frozenset({"false", "off", "0"})
_STATEMENT_HEADS = frozenset(
    {
        "select", "insert", "update", "delete", "with", "values", "table",
        "replace", "merge", "execute", "declare", "create", "for", "(",
    }
)

_SELECT_LIKE = (exp.Select, exp.Union, exp.Intersect, exp.Except, exp.Subquery, exp.Values)
_WRITE_EXPRESSIONS = (exp.Insert, exp.Update, exp.Delete)


@dataclass(frozen=True, slots=True)
class IdentifiedStatement:
    """One statement sliced out of the user's buffer."""

    text: str
    type: str
    start: int
    end: int


def split_statements(sql: str, dialect: str | None = None) -> list[tuple[int, int]]:
    """Return `(start, end)` spans for each statement in `sql`."""

    try:
        tokens = sqlglot.tokenize(sql, read=dialect or None)
    except TokenError:
        stripped = sql.strip()
        if not stripped:
            return []
        start = sql.index(stripped[0])
        return [(start, start + len(stripped))]

    spans: list[tuple[int, int]] = []
    first: int | None = None
    last = 0
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            if first is not None:
                spans.append((first, last))
            first = None
            continue
        if first is None:
            first = token.start
        last = token.end + 1
    if first is not None:
        spans.append((first, last))
    return spans


def identify(sql: str, dialect: str | None = None) -> list[IdentifiedStatement]:
    """Split `sql` into statements and classify each one."""

    statements: list[IdentifiedStatement] = []
    for start, end in split_statements(sql, dialect):
        text = sql[start:end]
        statements.append(
            IdentifiedStatement(text=text, type=classify(text, dialect), start=start, end=end)
        )
    return statements


def classify(statement: str, dialect: str | None = None) -> str:
    """Return the lower-case kind of a single statement (`select`, `insert`, ...)."""

    if _explain_analyzes(statement, dialect):
        return "explain_analyze"
    try:
        expression = sqlglot.parse_one(statement, read=dialect or None)
    except (ParseError, TokenError):
        return _first_word(statement)
    if expression is None:
        return _first_word(statement)
    return _expression_type(expression, statement)


def _expression_type(expression: exp.Expression, statement: str) -> str:
    if isinstance(expression, _SELECT_LIKE):
        # Data-modifying CTEs and SELECT INTO write despite the SELECT head.
        write = expression.find(*_WRITE_EXPRESSIONS)
        if write is not None:
            return type(write).__name__.lower()
        if expression.args.get("into") is not None:
            return "select_into"
        return "select"
    if isinstance(expression, exp.Describe):
        return "describe"
    if isinstance(expression, exp.Pragma):
        return "pragma"
    if isinstance(expression, exp.Show):
        return "show"
    if isinstance(expression, exp.Command):
        return str(expression.this or "").strip().lower() or _first_word(statement)
    return type(expression).__name__.lower()


def _explain_analyzes(statement: str, dialect: str | None) -> bool:
    """True for EXPLAIN/DESCRIBE forms that execute the explained statement."""

    try:
        tokens = sqlglot.tokenize(statement, read=dialect or None)
    except TokenError:
        return _first_word(statement) in _EXPLAIN_HEADS and _ANALYZE_WORD.search(statement) is not None
    words = [token.text.lower() for token in tokens]
    if not words or words[0] not in _EXPLAIN_HEADS:
        return False
    if len(tokens) > 1 and tokens[1].token_type == TokenType.L_PAREN:
        return any(_option_enables_analyze(option) for option in _explain_options(tokens[2:]))
    # Bare preamble: `EXPLAIN [ANALYZE] [VERBOSE] ...`, `EXPLAIN FORMAT=TREE ANALYZE ...`.
    for word in words[1:]:
        if word in _ANALYZE_WORDS:
            return True
        if word in _STATEMENT_HEADS:
            return False
    return False


def _explain_options(tokens: list[Token]) -> list[list[str]]:
    options: list[list[str]] = []
    current: list[str] = []
    depth = 0
    for token in tokens:
        if token.token_type == TokenType.R_PAREN and depth == 0:
            break
        if token.token_type == TokenType.COMMA and depth == 0:
            options.append(current)
            current = []
            continue
        if token.token_type == TokenType.L_PAREN:
            depth += 1
        elif token.token_type == TokenType.R_PAREN:
            depth -= 1
        current.append(token.text.lower())
    options.append(current)
    return options


def _option_enables_analyze(option: list[str]) -> bool:
    if not option or option[0] not in _ANALYZE_WORDS:
        return False
    return len(option) < 2 or option[1] not in _FALSE_WORDS


def _first_word(statement: str) -> str:
    match = _FIRST_WORD.match(statement)
    return match.group(1).lower() if match else "unknown"


__all__ = ["IdentifiedStatement", "classify", "identify", "split_statements"]
