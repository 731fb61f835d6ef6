"""
Positional parameter binding for plain SQL text.

Statements in birdsql are written with PostgreSQL's ordinal placeholders
(``$1``, ``$2``, ...) and bound by position. SQLAlchemy's ``text()`` construct
binds by name, so placeholders are rewritten to ``:p1``, ``:p2``, ... before
execution. Placeholders inside single-quoted literals and comments are left
alone, and any colon that ``text()`` would mistake for a named bind is escaped.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from sqlalchemy import TextClause, text

from birdsql.db.errors import QueryError

# single-quoted literal ('' escapes a quote) or SQL comment
_LITERAL = re.compile(r"('(?:[^']|'')*'|--[^\n]*|/\*.*?\*/)", re.S)
_PLACEHOLDER = re.compile(r"(?<![\w$])\$(\d+)\b")
# text() would read ":p1::text" as a bind named "p"
_CAST_PLACEHOLDER = re.compile(r"(?<![\w$])\$(\d+)(?=::)")
# what text() would parse as a named bind parameter
_BIND_LIKE = re.compile(r"(?<![:\w\\]):(?=\w)")


def _segments(sql: str) -> list[str]:
    """Split ``sql`` into alternating code / literal-or-comment segments (code first)."""
    return _LITERAL.split(sql)


def placeholder_count(sql: str) -> int:
    """Return the highest ``$n`` ordinal used outside of string literals and comments."""
    ordinals = [
        int(match)
        for index, segment in enumerate(_segments(sql))
        if index % 2 == 0
        for match in _PLACEHOLDER.findall(segment)
    ]
    return max(ordinals, default=0)


def check_arity(expected: int, args: Sequence[Any]) -> None:
    """Raise QueryError unless exactly ``expected`` arguments were supplied."""
    if len(args) != expected:
        raise QueryError(f"expected {expected} arguments, got {len(args)}")


def literal_text(sql: str) -> TextClause:
    """Wrap ``sql`` in ``text()`` without interpreting any ``:name`` as a bind."""
    return text(_BIND_LIKE.sub(r"\\:", sql))


def bind_positional(sql: str, args: Sequence[Any]) -> tuple[TextClause, dict[str, Any]]:
    """
    Rewrite ``$n`` placeholders and pair them with ``args``.

    Args:
        sql: Statement using ``$1``..``$n`` placeholders.
        args: One value per ordinal, in order.

    Returns:
        The ``text()`` clause and its bind parameter mapping.

    Raises:
        QueryError: If the number of arguments does not match the placeholders.
    """
    check_arity(placeholder_count(sql), args)

    rewritten: list[str] = []
    for index, segment in enumerate(_segments(sql)):
        segment = _BIND_LIKE.sub(r"\\:", segment)
        if index % 2 == 0:
            segment = _CAST_PLACEHOLDER.sub(r"(:p\1)", segment)
            segment = _PLACEHOLDER.sub(r":p\1", segment)
        rewritten.append(segment)

    params = {f"p{ordinal}": value for ordinal, value in enumerate(args, start=1)}
    return text("".join(rewritten)), params


__all__ = ["bind_positional", "check_arity", "literal_text", "placeholder_count"]
