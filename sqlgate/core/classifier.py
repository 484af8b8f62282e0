"""Keyword heuristic deciding whether a statement produces rows."""

from __future__ import annotations

import re
from enum import Enum


class QueryKind(Enum):
    RETURNING = "returning"
    NON_RETURNING = "non_returning"


RETURNING_KEYWORDS = frozenset({"SELECT", "WITH", "PRAGMA", "EXPLAIN"})

_LEADING_WORD_RE = re.compile(r"[A-Za-z]+")


def leading_keyword(statement: str) -> str:
    """Return the uppercased run of ASCII letters that starts *statement*.

    Leading whitespace is not skipped; statements arrive already trimmed.
    """

    match = _LEADING_WORD_RE.match(statement)
    return match.group(0).upper() if match else ""


def classify(statement: str) -> QueryKind:
    """Classify *statement* by its first keyword.

    ``INSERT ... RETURNING`` and similar write statements that yield rows are
    reported as NON_RETURNING; their rows are discarded by the engine.
    """

    if leading_keyword(statement) in RETURNING_KEYWORDS:
        return QueryKind.RETURNING
    return QueryKind.NON_RETURNING


def returns_rows(statement: str) -> bool:
    return classify(statement) is QueryKind.RETURNING
