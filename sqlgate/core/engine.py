"""SQLite execution engine for multi-statement scripts.

Each call opens the target file, runs every statement of the script in order
and closes the connection again, on success and on failure alike.

Only the last row-returning statement contributes to the result: earlier
SELECTs in the same script run fully but their rows are replaced. Scripts are
not wrapped in a transaction, so when statement N fails the effects of
statements 1..N-1 stay committed.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import apsw

from sqlgate.core.classifier import returns_rows
from sqlgate.core.errors import EngineError, NotFoundError
from sqlgate.core.logging_utils import truncate_for_log
from sqlgate.core.splitter import split_sql_statements


LOGGER = logging.getLogger(__name__)

UNKNOWN_TYPE = "unknown"
# Opcodes between deadline checks when a timeout is configured.
_PROGRESS_INTERVAL = 1000
# apsw prefixes SQLite's text with the exception class name.
_APSW_PREFIX_RE = re.compile(r"^[A-Za-z]+Error: ")


@dataclass(slots=True)
class ColumnMeta:
    name: str
    type: str = UNKNOWN_TYPE

    def to_payload(self) -> dict[str, str]:
        return {"Field": self.name, "Type": self.type}


@dataclass(slots=True)
class ExecutionResult:
    """Normalised outcome of one script execution; ``total == len(rows)``."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    columns: list[ColumnMeta] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rows)

    def to_payload(self) -> dict[str, Any]:
        return {
            "rows": [dict(row) for row in self.rows],
            "total": self.total,
            "columns": [column.to_payload() for column in self.columns],
        }


def engine_message(exc: apsw.Error) -> str:
    """Return SQLite's own error text for *exc*."""

    return _APSW_PREFIX_RE.sub("", str(exc), count=1)


def _describe_columns(description: Sequence[tuple[str, str | None]]) -> list[ColumnMeta]:
    # Expressions have no declared type; neither do columns created without one.
    return [
        ColumnMeta(name=str(name or ""), type=(declared or "").strip() or UNKNOWN_TYPE)
        for name, declared in description
    ]


def _install_deadline(connection: apsw.Connection, timeout_s: float | None) -> None:
    if not timeout_s or timeout_s <= 0:
        return
    deadline = time.monotonic() + timeout_s

    def _past_deadline() -> bool:
        return time.monotonic() > deadline

    connection.set_progress_handler(_past_deadline, _PROGRESS_INTERVAL)


def _run_statement(
    connection: apsw.Connection, statement: str
) -> tuple[list[tuple[str, str | None]], list[tuple[Any, ...]]]:
    description: list[tuple[str, str | None]] = []

    def _capture_description(cursor: apsw.Cursor, sql: str, bindings: Any) -> bool:
        # Called once the statement is prepared, before its first step.
        description[:] = cursor.get_description()
        return True

    with closing(connection.cursor()) as cursor:
        cursor.exec_trace = _capture_description
        cursor.execute(statement)
        # Drained in both cases so the statement runs to completion.
        fetched = cursor.fetchall()
    return description, fetched


def execute_script(
    path: str | Path,
    script: str,
    *,
    timeout_s: float | None = None,
    busy_timeout_s: float = 5.0,
) -> ExecutionResult:
    """Run *script* against the SQLite file at *path*.

    Raises :class:`NotFoundError` when *path* does not exist and
    :class:`EngineError` with SQLite's own message for the first statement that
    fails. A non-positive or missing *timeout_s* disables the wall-clock limit.
    """

    target = Path(path)
    if not target.exists():
        raise NotFoundError(f"SQLite file does not exist: {path}")

    statements = split_sql_statements(script)
    result = ExecutionResult()

    try:
        handle = apsw.Connection(str(target))
        handle.set_busy_timeout(max(0, int(busy_timeout_s * 1000)))
    except apsw.Error as exc:
        raise EngineError(engine_message(exc)) from exc

    with closing(handle) as connection:
        if not statements:
            return result

        _install_deadline(connection, timeout_s)
        for position, statement in enumerate(statements, start=1):
            LOGGER.debug(
                "Executing statement %s/%s on %s: %s",
                position,
                len(statements),
                target,
                truncate_for_log(statement),
            )
            try:
                description, fetched = _run_statement(connection, statement)
            except apsw.Error as exc:
                LOGGER.info(
                    "Statement %s/%s failed on %s: %s",
                    position,
                    len(statements),
                    target,
                    exc,
                )
                raise EngineError(engine_message(exc)) from exc

            if returns_rows(statement):
                names = [str(name or "") for name, _ in description]
                result.columns = _describe_columns(description)
                result.rows = [dict(zip(names, row)) for row in fetched]

    return result
