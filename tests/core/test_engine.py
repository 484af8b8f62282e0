"""Tests for the SQLite script execution engine."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import apsw
import pytest

from sqlgate.core.engine import ColumnMeta, ExecutionResult, execute_script
from sqlgate.core.errors import EngineError, NotFoundError


SQLITE_VERSION = tuple(int(part) for part in apsw.sqlite_lib_version().split("."))


@pytest.fixture()
def empty_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "fresh.sqlite"
    sqlite3.connect(db_path).close()
    assert db_path.exists()
    return db_path


@pytest.fixture()
def seeded_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "seeded.sqlite"
    connection = sqlite3.connect(db_path)
    connection.executescript(
        """
        CREATE TABLE t (x INTEGER);
        INSERT INTO t VALUES (1);
        """
    )
    connection.commit()
    connection.close()
    return db_path


def _rows(db_path: Path, sql: str) -> list[tuple]:
    connection = sqlite3.connect(db_path)
    try:
        return connection.execute(sql).fetchall()
    finally:
        connection.close()


def test_create_insert_select_returns_the_row(empty_db: Path) -> None:
    result = execute_script(empty_db, "CREATE TABLE t(x); INSERT INTO t VALUES (1); SELECT * FROM t;")

    assert result.rows == [{"x": 1}]
    assert result.total == 1
    assert result.to_payload() == {
        "rows": [{"x": 1}],
        "total": 1,
        "columns": [{"Field": "x", "Type": "unknown"}],
    }


def test_write_only_script_returns_empty_result(empty_db: Path) -> None:
    result = execute_script(empty_db, "CREATE TABLE t(x); INSERT INTO t VALUES (1);")

    assert result.rows == []
    assert result.columns == []
    assert result.total == 0
    assert _rows(empty_db, "SELECT x FROM t") == [(1,)]


def test_only_the_last_returning_statement_is_visible(empty_db: Path) -> None:
    result = execute_script(empty_db, "SELECT 1 AS a; SELECT 2 AS b;")

    assert result.rows == [{"b": 2}]
    assert result.columns == [ColumnMeta(name="b", type="unknown")]


def test_write_after_read_keeps_the_read_result(seeded_db: Path) -> None:
    result = execute_script(seeded_db, "SELECT x FROM t; INSERT INTO t VALUES (2)")

    assert result.rows == [{"x": 1}]
    assert _rows(seeded_db, "SELECT count(*) FROM t") == [(2,)]


def test_script_without_statements_returns_empty_result(empty_db: Path) -> None:
    assert execute_script(empty_db, " ;  ; ") == ExecutionResult()


def test_missing_file_raises_not_found(tmp_path: Path) -> None:
    missing = tmp_path / "missing.sqlite"

    with pytest.raises(NotFoundError) as excinfo:
        execute_script(missing, "SELECT 1")

    assert str(missing) in excinfo.value.message
    assert not missing.exists()


def test_failure_keeps_earlier_effects(seeded_db: Path) -> None:
    with pytest.raises(EngineError) as excinfo:
        execute_script(seeded_db, "INSERT INTO t VALUES (2); SELEC nonsense; INSERT INTO t VALUES (3);")

    assert "syntax error" in excinfo.value.message
    assert isinstance(excinfo.value.__cause__, apsw.Error)
    assert _rows(seeded_db, "SELECT x FROM t ORDER BY x") == [(1,), (2,)]


def test_constraint_violation_surfaces_engine_message(empty_db: Path) -> None:
    with pytest.raises(EngineError) as excinfo:
        execute_script(
            empty_db,
            "CREATE TABLE u (id INTEGER PRIMARY KEY); INSERT INTO u VALUES (1); INSERT INTO u VALUES (1);",
        )

    assert "UNIQUE constraint failed" in excinfo.value.message


@pytest.mark.skipif(SQLITE_VERSION < (3, 35, 0), reason="RETURNING needs SQLite 3.35")
def test_insert_returning_is_treated_as_write(seeded_db: Path) -> None:
    result = execute_script(seeded_db, "INSERT INTO t VALUES (5) RETURNING x")

    assert result.rows == []
    assert _rows(seeded_db, "SELECT x FROM t ORDER BY x") == [(1,), (5,)]


def test_comments_travel_with_statements(seeded_db: Path) -> None:
    trailing = execute_script(seeded_db, "SELECT x AS value FROM t -- trailing; note")
    leading = execute_script(seeded_db, "-- leading note\nSELECT x FROM t")

    assert trailing.rows == [{"value": 1}]
    # A leading comment hides the keyword from the classifier.
    assert leading.rows == []


def test_column_types_are_declared_types(empty_db: Path) -> None:
    empty = execute_script(empty_db, "CREATE TABLE t (x INTEGER, y VARCHAR(10), z); SELECT * FROM t")
    mismatched = execute_script(empty_db, "INSERT INTO t VALUES ('abc', 5, 1.5); SELECT x, y, z FROM t")

    expected = [
        {"Field": "x", "Type": "INTEGER"},
        {"Field": "y", "Type": "VARCHAR(10)"},
        {"Field": "z", "Type": "unknown"},
    ]
    assert empty.rows == []
    assert [column.to_payload() for column in empty.columns] == expected
    assert [column.to_payload() for column in mismatched.columns] == expected
    assert mismatched.rows == [{"x": "abc", "y": "5", "z": 1.5}]


def test_expression_columns_have_unknown_type(seeded_db: Path) -> None:
    result = execute_script(seeded_db, "SELECT x, x + 1 AS next, 'a' AS label FROM t")

    assert [column.to_payload() for column in result.columns] == [
        {"Field": "x", "Type": "INTEGER"},
        {"Field": "next", "Type": "unknown"},
        {"Field": "label", "Type": "unknown"},
    ]


def test_pragma_and_with_statements_return_rows(seeded_db: Path) -> None:
    pragma = execute_script(seeded_db, "PRAGMA table_info(t)")
    cte = execute_script(seeded_db, "WITH doubled AS (SELECT x * 2 AS y FROM t) SELECT y FROM doubled")

    assert pragma.rows[0]["name"] == "x"
    assert cte.rows == [{"y": 2}]


def test_timeout_interrupts_runaway_statement(empty_db: Path) -> None:
    runaway = "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT count(*) FROM c"

    with pytest.raises(EngineError) as excinfo:
        execute_script(empty_db, runaway, timeout_s=0.05)

    assert "interrupt" in excinfo.value.message


def test_each_call_releases_its_connection(seeded_db: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    opened: list[str] = []
    closed: list[str] = []

    class TrackingConnection(apsw.Connection):
        def __init__(self, filename: str, *args, **kwargs) -> None:
            super().__init__(filename, *args, **kwargs)
            opened.append(filename)

        def close(self, *args, **kwargs) -> None:
            closed.append(self.filename)
            super().close(*args, **kwargs)

    monkeypatch.setattr(apsw, "Connection", TrackingConnection)

    execute_script(seeded_db, "SELECT x FROM t")
    with pytest.raises(EngineError):
        execute_script(seeded_db, "SELEC broken")

    assert len(opened) == 2
    assert len(closed) == 2


def test_lock_held_by_another_writer_surfaces_as_engine_error(seeded_db: Path) -> None:
    blocker = sqlite3.connect(seeded_db, isolation_level=None)
    blocker.execute("BEGIN EXCLUSIVE")
    try:
        with pytest.raises(EngineError) as excinfo:
            execute_script(seeded_db, "CREATE TABLE other (y)", busy_timeout_s=0.05)
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    assert excinfo.value.message == "database is locked"
    assert _rows(seeded_db, "SELECT name FROM sqlite_master WHERE name = 'other'") == []
