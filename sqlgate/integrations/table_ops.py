"""Table operations for local SQLite files, expressed as SQL sent to the gateway.

Values are inlined as literals because the gateway accepts plain scripts, so
every identifier goes through :func:`quote_identifier` and every value through
:func:`to_sql_literal`. Only columns that exist in the table schema are ever
referenced.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from sqlgate.core.errors import TableOperationError
from sqlgate.integrations.models import (
    SEARCH_FILTER_KEY,
    MutationResult,
    RowUpdate,
    TableColumn,
    TableDataResult,
    TableQueryParams,
)


LOGGER = logging.getLogger(__name__)

DEFAULT_TABLE_PAGE = 1
DEFAULT_TABLE_PAGE_SIZE = 20

LIST_TABLES_SQL = (
    "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name ASC;"
)


class QueryExecutor(Protocol):
    """Runs a SQL script against the database file at *path*."""

    def execute(self, path: str, sql: str) -> TableDataResult:  # pragma: no cover - interface
        ...


def quote_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def to_sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else "NULL"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    encoded = json.dumps(value, ensure_ascii=False, default=str)
    return "'" + encoded.replace("'", "''") + "'"


def _to_number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return value
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0
    return parsed if math.isfinite(parsed) else 0


def safe_page(value: int | float | None) -> int:
    if not value or (isinstance(value, float) and math.isnan(value)):
        return DEFAULT_TABLE_PAGE
    return max(DEFAULT_TABLE_PAGE, math.floor(value))


def safe_page_size(value: int | float | None) -> int:
    if not value or (isinstance(value, float) and math.isnan(value)):
        return DEFAULT_TABLE_PAGE_SIZE
    return max(1, math.floor(value))


def safe_sort_order(value: str | None) -> str:
    return "desc" if value == "desc" else "asc"


def find_primary_key(columns: Iterable[TableColumn]) -> TableColumn | None:
    return next((column for column in columns if column.is_primary_key), None)


def build_where_clause(columns: Sequence[TableColumn], filters: dict[str, str] | None = None) -> str:
    """Return a ``WHERE`` clause for the search keyword and per-column filters."""

    filters = filters or {}
    clauses: list[str] = []

    keyword = (filters.get(SEARCH_FILTER_KEY) or "").strip()
    if keyword and columns:
        pattern = to_sql_literal(f"%{keyword}%")
        searchable = [f"CAST({quote_identifier(column.field)} AS TEXT) LIKE {pattern}" for column in columns]
        clauses.append("(" + " OR ".join(searchable) + ")")

    known = {column.field for column in columns}
    for name, raw_value in filters.items():
        if name == SEARCH_FILTER_KEY:
            continue
        value = (raw_value or "").strip()
        if not value or name not in known:
            continue
        clauses.append(f"CAST({quote_identifier(name)} AS TEXT) LIKE {to_sql_literal(f'%{value}%')}")

    return "WHERE " + " AND ".join(clauses) if clauses else ""


def build_order_clause(columns: Sequence[TableColumn], sort_field: str | None, sort_order: str) -> str:
    if sort_field and any(column.field == sort_field for column in columns):
        return f"ORDER BY {quote_identifier(sort_field)} {sort_order.upper()}"

    primary_key = find_primary_key(columns)
    if primary_key is not None:
        return f"ORDER BY {quote_identifier(primary_key.field)} ASC"
    return ""


def parse_table_info(rows: Sequence[dict[str, Any]]) -> list[TableColumn]:
    """Translate ``PRAGMA table_info`` rows into column descriptions."""

    columns: list[TableColumn] = []
    for row in rows:
        declared = str(row.get("type") or "").strip()
        columns.append(
            TableColumn(
                field=str(row.get("name") or ""),
                type=declared or "unknown",
                null="NO" if _to_number(row.get("notnull")) == 1 else "YES",
                key="PRI" if _to_number(row.get("pk")) >= 1 else "",
                default=row.get("dflt_value"),
                extra="",
            )
        )
    return columns


def _first_number(result: TableDataResult, field_name: str) -> int:
    if not result.rows:
        return 0
    return int(_to_number(result.rows[0].get(field_name)))


@dataclass(slots=True)
class LocalTableOperations:
    """Table-level operations against SQLite files reachable through *executor*."""

    executor: QueryExecutor

    def list_tables(self, path: str) -> list[str]:
        result = self.executor.execute(path, LIST_TABLES_SQL)
        return [row["name"] for row in result.rows if isinstance(row.get("name"), str) and row["name"].strip()]

    def get_table_schema(self, path: str, table_name: str) -> list[TableColumn]:
        result = self.executor.execute(path, f"PRAGMA table_info({quote_identifier(table_name)});")
        columns = parse_table_info(result.rows)
        if not columns:
            raise TableOperationError(f"Failed to read schema for table {table_name}")
        return columns

    def get_table_data(
        self,
        path: str,
        table_name: str,
        params: TableQueryParams | None = None,
    ) -> TableDataResult:
        params = params or TableQueryParams()
        columns = self.get_table_schema(path, table_name)
        page = safe_page(params.page)
        page_size = safe_page_size(params.page_size)
        where_clause = build_where_clause(columns, params.filters)
        order_clause = build_order_clause(columns, params.sort_field, safe_sort_order(params.sort_order))
        offset = (page - 1) * page_size

        table = quote_identifier(table_name)
        count_sql = f"SELECT COUNT(*) AS total FROM {table} {where_clause};"
        data_sql = f"SELECT * FROM {table} {where_clause} {order_clause} LIMIT {page_size} OFFSET {offset};"

        count_result = self.executor.execute(path, count_sql)
        data_result = self.executor.execute(path, data_sql)
        return TableDataResult(
            rows=data_result.rows,
            total=_first_number(count_result, "total"),
            columns=columns,
        )

    def insert_row(self, path: str, table_name: str, data: dict[str, Any]) -> None:
        columns = self.get_table_schema(path, table_name)
        known = {column.field for column in columns}
        entries = [(name, value) for name, value in data.items() if name in known]
        if not entries:
            raise TableOperationError("No insertable columns supplied")

        fields_sql = ", ".join(quote_identifier(name) for name, _ in entries)
        values_sql = ", ".join(to_sql_literal(value) for _, value in entries)
        self.executor.execute(
            path,
            f"INSERT INTO {quote_identifier(table_name)} ({fields_sql}) VALUES ({values_sql});",
        )

    def delete_rows(self, path: str, table_name: str, ids: Sequence[str | int]) -> MutationResult:
        if not ids:
            return MutationResult(success=True, count=0)

        columns = self.get_table_schema(path, table_name)
        primary_key = self._require_primary_key(columns, table_name)
        values_sql = ", ".join(to_sql_literal(value) for value in ids)
        sql = (
            f"DELETE FROM {quote_identifier(table_name)} WHERE {quote_identifier(primary_key)} IN ({values_sql}); "
            "SELECT changes() AS affected;"
        )
        result = self.executor.execute(path, sql)
        return MutationResult(success=True, count=_first_number(result, "affected"))

    def update_rows(self, path: str, table_name: str, rows: Sequence[RowUpdate]) -> MutationResult:
        if not rows:
            return MutationResult(success=True, count=0)

        columns = self.get_table_schema(path, table_name)
        primary_key = self._require_primary_key(columns, table_name)
        known = {column.field for column in columns}
        table = quote_identifier(table_name)
        pk_identifier = quote_identifier(primary_key)

        statements: list[str] = []
        for row in rows:
            entries = [(name, value) for name, value in row.data.items() if name != primary_key and name in known]
            if not entries:
                continue
            assignments = ", ".join(f"{quote_identifier(name)} = {to_sql_literal(value)}" for name, value in entries)
            statements.append(f"UPDATE {table} SET {assignments} WHERE {pk_identifier} = {to_sql_literal(row.pk)};")

        if not statements:
            return MutationResult(success=True, count=0)

        # total_changes() counts every row touched by this connection, i.e. this script.
        sql = "\n".join(statements) + "\nSELECT total_changes() AS affected;"
        result = self.executor.execute(path, sql)
        return MutationResult(success=True, count=_first_number(result, "affected"))

    @staticmethod
    def _require_primary_key(columns: Sequence[TableColumn], table_name: str) -> str:
        primary_key = find_primary_key(columns)
        if primary_key is None:
            raise TableOperationError(
                f"Table {table_name} has no primary key; update and delete are not supported"
            )
        return primary_key.field
