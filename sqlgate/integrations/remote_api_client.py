"""HTTP client for the remote database API's table operations.

Every endpoint answers with an envelope ``{"success": bool, "data": ..., "error": str}``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import quote

import httpx

from sqlgate.core.config import ClientSettings
from sqlgate.core.errors import RemoteApiError
from sqlgate.integrations.models import RowUpdate, TableColumn, TableDataResult, TableQueryParams


LOGGER = logging.getLogger(__name__)


def _default_client_factory(base_url: str, timeout_s: float) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_s),
        headers={"Content-Type": "application/json"},
    )


def _segment(value: str) -> str:
    return quote(str(value), safe="")


@dataclass(slots=True)
class RemoteApiClient:
    base_url: str = ""
    timeout_s: float = 30.0
    client_factory: Callable[[str, float], httpx.Client] = field(default=_default_client_factory)
    _client: httpx.Client = field(init=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.strip().rstrip("/")
        self._client = self.client_factory(self.base_url, self.timeout_s)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> RemoteApiClient:
        return cls(base_url=settings.remote_api_url, timeout_s=settings.request_timeout_s)

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        fallback_error: str,
        require_data: bool = False,
        body: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        response = self._client.request(method, path, json=body, params=params)
        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        if not isinstance(envelope, dict):
            LOGGER.warning("Remote API returned a non-envelope body for %s %s", method, path)
            raise RemoteApiError(fallback_error)

        data = envelope.get("data")
        if not envelope.get("success") or (require_data and data is None):
            error = envelope.get("error")
            raise RemoteApiError(error if isinstance(error, str) and error else fallback_error)
        return data

    def _table_path(self, database_id: str, table_name: str) -> str:
        return f"/api/v1/databases/{_segment(database_id)}/tables/{_segment(table_name)}"

    def list_tables(self, database_id: str) -> list[str]:
        data = self._request(
            "GET",
            f"/api/v1/databases/{_segment(database_id)}/tables",
            fallback_error="Failed to list tables",
            require_data=True,
        )
        return [str(name) for name in data]

    def get_table_data(
        self,
        database_id: str,
        table_name: str,
        params: TableQueryParams | None = None,
    ) -> TableDataResult:
        params = params or TableQueryParams()
        data = self._request(
            "GET",
            f"{self._table_path(database_id, table_name)}/data",
            fallback_error="Failed to load table data",
            require_data=True,
            params=params.to_search_params(),
        )
        rows = [dict(row) for row in data.get("rows") or [] if isinstance(row, dict)]
        columns = [TableColumn.from_payload(column) for column in data.get("columns") or [] if isinstance(column, dict)]
        total = data.get("total")
        return TableDataResult(
            rows=rows,
            total=int(total) if isinstance(total, (int, float)) and not isinstance(total, bool) else len(rows),
            columns=columns,
        )

    def delete_rows(self, database_id: str, table_name: str, ids: Sequence[str | int]) -> None:
        self._request(
            "POST",
            f"{self._table_path(database_id, table_name)}/rows/delete",
            fallback_error="Delete failed",
            body={"ids": list(ids)},
        )

    def insert_row(self, database_id: str, table_name: str, data: dict[str, Any]) -> None:
        self._request(
            "POST",
            f"{self._table_path(database_id, table_name)}/rows",
            fallback_error="Insert failed",
            body=dict(data),
        )

    def update_rows(self, database_id: str, table_name: str, rows: Sequence[RowUpdate]) -> None:
        self._request(
            "PUT",
            f"{self._table_path(database_id, table_name)}/rows",
            fallback_error="Update failed",
            body={"rows": [row.to_payload() for row in rows]},
        )
