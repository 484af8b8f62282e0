"""HTTP client for the local SQLite gateway."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from sqlgate.core.config import DEFAULT_SIDECAR_URL, ClientSettings
from sqlgate.core.errors import GatewayRequestError, ValidationError
from sqlgate.integrations.models import TableColumn, TableDataResult


LOGGER = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/sqlite/query"
HEALTH_PATH = "/health"
PATH_CHECK_SQL = "SELECT name FROM sqlite_master WHERE type='table' LIMIT 1;"


def _default_client_factory(base_url: str, timeout_s: float) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_s),
        headers={"Content-Type": "application/json"},
    )


def _error_message(response: httpx.Response) -> str:
    fallback = f"gateway request failed ({response.status_code} {response.reason_phrase})"
    try:
        payload = response.json()
    except ValueError:
        return fallback
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, str) and error.strip():
        return error
    return fallback


def _normalize_columns(columns: Any) -> list[TableColumn]:
    if not isinstance(columns, list):
        return []
    normalized: list[TableColumn] = []
    for column in columns:
        if not isinstance(column, dict):
            normalized.append(TableColumn(field=""))
            continue
        name = column.get("Field")
        column_type = column.get("Type")
        normalized.append(
            TableColumn(
                field=name if isinstance(name, str) else "",
                type=column_type if isinstance(column_type, str) and column_type.strip() else "unknown",
            )
        )
    return normalized


def normalize_query_result(payload: Any) -> TableDataResult:
    """Coerce a gateway response body into a :class:`TableDataResult`.

    Malformed pieces degrade to empty values instead of raising.
    """

    if not isinstance(payload, dict):
        return TableDataResult()

    raw_rows = payload.get("rows")
    rows = [dict(row) for row in raw_rows if isinstance(row, dict)] if isinstance(raw_rows, list) else []
    total = payload.get("total")
    if isinstance(total, bool) or not isinstance(total, (int, float)) or not math.isfinite(total):
        total = len(rows)
    return TableDataResult(rows=rows, total=int(total), columns=_normalize_columns(payload.get("columns")))


@dataclass(slots=True)
class SidecarClient:
    """Sends ``{path, sql}`` scripts to the gateway and normalises the answers."""

    base_url: str = DEFAULT_SIDECAR_URL
    timeout_s: float = 30.0
    client_factory: Callable[[str, float], httpx.Client] = field(default=_default_client_factory)
    _client: httpx.Client = field(init=False)

    def __post_init__(self) -> None:
        self.base_url = (self.base_url.strip() or DEFAULT_SIDECAR_URL).rstrip("/")
        self._client = self.client_factory(self.base_url, self.timeout_s)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> SidecarClient:
        return cls(base_url=settings.sidecar_url, timeout_s=settings.request_timeout_s)

    def close(self) -> None:
        self._client.close()

    def execute(self, path: str, sql: str) -> TableDataResult:
        target = path.strip()
        if not target:
            raise ValidationError("Local SQLite path is empty")

        response = self._client.post(QUERY_PATH, json={"path": target, "sql": sql})
        if not response.is_success:
            message = _error_message(response)
            LOGGER.info("Gateway rejected query for %s: %s", target, message)
            raise GatewayRequestError(message, status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayRequestError(
                f"gateway returned a non-JSON response ({response.status_code})",
                status_code=response.status_code,
            ) from exc
        return normalize_query_result(payload)

    def check_health(self) -> None:
        response = self._client.get(HEALTH_PATH)
        if not response.is_success:
            raise GatewayRequestError(_error_message(response), status_code=response.status_code)

    def validate_path(self, path: str) -> None:
        """Confirm that *path* opens as a SQLite database through the gateway."""

        target = path.strip()
        if not target:
            raise ValidationError("Please enter a local SQLite path")
        self.execute(target, PATH_CHECK_SQL)
