"""Local SQLite connection identifiers and the registry that maps them to files."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any
from uuid import uuid4

import yaml

from sqlgate.core.errors import NotFoundError, ValidationError
from sqlgate.core.logging_utils import utc_now_iso


LOGGER = logging.getLogger(__name__)

LOCAL_SQLITE_ID_PREFIX = "local-sqlite:"


def is_local_sqlite_connection_id(connection_id: str) -> bool:
    """Pure prefix test; the only signal used to pick the local backend."""

    return connection_id.startswith(LOCAL_SQLITE_ID_PREFIX)


@dataclass(slots=True)
class LocalConnection:
    id: str
    name: str
    path: str
    created_at: str
    updated_at: str


class LocalConnectionRegistry:
    """Thread-safe registry of local SQLite connections.

    When *storage_path* is given the registry is loaded from and saved to that
    YAML file on every change.
    """

    def __init__(self, storage_path: str | Path | None = None) -> None:
        self._storage_path = Path(storage_path).expanduser() if storage_path else None
        self._connections: dict[str, LocalConnection] = {}
        self._lock = threading.Lock()
        if self._storage_path is not None and self._storage_path.exists():
            self._load(self._storage_path)

    def _load(self, source: Path) -> None:
        with source.open("r", encoding="utf-8") as handle:
            raw: list[dict[str, Any]] = yaml.safe_load(handle) or []
        for entry in raw:
            connection = LocalConnection(
                id=str(entry["id"]),
                name=str(entry.get("name", "")),
                path=str(entry["path"]),
                created_at=str(entry.get("created_at", "")),
                updated_at=str(entry.get("updated_at", "")),
            )
            self._connections[connection.id] = connection
        LOGGER.debug("Loaded %s local connection(s) from %s", len(self._connections), source)

    def _save(self) -> None:
        if self._storage_path is None:
            return
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump([asdict(item) for item in self._connections.values()], handle, sort_keys=False)

    def create(self, name: str, path: str) -> LocalConnection:
        target = path.strip()
        if not target:
            raise ValidationError("Please enter a local SQLite path")

        now = utc_now_iso()
        with self._lock:
            connection_id = f"{LOCAL_SQLITE_ID_PREFIX}{uuid4().hex}"
            while connection_id in self._connections:
                connection_id = f"{LOCAL_SQLITE_ID_PREFIX}{uuid4().hex}"
            connection = LocalConnection(
                id=connection_id,
                name=name.strip() or Path(target).name,
                path=target,
                created_at=now,
                updated_at=now,
            )
            self._connections[connection_id] = connection
            self._save()
        LOGGER.info("Registered local connection %s for %s", connection_id, target)
        return replace(connection)

    def get(self, connection_id: str) -> LocalConnection | None:
        with self._lock:
            connection = self._connections.get(connection_id)
            return replace(connection) if connection is not None else None

    def list_connections(self) -> list[LocalConnection]:
        with self._lock:
            return [replace(connection) for connection in self._connections.values()]

    def delete(self, connection_id: str) -> None:
        with self._lock:
            if self._connections.pop(connection_id, None) is not None:
                self._save()

    def resolve_path(self, connection_id: str) -> str:
        connection = self.get(connection_id)
        if connection is None:
            raise NotFoundError(f"Local SQLite connection does not exist: {connection_id}")
        return connection.path
