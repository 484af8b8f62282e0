"""Selects the backend that serves table operations for a connection.

Local SQLite connections are recognised purely by their identifier prefix and
served through the gateway; every other identifier goes to the remote API.
Resolution performs no I/O, so it is safe to call on every operation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sqlgate.core.config import Settings
from sqlgate.detail.connections import LocalConnectionRegistry, is_local_sqlite_connection_id
from sqlgate.integrations.models import RowUpdate, TableDataResult, TableQueryParams
from sqlgate.integrations.remote_api_client import RemoteApiClient
from sqlgate.integrations.sidecar_client import SidecarClient
from sqlgate.integrations.table_ops import LocalTableOperations


class DatabaseDetailStrategy(Protocol):
    """Table operations offered by one backend family."""

    def list_tables(self, database_id: str) -> list[str]:  # pragma: no cover - interface
        ...

    def get_table_data(
        self, database_id: str, table_name: str, params: TableQueryParams | None = None
    ) -> TableDataResult:  # pragma: no cover - interface
        ...

    def delete_rows(self, database_id: str, table_name: str, ids: Sequence[str | int]) -> None:  # pragma: no cover - interface
        ...

    def insert_row(self, database_id: str, table_name: str, data: dict[str, Any]) -> None:  # pragma: no cover - interface
        ...

    def update_rows(self, database_id: str, table_name: str, rows: Sequence[RowUpdate]) -> None:  # pragma: no cover - interface
        ...


@dataclass(slots=True)
class RemoteDetailStrategy:
    client: RemoteApiClient

    def list_tables(self, database_id: str) -> list[str]:
        return self.client.list_tables(database_id)

    def get_table_data(
        self, database_id: str, table_name: str, params: TableQueryParams | None = None
    ) -> TableDataResult:
        return self.client.get_table_data(database_id, table_name, params)

    def delete_rows(self, database_id: str, table_name: str, ids: Sequence[str | int]) -> None:
        self.client.delete_rows(database_id, table_name, ids)

    def insert_row(self, database_id: str, table_name: str, data: dict[str, Any]) -> None:
        self.client.insert_row(database_id, table_name, data)

    def update_rows(self, database_id: str, table_name: str, rows: Sequence[RowUpdate]) -> None:
        self.client.update_rows(database_id, table_name, rows)


@dataclass(slots=True)
class LocalSQLiteDetailStrategy:
    """Serves local connections by generating SQL for the gateway."""

    operations: LocalTableOperations
    registry: LocalConnectionRegistry

    def list_tables(self, database_id: str) -> list[str]:
        return self.operations.list_tables(self.registry.resolve_path(database_id))

    def get_table_data(
        self, database_id: str, table_name: str, params: TableQueryParams | None = None
    ) -> TableDataResult:
        return self.operations.get_table_data(self.registry.resolve_path(database_id), table_name, params)

    def delete_rows(self, database_id: str, table_name: str, ids: Sequence[str | int]) -> None:
        self.operations.delete_rows(self.registry.resolve_path(database_id), table_name, ids)

    def insert_row(self, database_id: str, table_name: str, data: dict[str, Any]) -> None:
        self.operations.insert_row(self.registry.resolve_path(database_id), table_name, data)

    def update_rows(self, database_id: str, table_name: str, rows: Sequence[RowUpdate]) -> None:
        self.operations.update_rows(self.registry.resolve_path(database_id), table_name, rows)


@dataclass(slots=True)
class StrategyEntry:
    match: Callable[[str], bool]
    strategy: DatabaseDetailStrategy


@dataclass(slots=True)
class StrategyResolver:
    """Ordered predicate list; the first matching entry wins."""

    entries: list[StrategyEntry]
    default: DatabaseDetailStrategy

    def resolve(self, database_id: str) -> DatabaseDetailStrategy:
        for entry in self.entries:
            if entry.match(database_id):
                return entry.strategy
        return self.default


def build_resolver(
    settings: Settings,
    *,
    registry: LocalConnectionRegistry | None = None,
    sidecar_client: SidecarClient | None = None,
    remote_client: RemoteApiClient | None = None,
) -> StrategyResolver:
    """Wire the local and remote strategies from *settings*.

    Constructing the clients opens no connections; requests happen only when a
    strategy method is called.
    """

    registry = registry or LocalConnectionRegistry(settings.paths.connections_file)
    sidecar_client = sidecar_client or SidecarClient.from_settings(settings.clients)
    remote_client = remote_client or RemoteApiClient.from_settings(settings.clients)

    local = LocalSQLiteDetailStrategy(operations=LocalTableOperations(executor=sidecar_client), registry=registry)
    return StrategyResolver(
        entries=[StrategyEntry(match=is_local_sqlite_connection_id, strategy=local)],
        default=RemoteDetailStrategy(client=remote_client),
    )
