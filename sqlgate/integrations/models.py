"""Table-operation shapes shared by the local and remote backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SortOrder = Literal["asc", "desc"]
SEARCH_FILTER_KEY = "_search"


@dataclass(slots=True)
class TableColumn:
    field: str
    type: str = "unknown"
    null: str | None = None
    key: str | None = None
    default: Any = None
    extra: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"Field": self.field, "Type": self.type}
        # Schema-derived columns carry the full description, query columns do not.
        if self.null is not None:
            payload["Null"] = self.null
            payload["Key"] = self.key or ""
            payload["Default"] = self.default
            payload["Extra"] = self.extra or ""
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TableColumn:
        return cls(
            field=str(payload.get("Field") or ""),
            type=str(payload.get("Type") or "unknown"),
            null=payload.get("Null"),
            key=payload.get("Key"),
            default=payload.get("Default"),
            extra=payload.get("Extra"),
        )

    @property
    def is_primary_key(self) -> bool:
        return self.key == "PRI"


@dataclass(slots=True)
class TableDataResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    columns: list[TableColumn] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "rows": [dict(row) for row in self.rows],
            "total": self.total,
            "columns": [column.to_payload() for column in self.columns],
        }


@dataclass(slots=True)
class RowUpdate:
    pk: str | int
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"pk": self.pk, "data": dict(self.data)}


@dataclass(slots=True)
class TableQueryParams:
    page: int | None = None
    page_size: int | None = None
    sort_field: str | None = None
    sort_order: SortOrder | None = None
    filters: dict[str, str] = field(default_factory=dict)

    def to_search_params(self) -> dict[str, str]:
        """Encode the parameters the way the remote table API expects them."""

        params: dict[str, str] = {}
        if self.page:
            params["page"] = str(self.page)
        if self.page_size:
            params["pageSize"] = str(self.page_size)
        if self.sort_field:
            params["sortField"] = self.sort_field
        if self.sort_order:
            params["sortOrder"] = self.sort_order
        for key, value in self.filters.items():
            if value == "":
                continue
            if key == SEARCH_FILTER_KEY:
                params[SEARCH_FILTER_KEY] = value
                continue
            params[f"filter_{key}"] = value
        return params


@dataclass(slots=True)
class MutationResult:
    success: bool = True
    count: int = 0
