"""Utilities for loading gateway and client settings from YAML and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 19666
DEFAULT_MAX_REQUEST_BODY_BYTES = 512 * 1024
DEFAULT_SIDECAR_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"


@dataclass(slots=True)
class GatewaySettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_request_body_bytes: int = DEFAULT_MAX_REQUEST_BODY_BYTES
    query_timeout_s: float | None = None
    busy_timeout_s: float = 5.0


@dataclass(slots=True)
class ClientSettings:
    sidecar_url: str = DEFAULT_SIDECAR_URL
    remote_api_url: str = ""
    request_timeout_s: float = 30.0


@dataclass(slots=True)
class PathsSettings:
    connections_file: str | None = None


@dataclass(slots=True)
class Settings:
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    clients: ClientSettings = field(default_factory=ClientSettings)
    paths: PathsSettings = field(default_factory=PathsSettings)


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def load_settings(path: str | Path | None = None) -> Settings:
    """Read configuration from *path* (if given) and apply environment overrides.

    ``SIDECAR_HOST`` and ``SIDECAR_PORT`` control the listen address,
    ``SQLITE_SIDECAR_URL`` and ``REMOTE_API_URL`` point the clients at their
    services. Environment values win over the YAML file.
    """

    raw: dict[str, Any] = {}
    if path is not None:
        raw = _load_yaml(Path(path).expanduser())

    gateway_raw = raw.get("gateway") or {}
    gateway = GatewaySettings(
        host=str(gateway_raw.get("host", DEFAULT_HOST)),
        port=int(gateway_raw.get("port", DEFAULT_PORT)),
        max_request_body_bytes=int(
            gateway_raw.get("max_request_body_bytes", DEFAULT_MAX_REQUEST_BODY_BYTES)
        ),
        query_timeout_s=_optional_float(gateway_raw.get("query_timeout_s")),
        busy_timeout_s=float(gateway_raw.get("busy_timeout_s", 5.0)),
    )

    clients_raw = raw.get("clients") or {}
    clients = ClientSettings(
        sidecar_url=str(clients_raw.get("sidecar_url", DEFAULT_SIDECAR_URL)),
        remote_api_url=str(clients_raw.get("remote_api_url", "")),
        request_timeout_s=float(clients_raw.get("request_timeout_s", 30.0)),
    )

    paths_raw = raw.get("paths") or {}
    connections_file = paths_raw.get("connections_file")
    paths = PathsSettings(connections_file=str(connections_file) if connections_file else None)

    host = _env("SIDECAR_HOST")
    if host is not None:
        gateway.host = host
    port = _env("SIDECAR_PORT")
    if port is not None:
        gateway.port = int(port)
    sidecar_url = _env("SQLITE_SIDECAR_URL")
    if sidecar_url is not None:
        clients.sidecar_url = sidecar_url
    remote_api_url = _env("REMOTE_API_URL")
    if remote_api_url is not None:
        clients.remote_api_url = remote_api_url

    return Settings(gateway=gateway, clients=clients, paths=paths)
