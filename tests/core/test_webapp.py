"""Tests for the FastAPI gateway."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from sqlgate.core.config import GatewaySettings, Settings
from sqlgate.core.webapp import QUERY_ROUTE, create_app


@pytest.fixture()
def sample_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "sample.sqlite"
    connection = sqlite3.connect(db_path)
    connection.executescript(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT);
        INSERT INTO users (name) VALUES ('Ada'), ('Grace');
        """
    )
    connection.commit()
    connection.close()
    return db_path


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app(settings=Settings()))


def test_health_reports_listen_address(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["host"] == "127.0.0.1"
    assert payload["port"] == 19666
    assert payload["runtime"].startswith("python:apsw sqlite ")
    assert payload["now"].endswith("Z")


def test_health_uses_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIDECAR_HOST", "0.0.0.0")
    monkeypatch.setenv("SIDECAR_PORT", "20001")

    with TestClient(create_app()) as client:
        payload = client.get("/health").json()

    assert payload["host"] == "0.0.0.0"
    assert payload["port"] == 20001


def test_query_returns_rows_total_and_columns(client: TestClient, sample_db: Path) -> None:
    response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "SELECT id, name FROM users ORDER BY id"})

    assert response.status_code == 200
    assert response.json() == {
        "rows": [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}],
        "total": 2,
        "columns": [{"Field": "id", "Type": "INTEGER"}, {"Field": "name", "Type": "TEXT"}],
    }


def test_query_path_is_trimmed(client: TestClient, sample_db: Path) -> None:
    response = client.post(QUERY_ROUTE, json={"path": f"  {sample_db}  ", "sql": "SELECT count(*) AS n FROM users"})

    assert response.status_code == 200
    assert response.json()["rows"] == [{"n": 2}]


def test_write_script_returns_empty_result(client: TestClient, sample_db: Path) -> None:
    response = client.post(
        QUERY_ROUTE,
        json={"path": str(sample_db), "sql": "INSERT INTO users (name) VALUES ('Linus');"},
    )

    assert response.status_code == 200
    assert response.json() == {"rows": [], "total": 0, "columns": []}


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({"sql": "SELECT 1"}, "A valid SQLite file path is required"),
        ({"path": "   ", "sql": "SELECT 1"}, "A valid SQLite file path is required"),
        ({"path": 12, "sql": "SELECT 1"}, "A valid SQLite file path is required"),
        ({"path": "/tmp/x.sqlite"}, "A valid SQL script is required"),
        ({"path": "/tmp/x.sqlite", "sql": " \n "}, "A valid SQL script is required"),
        ([1, 2], "Request body must be a JSON object"),
    ],
)
def test_invalid_requests_are_rejected(client: TestClient, body: object, message: str) -> None:
    response = client.post(QUERY_ROUTE, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_malformed_json_is_rejected(client: TestClient) -> None:
    response = client.post(QUERY_ROUTE, content="{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Request body is not valid JSON"}


def test_empty_body_fails_validation(client: TestClient) -> None:
    response = client.post(QUERY_ROUTE, content="")

    assert response.status_code == 400
    assert response.json() == {"error": "A valid SQLite file path is required"}


def test_oversized_body_is_rejected(sample_db: Path) -> None:
    settings = Settings(gateway=GatewaySettings(max_request_body_bytes=64))
    client = TestClient(create_app(settings=settings))

    response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "SELECT 1; " * 20})

    assert response.status_code == 400
    assert response.json() == {"error": "Request body is too large"}


def test_missing_database_file_is_a_client_error(client: TestClient, tmp_path: Path) -> None:
    missing = tmp_path / "nope.sqlite"

    response = client.post(QUERY_ROUTE, json={"path": str(missing), "sql": "SELECT 1"})

    assert response.status_code == 400
    assert str(missing) in response.json()["error"]


def test_engine_errors_carry_sqlite_message(client: TestClient, sample_db: Path) -> None:
    response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "SELECT * FROM missing_table"})

    assert response.status_code == 400
    assert response.json() == {"error": "no such table: missing_table"}


def test_unexpected_failures_are_server_errors(
    monkeypatch: pytest.MonkeyPatch, client: TestClient, sample_db: Path
) -> None:
    def explode(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr("sqlgate.core.webapp.execute_script", explode)

    response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "SELECT 1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_blob_values_are_base64_encoded(client: TestClient, sample_db: Path) -> None:
    response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "SELECT x'0102' AS b"})

    assert response.status_code == 200
    assert response.json()["rows"] == [{"b": "AQI="}]


def test_unknown_routes_return_not_found(client: TestClient) -> None:
    assert client.get("/nowhere").json() == {"error": "Not Found"}
    assert client.get("/nowhere").status_code == 404
    wrong_method = client.get(QUERY_ROUTE)
    assert wrong_method.status_code == 404
    assert wrong_method.json() == {"error": "Not Found"}


def test_cors_preflight_is_allowed(client: TestClient) -> None:
    response = client.options(
        QUERY_ROUTE,
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize("path", ["/health", QUERY_ROUTE, "/anything/else"])
def test_plain_options_requests_get_no_content(client: TestClient, path: str) -> None:
    response = client.options(path)

    assert response.status_code == 204
    assert response.content == b""


def test_locked_database_is_reported_as_client_error(sample_db: Path) -> None:
    settings = Settings(gateway=GatewaySettings(busy_timeout_s=0.05))
    client = TestClient(create_app(settings=settings))
    blocker = sqlite3.connect(sample_db, isolation_level=None)
    blocker.execute("BEGIN EXCLUSIVE")
    try:
        response = client.post(QUERY_ROUTE, json={"path": str(sample_db), "sql": "DELETE FROM users"})
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    assert response.status_code == 400
    assert response.json() == {"error": "database is locked"}
