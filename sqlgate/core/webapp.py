"""FastAPI gateway exposing the SQLite execution engine over HTTP."""

from __future__ import annotations

import argparse
import base64
import json
import logging
from typing import Any

import apsw
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from sqlgate.core.config import Settings, load_settings
from sqlgate.core.engine import execute_script
from sqlgate.core.errors import InternalError, SqlGateError, ValidationError
from sqlgate.core.logging_utils import configure_logging, truncate_for_log, utc_now_iso


LOGGER = logging.getLogger(__name__)

QUERY_ROUTE = "/api/v1/sqlite/query"
RUNTIME = f"python:apsw sqlite {apsw.sqlite_lib_version()}"


class SqliteQueryRequest(BaseModel):
    path: str = Field(..., min_length=1)
    sql: str = Field(..., min_length=1)


class ColumnPayload(BaseModel):
    Field: str
    Type: str


class QueryResponse(BaseModel):
    rows: list[dict[str, Any]]
    total: int
    columns: list[ColumnPayload]


class HealthResponse(BaseModel):
    ok: bool
    host: str
    port: int
    runtime: str
    now: str


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _wire_value(value: Any) -> Any:
    # BLOB columns travel as base64 text.
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def _to_response(payload: dict[str, Any]) -> QueryResponse:
    rows = [{key: _wire_value(value) for key, value in row.items()} for row in payload["rows"]]
    return QueryResponse(rows=rows, total=payload["total"], columns=payload["columns"])


def _parse_body(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ValidationError("Request body is not valid JSON") from exc


def validate_query_payload(payload: Any) -> SqliteQueryRequest:
    """Check the ``{path, sql}`` shape before anything touches the filesystem."""

    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    path = payload.get("path")
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("A valid SQLite file path is required")

    sql = payload.get("sql")
    if not isinstance(sql, str) or not sql.strip():
        raise ValidationError("A valid SQL script is required")

    return SqliteQueryRequest(path=path.strip(), sql=sql)


async def _read_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise ValidationError("Request body is too large")

    received = bytearray()
    async for chunk in request.stream():
        received.extend(chunk)
        if len(received) > limit:
            raise ValidationError("Request body is too large")
    return bytes(received)


def create_app(config_path: str | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the gateway application.

    *settings* wins over *config_path*; with neither, defaults plus environment
    overrides are used.
    """

    settings = settings or load_settings(config_path)
    gateway = settings.gateway

    app = FastAPI(title="sqlgate", version="0.1.0")
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(SqlGateError)
    async def handle_gateway_error(request: Request, exc: SqlGateError) -> JSONResponse:
        if isinstance(exc, InternalError):
            return _error_response(500, exc.message)
        LOGGER.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        return _error_response(400, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown routes and unsupported methods on known routes look the same.
        if exc.status_code in (404, 405):
            return _error_response(404, "Not Found")
        return _error_response(exc.status_code, str(exc.detail))

    # Real CORS preflights are answered by the middleware; any other OPTIONS lands here.
    @app.options("/{rest_of_path:path}", include_in_schema=False)
    def answer_options(rest_of_path: str) -> Response:
        return Response(status_code=204)

    @app.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        return HealthResponse(
            ok=True,
            host=gateway.host,
            port=gateway.port,
            runtime=RUNTIME,
            now=utc_now_iso(),
        )

    @app.post(QUERY_ROUTE, response_model=QueryResponse)
    async def sqlite_query(request: Request) -> QueryResponse:
        body = await _read_body(request, gateway.max_request_body_bytes)
        payload = validate_query_payload(_parse_body(body))
        LOGGER.info(
            "Query requested path=%s sql=%s",
            payload.path,
            truncate_for_log(payload.sql),
        )

        try:
            result = await run_in_threadpool(
                execute_script,
                payload.path,
                payload.sql,
                timeout_s=gateway.query_timeout_s,
                busy_timeout_s=gateway.busy_timeout_s,
            )
        except SqlGateError:
            raise
        except Exception as exc:
            LOGGER.exception("Unexpected failure executing query on %s", payload.path)
            raise InternalError("Internal server error") from exc

        LOGGER.debug("Query on %s returned %s row(s)", payload.path, result.total)
        return _to_response(result.to_payload())

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Launch the local SQLite gateway")
    parser.add_argument("--config", default=None, help="Path to an optional YAML configuration file")
    parser.add_argument("--host", default=None, help="Interface to bind (overrides SIDECAR_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (overrides SIDECAR_PORT)")
    parser.add_argument("--debug", action="store_true", help="Log every executed statement")
    args = parser.parse_args()

    configure_logging(debug=args.debug)
    settings = load_settings(args.config)
    if args.host:
        settings.gateway.host = args.host
    if args.port:
        settings.gateway.port = args.port
    app = create_app(settings=settings)

    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise SystemExit("uvicorn must be installed to run the gateway") from exc

    LOGGER.info("Starting uvicorn on %s:%s", settings.gateway.host, settings.gateway.port)
    uvicorn.run(app, host=settings.gateway.host, port=settings.gateway.port)


if __name__ == "__main__":
    main()
