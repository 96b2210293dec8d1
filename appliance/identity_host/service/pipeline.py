"""
Environment-dependent request pipeline.

Development exposes a migrations endpoint for applying pending schema changes
by hand. Every other environment hides error details behind a generic handler
and forces Strict-Transport-Security on responses.

Invariants:
    - The environment is decided before this module runs and never re-read
    - Development never sends HSTS (local certificates come and go)
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..config import Environment
from ..store.datastore import DataStore
from ..store.migrator import SchemaMigrator

logger = logging.getLogger(__name__)

MIGRATIONS_ENDPOINT_PATH = "/ApplyDatabaseMigrations"
ERROR_PATH = "/Error"
HSTS_MAX_AGE_SECONDS = 30 * 24 * 3600
HSTS_HEADER_VALUE = f"max-age={HSTS_MAX_AGE_SECONDS}"


def configure_pipeline(
    app: FastAPI,
    environment: Environment,
    store: DataStore,
    migrator: SchemaMigrator,
) -> None:
    """Install the environment-specific parts of the pipeline."""
    if environment.is_development:
        use_migrations_endpoint(app, store, migrator)
    else:
        use_exception_handler(app, ERROR_PATH)
        use_hsts(app)
    logger.info(f"Request pipeline configured for {environment.value}")


def use_migrations_endpoint(app: FastAPI, store: DataStore, migrator: SchemaMigrator) -> None:
    """Expose POST /ApplyDatabaseMigrations."""

    @app.post(MIGRATIONS_ENDPOINT_PATH, include_in_schema=False)
    def apply_database_migrations() -> JSONResponse:
        result = migrator.migrate(store)
        body = {
            "success": result.success,
            "from_version": result.from_version,
            "to_version": result.to_version,
            "applied": result.applied,
            "error": result.error.message if result.error else None,
        }
        return JSONResponse(body, status_code=200 if result.success else 500)

    app.state.migrations_endpoint = MIGRATIONS_ENDPOINT_PATH


def use_exception_handler(app: FastAPI, error_path: str) -> None:
    """Replace unhandled errors with a generic error response."""

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        request_id = uuid.uuid4().hex
        logger.error(
            f"Unhandled error on {request.method} {request.url.path} (request {request_id}): {exc}",
            exc_info=exc,
        )
        response = JSONResponse(
            {
                "error": "An error occurred while processing your request.",
                "request_id": request_id,
                "error_page": error_path,
            },
            status_code=500,
        )
        # Served outside the http middleware stack, so HSTS is added here
        if getattr(request.app.state, "hsts_enabled", False):
            response.headers["Strict-Transport-Security"] = HSTS_HEADER_VALUE
        return response

    app.add_exception_handler(Exception, handle_unexpected)


def use_hsts(app: FastAPI) -> None:
    """Send Strict-Transport-Security on every response."""

    @app.middleware("http")
    async def hsts_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers["Strict-Transport-Security"] = HSTS_HEADER_VALUE
        return response

    app.state.hsts_enabled = True
