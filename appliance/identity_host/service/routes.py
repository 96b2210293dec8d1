"""
Application endpoints.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request

from .._version import __version__

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Application"])


@router.get("/")
async def home(request: Request) -> dict[str, Any]:
    return {"service": "identity-host", "version": __version__}


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness plus the outcome of the startup migration."""
    migration = getattr(request.app.state, "migration_result", None)
    return {
        "status": "degraded" if migration is not None and migration.degraded else "healthy",
        "service": "identity-host",
        "environment": request.app.state.environment.value,
        "schema_version": migration.to_version if migration is not None else None,
    }


@router.get("/Error")
async def error_page(request: Request) -> dict[str, Any]:
    return {
        "error": "An error occurred while processing your request.",
        "request_id": request.headers.get("X-Request-ID"),
    }
