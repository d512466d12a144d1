"""FastAPI application exposing the asset lifecycle admin API.

Quick start (run the server)::

    uvicorn validation_assets.app:app --reload

Core endpoints (all under ``/v1/admin`` except ``/health``):

    GET  /health                                Asset root + catalog health
    GET  /v1/admin/packages                     Package catalog and state
    POST /v1/admin/packages/{id}/sync           Download into staging, return preview
    POST /v1/admin/packages/sync                Stage every package
    POST /v1/admin/packages/{id}/approve        Commit pending package + reload
    POST /v1/admin/packages/{id}/reject         Discard pending package
    GET  /v1/admin/pending                      All pending previews
    GET  /v1/admin/pending/{id}                 One pending preview
    GET  /v1/admin/pending/{id}/diff/{path}     Unified diff live vs staged
    GET  /v1/admin/versions?package=efatura     History, newest first
    GET  /v1/admin/versions/{vid}/diff          Stored diff summary
    GET  /v1/admin/versions/{vid}/diff/{path}   Unified diff before vs after
    GET|PUT|DELETE /v1/admin/profiles/{name}    Profile administration
    GET|PUT /v1/admin/schematron-rules          Global custom Schematron rules
    POST /v1/admin/assets/reload                Coordinated reload

Example: stage and review the UBL-TR Schematron package::

    curl -X POST http://localhost:8000/v1/admin/packages/efatura/sync | jq .files_summary
    curl http://localhost:8000/v1/admin/pending/efatura/diff/UBL-TR_Main_Schematron.xml

Example: approve it and inspect the reload outcome::

    curl -X POST http://localhost:8000/v1/admin/packages/efatura/approve | jq .reload

Error handling:
    * Domain errors are mapped to JSON payloads ``{"error", "detail"}``:
      unknown ids 404, no pending staging 409, profile configuration or
      inheritance cycle 422, fetch/snapshot/config-write failure 502.
    * 404 and 500 are wrapped with JSON payloads for consistent client UX.

Security / production considerations (not implemented here):
    * Authentication / authorization of admin routes
    * Rate limiting of sync endpoints
"""

from __future__ import annotations

import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .errors import (
    AssetError,
    AssetIOError,
    InvalidStateError,
    NotFoundError,
    ProfileConfigError,
)
from .routes import create_admin_router, get_asset_services
from .services import AssetServices

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Validation Assets API",
    version=__version__,
    description="Staging, versioning and hot reload of e-invoicing XSD/Schematron rule sets, plus validation profile administration",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(create_admin_router(), prefix="/v1/admin", tags=["Admin"])


@app.middleware("http")
async def add_timing_headers(request: Request, call_next):
    """Attach response time and API version headers."""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Response-Time"] = f"{time.time() - start_time:.3f}s"
    response.headers["X-API-Version"] = __version__
    return response


@app.get("/health")
def health(services: AssetServices = Depends(get_asset_services)) -> JSONResponse:
    """Health check endpoint; 503 when the asset root is unavailable."""
    payload = services.health()
    status_code = 200 if payload["status"] == "UP" else 503
    return JSONResponse(status_code=status_code, content=payload)


ERROR_STATUS = (
    (NotFoundError, 404, "Not Found"),
    (InvalidStateError, 409, "Invalid State"),
    (ProfileConfigError, 422, "Profile Configuration Error"),
    (AssetIOError, 502, "Asset IO Failure"),
)


@app.exception_handler(AssetError)
async def asset_error_handler(request: Request, exc: AssetError):
    """Map domain errors to status codes with the offending identifier."""
    for error_type, status_code, title in ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code, title = 500, "Internal Server Error"
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": title,
            "detail": str(exc),
            "identifier": exc.identifier,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Custom 404 handler with more helpful error messages."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": (
                str(exc.detail)
                if hasattr(exc, "detail")
                else "The requested resource was not found"
            ),
            "path": str(request.url.path),
        },
    )


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Custom 500 handler for internal errors."""
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred processing your request",
        },
    )
