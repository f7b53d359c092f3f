"""FastAPI application factory for compgraph.

Usage::

    from compgraph.api.app import create_app

    app = create_app(
        service=service,
        authorizer=StaticPolicy(config.auth.denied_permissions),
        config=config,
    )

The factory is used by both the production bootstrap (``compgraph.app``) and
unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from compgraph.api.auth import Authorizer, PermissionDenied, StaticPolicy
from compgraph.api.routes import router
from compgraph.api.schemas import ErrorResponse
from compgraph.catalog import DEFAULT_ANNOTATION_PREFIX, RootLocator
from compgraph.models.errors import ResolverError

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"

_STATUS_BY_ERROR_CODE = {
    "NOT_FOUND": 404,
    "AMBIGUOUS": 409,
    "INVALID_REFERENCE": 400,
    "UPSTREAM_ERROR": 502,
    "RESOLUTION_TIMEOUT": 504,
}


def create_app(
    service: Any,
    authorizer: Authorizer | None = None,
    config: Any = None,
    catalog: Any = None,
) -> FastAPI:
    """Create and configure the compgraph FastAPI application.

    Args:
        service:    ResourceGraphService instance.
        authorizer: Permission gate; allows everything when omitted.
        config:     CompGraphConfig. Used for the annotation prefix.
        catalog:    Optional CatalogClient enabling ``/entities/{name}/graph``.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from compgraph import __version__

    prefix = DEFAULT_ANNOTATION_PREFIX
    if config is not None and hasattr(config, "catalog"):
        prefix = config.catalog.annotation_prefix or DEFAULT_ANNOTATION_PREFIX

    app = FastAPI(
        title="compgraph",
        summary="Composition graph resolver for Crossplane and KRO",
        version=__version__,
        description=(
            "Resolves the tree of Kubernetes objects behind a Crossplane claim, "
            "a Crossplane v2 composite or a KRO instance."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.service = service
    app.state.authorizer = authorizer or StaticPolicy()
    app.state.config = config
    app.state.catalog = catalog
    app.state.locator = RootLocator(prefix)

    app.include_router(router, prefix=_API_PREFIX)
    app.mount("/metrics", make_asgi_app())

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Map Pydantic validation errors to the error envelope."""
        errors = exc.errors()
        detail = ""
        if errors:
            locs = errors[0].get("loc", ())
            field = str(locs[-1]) if locs else ""
            detail = f"{field}: {errors[0].get('msg', '')}" if field else str(errors[0].get("msg", ""))
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=detail).model_dump(),
        )

    @app.exception_handler(PermissionDenied)
    async def permission_denied_handler(
        _request: Request,
        exc: PermissionDenied,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content=ErrorResponse(error="FORBIDDEN", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(ResolverError)
    async def resolver_exception_handler(
        request: Request,
        exc: ResolverError,
    ) -> JSONResponse:
        status_code = _STATUS_BY_ERROR_CODE.get(exc.error_code, 500)
        _log.info(
            "resolution_failed",
            path=str(request.url.path),
            error_code=exc.error_code,
            status_code=status_code,
            error=str(exc),
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=exc.error_code, detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
