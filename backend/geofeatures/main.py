"""FastAPI application entrypoint and configuration.

This module provides the application factory. It sets up CORS middleware,
the domain error handlers, the feature routers and a health check endpoint.
The feature store is connected and every spatial index verified in the
application lifespan, before the first request is accepted; if that fails
the server does not start.

The editing routers (rule definition and upload) are registered only when
both editing credentials are configured. Without them the service is
read-only.

Example:
    The application can be run with uvicorn:
        $ uvicorn geofeatures.main:app

    Or through the package entrypoint, which honours ``APP_PORT``:
        $ python -m geofeatures
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import fastapi
from fastapi import exceptions as fastapi_exceptions
from fastapi import responses
from fastapi.middleware import cors

from geofeatures.api import features, rules, upload
from geofeatures.core import config, errors
from geofeatures.core import context as app_context
from geofeatures.db import database
from geofeatures.services import ingest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Install a stream handler on the root logger."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _make_lifespan(
    settings: config.Settings,
    store: database.FeatureStoreProtocol | None,
) -> Callable[[fastapi.FastAPI], contextlib.AbstractAsyncContextManager[None]]:
    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
        ready_store = (
            store if store is not None else database.get_feature_store(settings)
        )
        collections = ingest.ensure_all_spatial_indexes(ready_store)
        app.state.context = app_context.AppContext(
            settings=settings,
            store=ready_store,
        )
        logger.info(
            "GeoJSON API ready on port %d (%d collections, editing %s)",
            settings.app_port,
            len(collections),
            "enabled" if settings.credentials_configured else "disabled",
        )
        yield

    return lifespan


async def _domain_error_handler(
    request: fastapi.Request,
    exc: errors.GeoFeaturesError,
) -> responses.JSONResponse:
    if isinstance(exc, errors.StoreError):
        logger.error(
            "Store failure on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
    else:
        logger.info(
            "%s %s rejected (%d): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return responses.JSONResponse(
        status_code=exc.status_code,
        content=exc.to_error_dict(),
    )


async def _request_validation_handler(
    request: fastapi.Request,
    exc: fastapi_exceptions.RequestValidationError,
) -> responses.JSONResponse:
    details = exc.errors()
    message = str(details[0].get("msg")) if details else "Invalid request"
    return responses.JSONResponse(
        status_code=400,
        content={"error": f"Invalid request: {message}"},
    )


async def _unhandled_error_handler(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return responses.JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error"},
    )


def create_app(
    settings: config.Settings | None = None,
    store: database.FeatureStoreProtocol | None = None,
) -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to ``config.get_settings()``.
        store: Ready feature store; when omitted a PostgresFeatureStore is
            connected during startup.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        Serve an in-memory store with editing enabled:
            >>> from geofeatures.db.database import InMemoryFeatureStore
            >>> app = create_app(
            ...     config.Settings(app_login="editor", app_password="secret"),
            ...     InMemoryFeatureStore(),
            ... )
    """
    settings = settings or config.get_settings()
    prefix = settings.api_prefix.rstrip("/")
    app = fastapi.FastAPI(
        title="Map Features API",
        version="0.1.0",
        docs_url=f"{prefix}/swagger",
        openapi_url=f"{prefix}/openapi.json",
        redoc_url=None,
        lifespan=_make_lifespan(settings, store),
    )

    app.include_router(features.router, prefix=prefix)
    if settings.credentials_configured:
        app.include_router(rules.router, prefix=prefix)
        app.include_router(upload.router, prefix=prefix)

    app.add_exception_handler(
        errors.GeoFeaturesError,
        _domain_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        fastapi_exceptions.RequestValidationError,
        _request_validation_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
