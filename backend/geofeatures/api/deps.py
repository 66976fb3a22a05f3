"""Shared FastAPI dependencies."""

from __future__ import annotations

import fastapi

from geofeatures.core import context as app_context
from geofeatures.core import errors
from geofeatures.db import database


def get_context(request: fastapi.Request) -> app_context.AppContext:
    """Return the context installed on the application during startup."""
    return request.app.state.context  # type: ignore[no-any-return]


def get_store(
    ctx: app_context.AppContext = fastapi.Depends(get_context),  # noqa: B008
) -> database.FeatureStoreProtocol:
    """Resolve the feature store dependency.

    Args:
        ctx: Application context (injected via FastAPI Depends).

    Returns:
        FeatureStoreProtocol implementation
            (PostgresFeatureStore in production).
    """
    return ctx.store


def check_body_size(
    request: fastapi.Request,
    ctx: app_context.AppContext = fastapi.Depends(get_context),  # noqa: B008
) -> None:
    """Reject requests whose declared body exceeds the upload limit.

    Raises:
        PayloadTooLargeError: If ``Content-Length`` is above
            ``max_upload_size_bytes``.
    """
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > ctx.settings.max_upload_size_bytes:
        raise errors.PayloadTooLargeError("Upload too large")
