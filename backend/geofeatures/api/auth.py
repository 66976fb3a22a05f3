"""Basic credential check for the editing endpoints.

The check is only wired in when both ``APP_LOGIN`` and ``APP_PASSWORD`` are
configured; ``geofeatures.main.create_app`` decides that once at startup. A
missing or malformed ``Authorization`` header yields 401, a wrong username
or password yields 403.
"""

from __future__ import annotations

import base64
import binascii
import secrets

import fastapi

from geofeatures.api import deps
from geofeatures.core import context as app_context
from geofeatures.core import errors


def decode_basic_credentials(authorization: str | None) -> tuple[bytes, bytes]:
    """Extract ``(user, password)`` from a Basic ``Authorization`` header.

    The password is everything after the first colon, so it may itself
    contain colons.

    Raises:
        UnauthorizedError: If the header is absent or not valid Basic auth.
    """
    if not authorization or not authorization.startswith("Basic "):
        raise errors.UnauthorizedError("Unauthorized")

    token = authorization[len("Basic "):].strip()
    try:
        decoded = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError):
        raise errors.UnauthorizedError("Unauthorized") from None

    user, separator, password = decoded.partition(b":")
    if not separator:
        raise errors.UnauthorizedError("Unauthorized")
    return user, password


def require_credentials(
    request: fastapi.Request,
    ctx: app_context.AppContext = fastapi.Depends(deps.get_context),  # noqa: B008
) -> None:
    """FastAPI dependency guarding the editing endpoints.

    Raises:
        UnauthorizedError: If no usable credentials were sent.
        ForbiddenError: If the username or password does not match.
    """
    user, password = decode_basic_credentials(request.headers.get("authorization"))
    expected_user = (ctx.settings.app_login or "").encode("utf-8")
    expected_password = (ctx.settings.app_password or "").encode("utf-8")

    user_ok = secrets.compare_digest(user, expected_user)
    password_ok = secrets.compare_digest(password, expected_password)
    if not (user_ok and password_ok):
        raise errors.ForbiddenError("Forbidden")
