"""Domain exception taxonomy mapped onto HTTP status codes.

Every error raised by the services derives from ``GeoFeaturesError`` and
carries the status code the HTTP layer answers with. The exception handlers
registered in ``geofeatures.main`` turn them into ``{"error": message}``
response bodies.

Taxonomy
--------
- ``ValidationError``      malformed input, 400.
- ``NotFoundError``        unknown upload rule, 404.
- ``UnauthorizedError``    missing or malformed credentials, 401.
- ``ForbiddenError``       credentials that do not match, 403.
- ``PayloadTooLargeError`` request body above the configured limit, 413.
- ``StoreError``           any failure of the underlying database, 500.
"""

from __future__ import annotations


class GeoFeaturesError(Exception):
    """Base exception for all service-domain errors.

    Attributes:
        message: Human-readable error description, returned to clients.
        status_code: HTTP status the error maps to.
    """

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message)

    def to_error_dict(self) -> dict[str, str]:
        """Return the response body for this error."""
        return {"error": self.message or "Internal Server Error"}


class ValidationError(GeoFeaturesError):
    status_code = 400


class NotFoundError(GeoFeaturesError):
    status_code = 404


class AuthError(GeoFeaturesError):
    """Credential check failure; see the two concrete subclasses."""

    status_code = 401


class UnauthorizedError(AuthError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class PayloadTooLargeError(GeoFeaturesError):
    status_code = 413


class StoreError(GeoFeaturesError):
    """Failure reported by the database.

    The original driver message is kept on the exception for logging but
    never sent to clients.
    """

    status_code = 500

    def to_error_dict(self) -> dict[str, str]:
        return {"error": "Internal Server Error"}
