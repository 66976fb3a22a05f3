"""Coordinate normalization and level-of-detail estimation.

Query points arrive as arbitrary longitude/latitude pairs, for example from
a map that has been panned around the antimeridian several times or past a
pole. ``normalize_coordinates`` folds them back into the canonical ranges by
a round trip through a unit vector. ``estimate_zoom`` turns a query radius
into the coarse zoom tier used to pick which features are shown.

Example:
    >>> normalize_coordinates(370.0, 10.0)  # about (10.0, 10.0)
    >>> normalize_coordinates(0.0, 100.0)  # about (180.0, 80.0)
    >>> estimate_zoom(math.pi / 4)
    2
"""

from __future__ import annotations

import math

from geofeatures.core import errors

DEFAULT_RADIUS = math.pi / 2

# Length of a meridian quarter (pole to equator), in metres.
MERIDIAN_QUARTER_M = 10_000_000

# Simplification tolerance per radian of query radius.
TOLERANCE_FACTOR = 0.18


def normalize_coordinates(lng0: float, lat0: float) -> tuple[float, float]:
    """Fold an arbitrary longitude/latitude pair into canonical ranges.

    The pair is treated as spherical coordinates, converted to a unit
    vector and converted back:

        x = cos(phi) cos(lambda), y = cos(phi) sin(lambda), z = sin(phi)
        lat = asin(z), lng = atan2(y, x)

    Latitudes beyond a pole come out reflected with the longitude shifted by
    180 degrees, and longitudes wrap into their principal range.

    Args:
        lng0: Longitude in degrees, any real number.
        lat0: Latitude in degrees, any real number.

    Returns:
        ``(lng, lat)`` with ``lng`` in (-180, 180] and ``lat`` in [-90, 90].

    Raises:
        ValidationError: If either value is not a finite number.
    """
    if not (math.isfinite(lng0) and math.isfinite(lat0)):
        raise errors.ValidationError("Invalid coordinates")

    phi = math.radians(lat0)
    lam = math.radians(lng0)
    x = math.cos(phi) * math.cos(lam)
    y = math.cos(phi) * math.sin(lam)
    z = math.sin(phi)
    # Rounding can push z a hair past 1 near the poles.
    lat = math.degrees(math.asin(max(-1.0, min(1.0, z))))
    lng = math.degrees(math.atan2(y, x))
    # atan2(-0.0, x < 0) yields -180, which is outside (-180, 180].
    if lng <= -180.0:
        lng += 360.0
    return lng, lat


def estimate_zoom(radius: float) -> int:
    """Map a query radius in radians to a zoom tier, 1 being the coarsest."""
    return max(1, math.floor(-math.log2(radius / math.pi)))


def search_radius_m(radius: float) -> float:
    """Linear search distance for an angular radius on a 40,000 km sphere."""
    return (2 * MERIDIAN_QUARTER_M / math.pi) * radius


def simplify_tolerance(radius: float) -> float:
    return TOLERANCE_FACTOR * radius


def parse_coordinate(raw: str | float | None) -> float:
    """Parse a longitude or latitude query value.

    Raises:
        ValidationError: If the value is missing, not numeric or not finite.
    """
    if raw is None:
        raise errors.ValidationError("Invalid coordinates")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise errors.ValidationError("Invalid coordinates") from None
    if not math.isfinite(value):
        raise errors.ValidationError("Invalid coordinates")
    return value


def parse_radius(raw: str | float | None) -> float:
    """Parse the query radius, falling back to a quarter of the globe.

    Missing, non-numeric, non-finite and non-positive values all yield
    ``DEFAULT_RADIUS``; the radius is never an error.
    """
    if raw is None:
        return DEFAULT_RADIUS
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_RADIUS
    if not math.isfinite(value) or value <= 0:
        return DEFAULT_RADIUS
    return value
