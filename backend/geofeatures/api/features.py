"""Proximity feature query endpoint.

Always registered; no credentials required.

Example:
    Features of class ``poi`` around Zagreb, roughly 640 km wide:
        >>> response = client.get(
        ...     "/map/features/poi",
        ...     params={"lng": 15.97, "lat": 45.81, "radius": 0.1},
        ... )
        >>> # Returns: {"type": "FeatureCollection", "features": [...]}
"""

from __future__ import annotations

from typing import Any

import fastapi

from geofeatures.api import deps
from geofeatures.db import database
from geofeatures.services import proximity

router = fastapi.APIRouter(tags=["features"])


@router.get("/features/{featureclass}")
def get_features(
    featureclass: str,
    lng: str | None = None,
    lat: str | None = None,
    radius: str | None = None,
    store: database.FeatureStoreProtocol = fastapi.Depends(deps.get_store),  # noqa: B008
) -> dict[str, Any]:
    """Return simplified features of a class near a point.

    Query values are taken as raw strings so that malformed coordinates
    produce a 400 with the service's error body, and a malformed radius
    silently falls back to the default.

    Args:
        featureclass: Feature class to search.
        lng: Longitude in degrees (any range, normalized).
        lat: Latitude in degrees (any range, normalized).
        radius: Search radius in radians; defaults to pi / 2.
        store: Feature store (injected via FastAPI Depends).

    Returns:
        GeoJSON FeatureCollection, nearest first.
    """
    return proximity.query_features(store, featureclass, lng, lat, radius)
