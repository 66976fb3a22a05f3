"""Proximity queries with level-of-detail simplification.

A query is a point and an angular radius in radians, where ``pi / 2`` covers
a quarter of the globe. The radius drives three things at once: the search
distance, the zoom tier that filters which features are eligible, and the
tolerance used to simplify the returned geometries. Wide queries therefore
return fewer, coarser shapes.

Example:
    >>> from geofeatures.services import proximity
    >>> query = proximity.build_query("15.97", "45.81", "0.1")
    >>> query.zoom, round(query.tolerance, 6)
    (4, 0.018)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NamedTuple

from shapely import errors as shapely_errors
from shapely import geometry as shapely_geometry

from geofeatures.db import models as db_models
from geofeatures.services import geo, rules

if TYPE_CHECKING:
    from geofeatures.db import database

logger = logging.getLogger(__name__)


class ProximityQuery(NamedTuple):
    lng0: float
    lat0: float
    radius: float
    lng: float
    lat: float
    zoom: int
    tolerance: float
    radius_m: float


def build_query(
    lng_raw: str | float | None,
    lat_raw: str | float | None,
    radius_raw: str | float | None = None,
) -> ProximityQuery:
    """Parse raw query values and derive everything the search needs.

    Raises:
        ValidationError: If longitude or latitude is not a finite number.
    """
    lng0 = geo.parse_coordinate(lng_raw)
    lat0 = geo.parse_coordinate(lat_raw)
    radius = geo.parse_radius(radius_raw)
    lng, lat = geo.normalize_coordinates(lng0, lat0)
    return ProximityQuery(
        lng0=lng0,
        lat0=lat0,
        radius=radius,
        lng=lng,
        lat=lat,
        zoom=geo.estimate_zoom(radius),
        tolerance=geo.simplify_tolerance(radius),
        radius_m=geo.search_radius_m(radius),
    )


def simplify_geometry(
    geometry: db_models.Geometry,
    tolerance: float,
) -> db_models.Geometry | None:
    """Douglas-Peucker simplification of a GeoJSON geometry.

    Returns:
        The simplified geometry, or None when nothing usable is left.
    """
    try:
        shape = shapely_geometry.shape(geometry)
    except (
        shapely_errors.GeometryTypeError,
        ValueError,
        TypeError,
        KeyError,
        IndexError,
    ):
        logger.warning("Skipping malformed geometry of type %r", geometry.get("type"))
        return None

    simplified = shape.simplify(tolerance, preserve_topology=False)
    if simplified.is_empty:
        return None
    return shapely_geometry.mapping(simplified)


def query_features(
    store: database.FeatureStoreProtocol,
    featureclass: str,
    lng_raw: str | float | None,
    lat_raw: str | float | None,
    radius_raw: str | float | None = None,
) -> dict[str, Any]:
    """Return the simplified features of a class around a point.

    Args:
        store: Feature store to query.
        featureclass: Feature class whose collection is searched.
        lng_raw: Longitude in degrees, any range.
        lat_raw: Latitude in degrees, any range.
        radius_raw: Radius in radians; defaults to ``pi / 2``.

    Returns:
        A GeoJSON FeatureCollection, nearest features first. Features carry
        only ``type`` and ``geometry``.

    Raises:
        ValidationError: If the coordinates or the feature class are invalid.
    """
    query = build_query(lng_raw, lat_raw, radius_raw)
    collection = db_models.collection_name(rules.validate_featureclass(featureclass))

    # TODO: clip to the circle of the query radius once geometries crossing
    # the viewport edge can be intersected without breaking rings.
    geometries = store.find_near(
        collection,
        query.lng,
        query.lat,
        query.radius_m,
        query.zoom,
    )

    features = []
    for geometry in geometries:
        simplified = simplify_geometry(geometry, query.tolerance)
        if simplified is not None:
            features.append({"type": "Feature", "geometry": simplified})

    return {"type": "FeatureCollection", "features": features}
