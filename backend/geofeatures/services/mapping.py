"""Turn one GeoJSON Feature into a stored document using a rule mapping."""

from __future__ import annotations

import numbers
from typing import Any

from shapely import errors as shapely_errors
from shapely import geometry as shapely_geometry

from geofeatures.core import errors
from geofeatures.db import models as db_models
from geofeatures.services import rules

_ABSENT = object()


def _validate_geometry(geometry: Any) -> None:
    if not isinstance(geometry, dict) or "type" not in geometry:
        raise errors.ValidationError("Feature geometry must be a GeoJSON object")
    try:
        shape = shapely_geometry.shape(geometry)
    except (
        shapely_errors.GeometryTypeError,
        ValueError,
        TypeError,
        KeyError,
        IndexError,
    ):
        raise errors.ValidationError(
            "Feature geometry must be a GeoJSON object"
        ) from None
    if shape.is_empty:
        raise errors.ValidationError("Feature geometry must not be empty")


def _validate_zoom(value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise errors.ValidationError("Feature zoom must be a number")


def map_feature(
    mapping: dict[str, str],
    feature: Any,
) -> db_models.StoredFeature:
    """Build the stored document for a single feature.

    Each ``target -> source`` pair copies ``feature["properties"][source]``
    to ``target``. Properties that are present but null are kept as null,
    absent ones produce no attribute. The ``_id`` target is mandatory and
    must resolve to a truthy value. The feature geometry is copied last and
    always wins over a mapped ``geometry`` field.

    Args:
        mapping: Target field -> source property pairs of an upload rule.
        feature: A decoded GeoJSON Feature.

    Returns:
        StoredFeature keyed by the mapped ``_id``.

    Raises:
        ValidationError: If the item is not a Feature, the ``_id`` value is
            missing or empty, the geometry is missing or not a valid GeoJSON
            geometry, or a mapped ``zoom`` is not a number.
    """
    if not isinstance(feature, dict) or feature.get("type") != "Feature":
        raise errors.ValidationError("All items must be GeoJSON Features")

    properties = feature.get("properties") or {}
    if not isinstance(properties, dict):
        raise errors.ValidationError("Feature properties must be an object")

    feature_id: Any = None
    attributes: dict[str, Any] = {}
    for target, source in mapping.items():
        value = properties.get(source, _ABSENT)
        if target == rules.ID_FIELD:
            if value is _ABSENT or not value:
                raise errors.ValidationError(
                    "Feature missing _id value from mapping"
                )
            feature_id = value
        elif value is not _ABSENT:
            attributes[target] = value

    geometry = feature.get("geometry")
    _validate_geometry(geometry)
    attributes.pop("geometry", None)
    _validate_zoom(attributes.get("zoom"))

    if isinstance(feature_id, bool) or not isinstance(feature_id, (str, int, float)):
        raise errors.ValidationError("Feature _id must be a string or a number")

    return db_models.StoredFeature(
        id=feature_id,
        geometry=geometry,
        properties=attributes,
    )
