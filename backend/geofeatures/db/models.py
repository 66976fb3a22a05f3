"""Data models for upload rules and stored features.

This module defines the core data structures shared by the services and the
feature stores. An UploadRule describes how the properties of incoming
GeoJSON features become the attributes of a stored document, and which
feature class collection the documents land in. A StoredFeature is one such
document, keyed by the ``_id`` value the rule extracted.

Example:
    Creating a rule and the document it would produce:
        >>> from geofeatures.db.models import StoredFeature, UploadRule
        >>> rule = UploadRule(
        ...     id="poi_import",
        ...     featureclass="poi",
        ...     mapping={"_id": "code", "name": "label"},
        ... )
        >>> doc = StoredFeature(
        ...     id="A1",
        ...     geometry={"type": "Point", "coordinates": [15.97, 45.81]},
        ...     properties={"name": "Cafe"},
        ... )
        >>> rule.collection_name
        'geo_poi'
"""

from __future__ import annotations

import dataclasses
from typing import Any, NamedTuple

COLLECTION_PREFIX = "geo_"
RULE_COLLECTION = "geo_upload_rule"

FeatureId = str | int | float
Geometry = dict[str, Any]


def collection_name(featureclass: str) -> str:
    """Return the collection a feature class is stored in."""
    return f"{COLLECTION_PREFIX}{featureclass}"


@dataclasses.dataclass(frozen=True)
class UploadRule:
    """Mapping from incoming feature properties to stored attributes.

    Attributes:
        id: Caller-supplied rule identifier.
        featureclass: Alphanumeric token naming the target collection.
        mapping: Ordered target field -> source property pairs. Always
            contains the reserved ``_id`` target.
    """

    id: str
    featureclass: str
    mapping: dict[str, str]

    @property
    def collection_name(self) -> str:
        return collection_name(self.featureclass)


@dataclasses.dataclass
class StoredFeature:
    """One geographic entity as persisted in a feature class collection.

    Attributes:
        id: Stable external key taken from the rule's ``_id`` mapping.
        geometry: GeoJSON geometry object.
        properties: Mapped attributes, excluding ``_id`` and ``geometry``.
    """

    id: FeatureId
    geometry: Geometry
    properties: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def zoom(self) -> float | None:
        """Minimum zoom tier at which the feature appears, None if always."""
        value = self.properties.get("zoom")
        return None if value is None else float(value)

    def to_document(self) -> dict[str, Any]:
        """Return the full document with ``_id`` and ``geometry`` inlined."""
        return {"_id": self.id, **self.properties, "geometry": self.geometry}


class WriteResult(NamedTuple):
    inserted: int
    modified: int
