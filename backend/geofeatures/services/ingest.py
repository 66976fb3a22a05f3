"""Rule-driven ingestion of GeoJSON FeatureCollections.

An upload names a rule; the rule decides which ``geo_<featureclass>``
collection receives the features and how their properties are mapped.
Every feature is mapped before anything is written, so a single malformed
feature rejects the whole upload. The mapped documents are then upserted by
``_id``, which makes re-uploading the same collection idempotent.

Example:
    >>> from geofeatures.db.database import InMemoryFeatureStore
    >>> from geofeatures.services import ingest, rules
    >>> store = InMemoryFeatureStore()
    >>> rules.put_rule(store, "poi_import", "poi", {"_id": "code"})
    >>> result = ingest.ingest_feature_collection(
    ...     store,
    ...     "poi_import",
    ...     {"type": "FeatureCollection", "features": [...]},
    ... )
    >>> # IngestResult(collection='geo_poi', inserted=1, modified=0)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NamedTuple

from geofeatures.core import errors
from geofeatures.services import mapping as feature_mapping
from geofeatures.services import rules

if TYPE_CHECKING:
    from geofeatures.db import database

logger = logging.getLogger(__name__)


class IngestResult(NamedTuple):
    collection: str
    inserted: int
    modified: int


def ensure_spatial_index(
    store: database.FeatureStoreProtocol,
    collection: str,
) -> None:
    """Create a collection and its spatial index if they are missing."""
    store.ensure_collection(collection)
    logger.info("%s: spatial index ready.", collection)


def ensure_all_spatial_indexes(store: database.FeatureStoreProtocol) -> list[str]:
    """Verify the spatial index of every existing feature collection.

    Run once at startup, before requests are served.

    Returns:
        Names of the collections that were checked.
    """
    collections = store.list_collections()
    for collection in collections:
        ensure_spatial_index(store, collection)
    return collections


def ingest_feature_collection(
    store: database.FeatureStoreProtocol,
    rule_id: str,
    feature_collection: Any,
) -> IngestResult:
    """Map and upsert a FeatureCollection according to an upload rule.

    Args:
        store: Feature store to write into.
        rule_id: Identifier of the upload rule to apply.
        feature_collection: Decoded GeoJSON FeatureCollection.

    Returns:
        IngestResult with the target collection and the number of newly
        inserted and modified documents. Documents whose content did not
        change count as neither.

    Raises:
        ValidationError: If the body is not a FeatureCollection, a feature
            fails mapping, or there is nothing to write.
        NotFoundError: If the rule does not exist.
        StoreError: If the store fails; upserts are independent, so some
            documents may have been written.
    """
    if (
        not isinstance(feature_collection, dict)
        or feature_collection.get("type") != "FeatureCollection"
        or not isinstance(feature_collection.get("features"), list)
    ):
        raise errors.ValidationError(
            "Body must be a valid GeoJSON FeatureCollection"
        )

    rule = rules.get_rule(store, rule_id)
    collection = rule.collection_name
    ensure_spatial_index(store, collection)

    documents = [
        feature_mapping.map_feature(rule.mapping, feature)
        for feature in feature_collection["features"]
    ]
    if not documents:
        raise errors.ValidationError("No valid features to insert")

    result = store.bulk_upsert(collection, documents)
    logger.info(
        "%s: ingested %d features with rule %s (inserted=%d, modified=%d)",
        collection,
        len(documents),
        rule.id,
        result.inserted,
        result.modified,
    )
    return IngestResult(
        collection=collection,
        inserted=result.inserted,
        modified=result.modified,
    )
