"""Tests for rule-driven FeatureCollection ingestion.

This test module verifies:
    - FeatureCollection shape checks and unknown rules,
    - That the target collection and its spatial index exist before writes,
    - That one bad feature aborts the whole batch with nothing written,
    - Idempotent re-ingestion keyed by ``_id``,
    - Startup index verification across existing collections.

The in-memory store stands in for PostGIS; it refuses writes into a
collection whose index was never ensured.
"""

from __future__ import annotations

from typing import Any

import pytest

from geofeatures.core import errors
from geofeatures.db import database
from geofeatures.services import ingest, rules


def _point_feature(code: Any, label: str, lng: float, lat: float) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {"code": code, "label": label},
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
    }


def _collection(*features: dict[str, Any]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": list(features)}


def _store_with_rule() -> database.InMemoryFeatureStore:
    store = database.InMemoryFeatureStore()
    rules.put_rule(store, "poi_import", "poi", {"_id": "code", "name": "label"})
    return store


def test_ingest_stores_mapped_document() -> None:
    store = _store_with_rule()
    result = ingest.ingest_feature_collection(
        store,
        "poi_import",
        _collection(_point_feature("A1", "Cafe", 15.97, 45.81)),
    )

    assert result == ingest.IngestResult("geo_poi", inserted=1, modified=0)
    (doc,) = store.documents("geo_poi")
    assert doc.to_document() == {
        "_id": "A1",
        "name": "Cafe",
        "geometry": {"type": "Point", "coordinates": [15.97, 45.81]},
    }
    assert "geo_poi" in store.indexed


def test_ingest_twice_is_idempotent() -> None:
    store = _store_with_rule()
    body = _collection(
        _point_feature("A1", "Cafe", 15.97, 45.81),
        _point_feature("A2", "Bar", 16.0, 45.8),
    )

    first = ingest.ingest_feature_collection(store, "poi_import", body)
    second = ingest.ingest_feature_collection(store, "poi_import", body)

    assert (first.inserted, first.modified) == (2, 0)
    assert (second.inserted, second.modified) == (0, 0)
    assert len(store.documents("geo_poi")) == 2


def test_ingest_changed_content_reports_modified() -> None:
    store = _store_with_rule()
    ingest.ingest_feature_collection(
        store, "poi_import", _collection(_point_feature("A1", "Cafe", 0, 0))
    )
    result = ingest.ingest_feature_collection(
        store, "poi_import", _collection(_point_feature("A1", "Bistro", 0, 0))
    )

    assert (result.inserted, result.modified) == (0, 1)
    (doc,) = store.documents("geo_poi")
    assert doc.properties == {"name": "Bistro"}


def test_ingest_distinguishes_numeric_and_string_ids() -> None:
    store = _store_with_rule()
    result = ingest.ingest_feature_collection(
        store,
        "poi_import",
        _collection(_point_feature(5, "five", 0, 0), _point_feature("5", "str", 0, 0)),
    )
    assert result.inserted == 2


def test_ingest_bad_feature_aborts_whole_batch() -> None:
    store = _store_with_rule()
    ingest.ingest_feature_collection(
        store, "poi_import", _collection(_point_feature("A0", "Old", 0, 0))
    )

    body = _collection(
        _point_feature("A1", "Cafe", 0, 0),
        _point_feature("", "No id", 0, 0),
    )
    with pytest.raises(errors.ValidationError, match="missing _id"):
        ingest.ingest_feature_collection(store, "poi_import", body)

    assert [doc.id for doc in store.documents("geo_poi")] == ["A0"]


def test_ingest_non_feature_item_aborts_batch() -> None:
    store = _store_with_rule()
    body = _collection(
        _point_feature("A1", "Cafe", 0, 0),
        {"type": "Point", "coordinates": [0, 0]},
    )
    with pytest.raises(errors.ValidationError, match="GeoJSON Features"):
        ingest.ingest_feature_collection(store, "poi_import", body)
    assert store.documents("geo_poi") == []


@pytest.mark.parametrize(
    "body",
    [
        {"type": "Feature", "features": []},
        {"type": "FeatureCollection"},
        {"type": "FeatureCollection", "features": {"a": 1}},
        [],
        None,
    ],
)
def test_ingest_rejects_non_collections(body: Any) -> None:
    store = _store_with_rule()
    with pytest.raises(errors.ValidationError, match="FeatureCollection"):
        ingest.ingest_feature_collection(store, "poi_import", body)


def test_ingest_empty_collection_rejected() -> None:
    store = _store_with_rule()
    with pytest.raises(errors.ValidationError, match="No valid features"):
        ingest.ingest_feature_collection(store, "poi_import", _collection())


def test_ingest_unknown_rule() -> None:
    store = database.InMemoryFeatureStore()
    with pytest.raises(errors.NotFoundError):
        ingest.ingest_feature_collection(
            store, "nope", _collection(_point_feature("A1", "Cafe", 0, 0))
        )
    assert store.list_collections() == []


def test_in_memory_store_refuses_unindexed_writes() -> None:
    store = database.InMemoryFeatureStore()
    with pytest.raises(errors.StoreError):
        store.bulk_upsert("geo_poi", [])


def test_ensure_all_spatial_indexes() -> None:
    store = database.InMemoryFeatureStore()
    store.ensure_collection("geo_poi")
    store.ensure_collection("geo_roads")
    store.indexed.clear()

    checked = ingest.ensure_all_spatial_indexes(store)

    assert checked == ["geo_poi", "geo_roads"]
    assert store.indexed == {"geo_poi", "geo_roads"}


def test_ingest_malformed_geometry_aborts_batch() -> None:
    store = _store_with_rule()
    body = _collection(
        _point_feature("A1", "Cafe", 0, 0),
        {
            "type": "Feature",
            "properties": {"code": "A2", "label": "Bar"},
            "geometry": {"type": "Point"},
        },
    )
    with pytest.raises(errors.ValidationError, match="geometry"):
        ingest.ingest_feature_collection(store, "poi_import", body)
    assert store.documents("geo_poi") == []
