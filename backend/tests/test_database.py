"""Tests for the feature store implementations.

This module covers:
- InMemoryFeatureStore: rule upserts, collection bookkeeping, distance
  filtering.
- PostgresFeatureStore: row conversion helpers, the SQL composed for each
  collection, and the unordered bulk upsert, exercised against a fake
  psycopg2 connection.

All tests are self-contained and do not require a running database.
"""

from __future__ import annotations

from typing import Any

import psycopg2
import pytest
from psycopg2 import sql
from shapely import geometry as shapely_geometry

from geofeatures.core import config, errors
from geofeatures.db import database
from geofeatures.db import models as db_models


class FakeCursor:
    """Cursor answering upserts with scripted ``RETURNING`` rows."""

    def __init__(self, results: dict[str, Any]) -> None:
        self.results = results
        self.executed: list[tuple[Any, Any]] = []
        self._row: Any = None

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        self.executed.append((query, params))
        key = params["id"].adapted if isinstance(params, dict) and "id" in params else None
        outcome = self.results.get(key)
        if isinstance(outcome, Exception):
            raise outcome
        self._row = outcome

    def fetchone(self) -> Any:
        return self._row


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor
        self.autocommit = False
        self.closed = False
        self.commits = 0

    def cursor(self) -> FakeCursor:
        return self._cursor

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True


def _postgres_store() -> database.PostgresFeatureStore:
    """Build a store without touching a database."""
    store = database.PostgresFeatureStore.__new__(database.PostgresFeatureStore)
    store.settings = config.Settings()
    return store


def _feature(feature_id: Any) -> db_models.StoredFeature:
    return db_models.StoredFeature(
        id=feature_id,
        geometry={"type": "Point", "coordinates": [1.0, 2.0]},
        properties={"name": "x"},
    )


def test_in_memory_rule_roundtrip() -> None:
    store = database.InMemoryFeatureStore()
    rule = db_models.UploadRule(id="r", featureclass="poi", mapping={"_id": "code"})
    assert store.put_rule(rule) == db_models.WriteResult(1, 0)
    assert store.get_rule("r") == rule
    assert store.get_rule("other") is None


def test_in_memory_find_near_uses_nearest_part_of_geometry() -> None:
    store = database.InMemoryFeatureStore()
    store.ensure_collection("geo_roads")
    road = db_models.StoredFeature(
        id="road",
        geometry={"type": "LineString", "coordinates": [[-5, 1], [5, 1]]},
    )
    store.bulk_upsert("geo_roads", [road])

    # 1 degree of latitude is about 111 km on this sphere.
    assert store.find_near("geo_roads", 0.0, 0.0, 120_000, 1) == [road.geometry]
    assert store.find_near("geo_roads", 0.0, 0.0, 100_000, 1) == []


def test_feature_to_row() -> None:
    row = database.PostgresFeatureStore._feature_to_row(
        db_models.StoredFeature(
            id="A1",
            geometry={"type": "Point", "coordinates": [1.0, 2.0]},
            properties={"name": "Cafe", "zoom": 3},
        )
    )
    assert row["id"].adapted == "A1"
    assert row["doc"].adapted == {
        "_id": "A1",
        "name": "Cafe",
        "zoom": 3,
        "geometry": {"type": "Point", "coordinates": [1.0, 2.0]},
    }
    assert row["geometry"] == '{"type": "Point", "coordinates": [1.0, 2.0]}'
    assert row["zoom"] == 3.0


def test_feature_to_row_without_zoom() -> None:
    row = database.PostgresFeatureStore._feature_to_row(_feature("A1"))
    assert row["zoom"] is None


def test_rule_rows() -> None:
    rule = db_models.UploadRule(id="r", featureclass="poi", mapping={"_id": "code"})
    row = database.PostgresFeatureStore._rule_to_row(rule)
    assert row["id"] == "r"
    assert row["mapping"].adapted == {"_id": "code"}

    parsed = database.PostgresFeatureStore._rule_from_row(
        ("r", "poi", '{"_id": "code"}')
    )
    assert parsed == rule


def test_write_result_counts_returning_rows() -> None:
    result = database.PostgresFeatureStore._write_result(
        [(True,), (False,), (True,)]
    )
    assert result == db_models.WriteResult(inserted=2, modified=1)


def test_collection_sql_uses_identifiers() -> None:
    table = sql.Identifier("geo_poi")
    ddl = database.PostgresFeatureStore.collection_ddl("geo_poi")
    assert len(ddl) == 2
    assert all(table in statement.seq for statement in ddl)
    assert sql.Identifier("geo_poi_geometry_idx") in ddl[1].seq
    assert table in database.PostgresFeatureStore.upsert_sql("geo_poi").seq
    assert table in database.PostgresFeatureStore.near_sql("geo_poi").seq


def test_bulk_upsert_counts_inserted_modified_and_unchanged(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    cursor = FakeCursor({"new": (True,), "changed": (False,), "same": None})
    connection = FakeConnection(cursor)
    monkeypatch.setattr(psycopg2, "connect", lambda *a, **kw: connection)

    store = _postgres_store()
    result = store.bulk_upsert(
        "geo_poi", [_feature("new"), _feature("changed"), _feature("same")]
    )

    assert result == db_models.WriteResult(inserted=1, modified=1)
    assert connection.autocommit is True
    assert connection.closed is True
    assert len(cursor.executed) == 3


def test_bulk_upsert_is_unordered(monkeypatch: pytest.MonkeyPatch) -> None:
    cursor = FakeCursor(
        {"a": (True,), "bad": psycopg2.DataError("bad geometry"), "c": (True,)}
    )
    connection = FakeConnection(cursor)
    monkeypatch.setattr(psycopg2, "connect", lambda *a, **kw: connection)

    store = _postgres_store()
    with pytest.raises(errors.StoreError, match="1 of 3"):
        store.bulk_upsert("geo_poi", [_feature("a"), _feature("bad"), _feature("c")])

    # The failing document did not stop the one after it.
    assert [params["id"].adapted for _, params in cursor.executed] == ["a", "bad", "c"]
    assert connection.closed is True


def test_connection_failure_is_store_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args: Any, **kwargs: Any) -> None:
        raise psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(psycopg2, "connect", refuse)
    with pytest.raises(errors.StoreError):
        database.PostgresFeatureStore(config.Settings())


def test_get_feature_store_mocked(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test factory function returns PostgresFeatureStore."""

    class FakeStore(database.PostgresFeatureStore):
        def __init__(self, settings: config.Settings):
            self.settings = settings

    monkeypatch.setattr(database, "PostgresFeatureStore", FakeStore)
    store = database.get_feature_store(config.Settings())
    assert isinstance(store, FakeStore)


def test_distance_helper_is_zero_on_geometry() -> None:
    point = shapely_geometry.Point(12.0, 34.0)
    assert database._distance_m(point, 12.0, 34.0) == pytest.approx(0.0)
