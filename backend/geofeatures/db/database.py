"""Feature stores: upload rules and feature class collections.

The services only talk to a ``FeatureStoreProtocol``. Production uses the
PostGIS-backed ``PostgresFeatureStore``, where every collection is a table
with a GIST index on a ``geography`` column. ``InMemoryFeatureStore`` keeps
the same semantics in plain dictionaries for tests and local development.
"""

from __future__ import annotations

import contextlib
import json
import logging
import math
from typing import TYPE_CHECKING, Any, Protocol

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import psycopg2.extras
from psycopg2 import sql
from shapely import geometry as shapely_geometry
from shapely import ops as shapely_ops

from geofeatures.core import errors
from geofeatures.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from geofeatures.core import config

logger = logging.getLogger(__name__)

# Sphere whose meridian quarter is exactly 10,000 km.
EARTH_RADIUS_M = 20_000_000 / math.pi


class FeatureStoreProtocol(Protocol):
    """Protocol interface for rule and feature persistence.

    Implementations must upsert features keyed by ``_id`` and answer
    within-distance queries ordered nearest first.
    """

    def put_rule(self, rule: db_models.UploadRule) -> db_models.WriteResult: ...

    def get_rule(self, rule_id: str) -> db_models.UploadRule | None: ...

    def list_collections(self) -> list[str]: ...

    def ensure_collection(self, name: str) -> None: ...

    def bulk_upsert(
        self,
        name: str,
        features: Sequence[db_models.StoredFeature],
    ) -> db_models.WriteResult: ...

    def find_near(
        self,
        name: str,
        lng: float,
        lat: float,
        radius_m: float,
        zoom: int,
    ) -> list[db_models.Geometry]: ...


def _feature_key(feature_id: db_models.FeatureId) -> str:
    """Key that keeps ``5`` and ``"5"`` apart, as a JSONB key does."""
    return json.dumps(feature_id)


def _distance_m(geom: shapely_geometry.base.BaseGeometry, lng: float, lat: float) -> float:
    """Great-circle distance from a point to the nearest part of ``geom``."""
    origin = shapely_geometry.Point(lng, lat)
    nearest, _ = shapely_ops.nearest_points(geom, origin)
    phi1, phi2 = math.radians(lat), math.radians(nearest.y)
    dphi = phi2 - phi1
    dlambda = math.radians(nearest.x - lng)
    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


class InMemoryFeatureStore(FeatureStoreProtocol):
    """Simple in-memory store for tests and local development.

    Collections are dictionaries keyed by the JSON encoding of ``_id``.
    Data is lost when the process exits. Writing to a collection whose
    index was never ensured fails, mirroring the production precondition.
    """

    def __init__(self) -> None:
        self._rules: dict[str, db_models.UploadRule] = {}
        self._collections: dict[str, dict[str, db_models.StoredFeature]] = {}
        self.indexed: set[str] = set()

    def put_rule(self, rule: db_models.UploadRule) -> db_models.WriteResult:
        existing = self._rules.get(rule.id)
        self._rules[rule.id] = rule
        if existing is None:
            return db_models.WriteResult(inserted=1, modified=0)
        return db_models.WriteResult(inserted=0, modified=int(existing != rule))

    def get_rule(self, rule_id: str) -> db_models.UploadRule | None:
        return self._rules.get(rule_id)

    def list_collections(self) -> list[str]:
        return sorted(self._collections)

    def ensure_collection(self, name: str) -> None:
        self._collections.setdefault(name, {})
        self.indexed.add(name)

    def documents(self, name: str) -> list[db_models.StoredFeature]:
        """Return every stored feature of a collection, in insertion order."""
        return list(self._collections.get(name, {}).values())

    def bulk_upsert(
        self,
        name: str,
        features: Sequence[db_models.StoredFeature],
    ) -> db_models.WriteResult:
        if name not in self.indexed:
            raise errors.StoreError(f"{name}: spatial index missing")

        collection = self._collections[name]
        inserted = modified = 0
        for feature in features:
            key = _feature_key(feature.id)
            existing = collection.get(key)
            if existing is None:
                inserted += 1
            elif existing.to_document() != feature.to_document():
                modified += 1
            collection[key] = feature

        return db_models.WriteResult(inserted=inserted, modified=modified)

    def find_near(
        self,
        name: str,
        lng: float,
        lat: float,
        radius_m: float,
        zoom: int,
    ) -> list[db_models.Geometry]:
        hits: list[tuple[float, db_models.Geometry]] = []
        for feature in self._collections.get(name, {}).values():
            if feature.zoom is not None and feature.zoom > zoom:
                continue
            distance = _distance_m(
                shapely_geometry.shape(feature.geometry), lng, lat
            )
            if distance <= radius_m:
                hits.append((distance, feature.geometry))

        hits.sort(key=lambda hit: hit[0])
        return [geometry for _, geometry in hits]


class PostgresFeatureStore(FeatureStoreProtocol):
    """PostgreSQL/PostGIS-backed store.

    Upload rules live in the ``geo_upload_rule`` table. Every feature class
    gets its own ``geo_<featureclass>`` table holding the JSON document, a
    ``geography`` column with a GIST index and the optional ``zoom`` tier.
    The PostGIS extension and the rules table are created on
    initialization, so a constructed store is a reachable store.
    """

    CREATE_RULES_SQL = """
    CREATE TABLE IF NOT EXISTS geo_upload_rule (
      _id TEXT PRIMARY KEY,
      featureclass TEXT NOT NULL,
      mapping JSONB NOT NULL
    );
    """

    UPSERT_RULE_SQL = """
    INSERT INTO geo_upload_rule AS r (_id, featureclass, mapping)
    VALUES (%(id)s, %(featureclass)s, %(mapping)s)
    ON CONFLICT (_id) DO UPDATE SET
        featureclass = EXCLUDED.featureclass,
        mapping = EXCLUDED.mapping
    WHERE r.featureclass IS DISTINCT FROM EXCLUDED.featureclass
        OR r.mapping IS DISTINCT FROM EXCLUDED.mapping
    RETURNING (xmax = 0) AS inserted;
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the store and verify the database is reachable.

        Args:
            settings: Application settings containing the connection URL.

        Raises:
            StoreError: If the database cannot be reached or initialized.
        """
        self.settings = settings
        self._ensure_schema()

    @contextlib.contextmanager
    def _connection(
        self,
        autocommit: bool = False,
    ) -> Iterator[psycopg2.extensions.connection]:
        """Open a connection that is always closed afterwards.

        Any ``psycopg2.Error`` escaping the block is re-raised as StoreError.
        """
        try:
            conn = psycopg2.connect(
                self.settings.database_url,
                connect_timeout=self.settings.connect_timeout,
            )
        except psycopg2.Error as exc:
            raise errors.StoreError(str(exc)) from exc

        try:
            conn.autocommit = autocommit
            yield conn
        except psycopg2.Error as exc:
            raise errors.StoreError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("CREATE EXTENSION IF NOT EXISTS postgis;")
            cur.execute(self.CREATE_RULES_SQL)
            conn.commit()

    def put_rule(self, rule: db_models.UploadRule) -> db_models.WriteResult:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.UPSERT_RULE_SQL, self._rule_to_row(rule))
            row = cur.fetchone()
            conn.commit()
        return self._write_result([row] if row is not None else [])

    def get_rule(self, rule_id: str) -> db_models.UploadRule | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT _id, featureclass, mapping FROM geo_upload_rule"
                " WHERE _id = %s",
                (rule_id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return self._rule_from_row(row)

    def list_collections(self) -> list[str]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT table_name FROM information_schema.tables
                WHERE table_schema = current_schema()
                  AND table_name LIKE %s
                  AND table_name <> %s
                ORDER BY table_name;
                """,
                (r"geo\_%", db_models.RULE_COLLECTION),
            )
            return [str(row[0]) for row in cur.fetchall()]

    def ensure_collection(self, name: str) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            # Serializes concurrent creators of the same collection.
            cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (name,))
            for statement in self.collection_ddl(name):
                cur.execute(statement)
            conn.commit()

    def bulk_upsert(
        self,
        name: str,
        features: Sequence[db_models.StoredFeature],
    ) -> db_models.WriteResult:
        """Upsert every feature independently of the others.

        Each statement commits on its own, so one failing document neither
        rolls back nor blocks the rest. Failures are reported together once
        every operation has been attempted.

        Raises:
            StoreError: If at least one upsert failed.
        """
        statement = self.upsert_sql(name)
        rows: list[tuple[Any, ...]] = []
        failed = 0
        with self._connection(autocommit=True) as conn, conn.cursor() as cur:
            for feature in features:
                try:
                    cur.execute(statement, self._feature_to_row(feature))
                except psycopg2.Error:
                    logger.exception("%s: upsert of %r failed", name, feature.id)
                    failed += 1
                    continue
                row = cur.fetchone()
                if row is not None:
                    rows.append(row)

        if failed:
            raise errors.StoreError(
                f"{failed} of {len(features)} upserts into {name} failed"
            )

        return self._write_result(rows)

    def find_near(
        self,
        name: str,
        lng: float,
        lat: float,
        radius_m: float,
        zoom: int,
    ) -> list[db_models.Geometry]:
        params = {"lng": lng, "lat": lat, "radius": radius_m, "zoom": zoom}
        with self._connection() as conn, conn.cursor() as cur:
            try:
                cur.execute(self.near_sql(name), params)
            except psycopg2.errors.UndefinedTable:
                return []
            return [json.loads(row[0]) for row in cur.fetchall()]

    @staticmethod
    def collection_ddl(name: str) -> list[sql.Composed]:
        """Statements creating a feature collection and its spatial index.

        Args:
            name: Collection (table) name, e.g. ``geo_poi``.

        Returns:
            Idempotent ``CREATE ... IF NOT EXISTS`` statements.
        """
        table = sql.Identifier(name)
        return [
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {table} (
                  _id JSONB PRIMARY KEY,
                  doc JSONB NOT NULL,
                  geometry GEOGRAPHY NOT NULL,
                  zoom DOUBLE PRECISION
                );
                """
            ).format(table=table),
            sql.SQL(
                "CREATE INDEX IF NOT EXISTS {index} ON {table}"
                " USING GIST (geometry);"
            ).format(index=sql.Identifier(f"{name}_geometry_idx"), table=table),
        ]

    @staticmethod
    def upsert_sql(name: str) -> sql.Composed:
        """Replace-or-insert keyed by ``_id``.

        Unchanged documents are left untouched and return no row, so they
        count as neither inserted nor modified.
        """
        return sql.SQL(
            """
            INSERT INTO {table} AS t (_id, doc, geometry, zoom)
            VALUES (
                %(id)s,
                %(doc)s,
                ST_SetSRID(ST_GeomFromGeoJSON(%(geometry)s), 4326)::geography,
                %(zoom)s
            )
            ON CONFLICT (_id) DO UPDATE SET
                doc = EXCLUDED.doc,
                geometry = EXCLUDED.geometry,
                zoom = EXCLUDED.zoom
            WHERE t.doc IS DISTINCT FROM EXCLUDED.doc
            RETURNING (xmax = 0) AS inserted;
            """
        ).format(table=sql.Identifier(name))

    @staticmethod
    def near_sql(name: str) -> sql.Composed:
        """Geometries within a distance of a point, nearest first."""
        return sql.SQL(
            """
            SELECT ST_AsGeoJSON(geometry)
            FROM {table}
            WHERE ST_DWithin(
                    geometry,
                    ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography,
                    %(radius)s
                )
              AND (zoom IS NULL OR zoom <= %(zoom)s)
            ORDER BY geometry <->
                ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography;
            """
        ).format(table=sql.Identifier(name))

    @staticmethod
    def _rule_to_row(rule: db_models.UploadRule) -> dict[str, object]:
        return {
            "id": rule.id,
            "featureclass": rule.featureclass,
            "mapping": psycopg2.extras.Json(rule.mapping),
        }

    @staticmethod
    def _rule_from_row(row: tuple[Any, ...]) -> db_models.UploadRule:
        rule_id, featureclass, mapping = row
        if isinstance(mapping, str):
            mapping = json.loads(mapping)
        return db_models.UploadRule(
            id=str(rule_id),
            featureclass=str(featureclass),
            mapping=dict(mapping),
        )

    @staticmethod
    def _feature_to_row(feature: db_models.StoredFeature) -> dict[str, object]:
        return {
            "id": psycopg2.extras.Json(feature.id),
            "doc": psycopg2.extras.Json(feature.to_document()),
            "geometry": json.dumps(feature.geometry),
            "zoom": feature.zoom,
        }

    @staticmethod
    def _write_result(rows: Sequence[tuple[Any, ...]]) -> db_models.WriteResult:
        """Count ``RETURNING (xmax = 0)`` rows into inserted and modified."""
        inserted = sum(1 for row in rows if row[0])
        return db_models.WriteResult(
            inserted=inserted,
            modified=len(rows) - inserted,
        )


def get_feature_store(settings: config.Settings) -> FeatureStoreProtocol:
    """Factory function to create the production feature store.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresFeatureStore instance for production use.
    """
    return PostgresFeatureStore(settings)
