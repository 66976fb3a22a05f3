"""GeoJSON feature service: rule-driven ingestion and proximity queries.

This package stores GeoJSON features in PostGIS, one collection per feature
class, and serves them back around a point with level-of-detail
simplification.

- Upload rules map arbitrary feature properties onto stored attributes
- Uploads are idempotent upserts keyed by a stable external ``_id``
- Query points are normalized onto the sphere, and the query radius picks
  both a zoom tier and a simplification tolerance
- Editing endpoints exist only when credentials are configured

See the module docstrings of ``geofeatures.services`` for the algorithms.
"""
