"""GeoJSON FeatureCollection upload endpoint.

Only registered when editing credentials are configured. The body is mapped
with the named upload rule and upserted into the rule's feature class
collection.

Example:
    >>> response = client.post(
    ...     "/map/upload/poi_import",
    ...     json={"type": "FeatureCollection", "features": [...]},
    ...     auth=("editor", "secret"),
    ... )
    >>> # Returns: {"success": true, "collection": "geo_poi",
    >>> #           "inserted": 12, "modified": 0}
"""

from __future__ import annotations

from typing import Any, TypedDict

import fastapi

from geofeatures.api import auth, deps
from geofeatures.db import database
from geofeatures.services import ingest

router = fastapi.APIRouter(
    tags=["upload"],
    dependencies=[
        fastapi.Depends(auth.require_credentials),
        fastapi.Depends(deps.check_body_size),
    ],
)


class UploadResponse(TypedDict):
    success: bool
    collection: str
    inserted: int
    modified: int


@router.post("/upload/{rule_id}")
def upload_features(
    rule_id: str,
    body: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    store: database.FeatureStoreProtocol = fastapi.Depends(deps.get_store),  # noqa: B008
) -> UploadResponse:
    """Ingest a FeatureCollection using an upload rule.

    Args:
        rule_id: Identifier of the upload rule to apply.
        body: GeoJSON FeatureCollection.
        store: Feature store (injected via FastAPI Depends).

    Returns:
        Dictionary with ``success``, the target collection and the
        inserted/modified counts.

    Raises:
        ValidationError: If the body or any feature is malformed.
        NotFoundError: If the rule does not exist.
    """
    result = ingest.ingest_feature_collection(store, rule_id, body)
    return UploadResponse(
        success=True,
        collection=result.collection,
        inserted=result.inserted,
        modified=result.modified,
    )
