"""Upload rule definition endpoint.

Only registered when editing credentials are configured.

Example:
    Define how ``poi`` features are mapped:
        >>> response = client.post(
        ...     "/map/rule/poi_import",
        ...     json={
        ...         "featureclass": "poi",
        ...         "mapping": {"_id": "code", "name": "label"},
        ...     },
        ...     auth=("editor", "secret"),
        ... )
        >>> # Returns: {"success": true, "inserted": 1, "modified": 0}
"""

from __future__ import annotations

from typing import Any, TypedDict

import fastapi

from geofeatures.api import auth, deps
from geofeatures.db import database
from geofeatures.services import rules

router = fastapi.APIRouter(
    tags=["rules"],
    dependencies=[fastapi.Depends(auth.require_credentials)],
)


class RuleResponse(TypedDict):
    success: bool
    inserted: int
    modified: int


@router.post("/rule/{rule_id}")
def put_rule(
    rule_id: str,
    body: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    store: database.FeatureStoreProtocol = fastapi.Depends(deps.get_store),  # noqa: B008
) -> RuleResponse:
    """Create or fully replace an upload rule.

    Args:
        rule_id: Identifier the rule is stored under.
        body: JSON object with ``featureclass`` and ``mapping``.
        store: Feature store (injected via FastAPI Depends).

    Returns:
        Dictionary with ``success`` and the inserted/modified counts.

    Raises:
        ValidationError: If the feature class or the mapping is malformed.
    """
    result = rules.put_rule(
        store,
        rule_id,
        body.get("featureclass"),
        body.get("mapping"),
    )
    return RuleResponse(
        success=True,
        inserted=result.inserted,
        modified=result.modified,
    )
