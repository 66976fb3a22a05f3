"""Upload rule validation and persistence.

A rule names the feature class its documents are stored under and maps
target fields to source property names. Rules are validated completely
before anything is written, and storing a rule under an existing id
replaces it.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from geofeatures.core import errors
from geofeatures.db import models as db_models

if TYPE_CHECKING:
    from geofeatures.db import database

logger = logging.getLogger(__name__)

FEATURECLASS_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
ID_FIELD = "_id"

# geo_upload_rule is the rule collection itself.
RESERVED_FEATURECLASSES = frozenset({"upload_rule"})


def validate_featureclass(featureclass: Any) -> str:
    """Check that a feature class is a usable collection token.

    Args:
        featureclass: Candidate feature class name.

    Returns:
        The validated feature class.

    Raises:
        ValidationError: If it is missing, not alphanumeric/underscore only,
            or reserved.
    """
    if not featureclass:
        raise errors.ValidationError("featureclass is required")
    if not isinstance(featureclass, str) or not FEATURECLASS_PATTERN.match(
        featureclass
    ):
        raise errors.ValidationError("featureclass must be alphanumerical")
    if featureclass in RESERVED_FEATURECLASSES:
        raise errors.ValidationError(f"featureclass '{featureclass}' is reserved")
    return featureclass


def validate_mapping(mapping: Any) -> dict[str, str]:
    """Check a target field -> source property mapping.

    Raises:
        ValidationError: If the mapping is not an object, lacks ``_id`` or
            names a source property that is not a string.
    """
    if not mapping or not isinstance(mapping, dict):
        raise errors.ValidationError("mapping must be an object")
    if ID_FIELD not in mapping:
        raise errors.ValidationError("mapping must contain _id")
    for target, source in mapping.items():
        if not isinstance(source, str):
            raise errors.ValidationError(
                f"mapping source for '{target}' must be a property name"
            )
    return dict(mapping)


def put_rule(
    store: database.FeatureStoreProtocol,
    rule_id: str,
    featureclass: Any,
    mapping: Any,
) -> db_models.WriteResult:
    """Validate and upsert an upload rule.

    Args:
        store: Feature store holding the rule collection.
        rule_id: Caller-supplied rule identifier.
        featureclass: Target feature class token.
        mapping: Target field -> source property pairs.

    Returns:
        WriteResult with ``inserted``/``modified`` each 0 or 1.

    Raises:
        ValidationError: If the feature class or mapping is malformed; in
            that case nothing is written.
    """
    rule = db_models.UploadRule(
        id=rule_id,
        featureclass=validate_featureclass(featureclass),
        mapping=validate_mapping(mapping),
    )
    result = store.put_rule(rule)
    logger.info(
        "Rule %s -> %s stored (inserted=%d, modified=%d)",
        rule.id,
        rule.collection_name,
        result.inserted,
        result.modified,
    )
    return result


def get_rule(
    store: database.FeatureStoreProtocol,
    rule_id: str,
) -> db_models.UploadRule:
    """Look up an upload rule.

    Raises:
        NotFoundError: If no rule has this id.
    """
    rule = store.get_rule(rule_id)
    if rule is None:
        raise errors.NotFoundError(f"Upload rule '{rule_id}' not found")
    return rule
