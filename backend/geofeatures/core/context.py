"""Application context shared by every request.

The context is built once during application startup, after the feature
store has connected and every spatial index has been verified. Routes
receive it through dependency injection; holding an ``AppContext`` means the
store is ready.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from geofeatures.core import config
    from geofeatures.db import database


@dataclasses.dataclass(frozen=True)
class AppContext:
    """Settings and the ready feature store.

    Attributes:
        settings: Application settings the app was created with.
        store: Connected feature store with verified spatial indexes.
    """

    settings: config.Settings
    store: database.FeatureStoreProtocol
