"""Data models and feature store implementations.

Example:
    Use in a service or FastAPI dependency:
        >>> from geofeatures.db import database
        >>> store = database.get_feature_store(settings)
"""
