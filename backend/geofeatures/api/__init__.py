"""API router subpackage.

Submodules:
    - features: Proximity query endpoint, always registered.
    - rules: Upload rule definition, registered with credentials only.
    - upload: FeatureCollection upload, registered with credentials only.
    - auth, deps: Shared dependencies (credential check, store, body size).
"""
