"""
SYSTEM VERSION: single authoritative version marker for the autonomy engine.

- reported by /health and the FastAPI app metadata
- any change to the persisted layout REQUIRES a MINOR bump and a migration
"""

SYSTEM_NAME = "Twin Autonomy Engine"

# Semantic Versioning (MAJOR.MINOR.PATCH)
VERSION = "1.0.0"

# Release channel indicates operational stability,
# not feature completeness
RELEASE_CHANNEL = "stable"
