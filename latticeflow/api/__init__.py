"""Health and metrics HTTP layer.

Exposes:
    create_app -- FastAPI application factory.
"""

from latticeflow.api.app import create_app

__all__ = ["create_app"]
