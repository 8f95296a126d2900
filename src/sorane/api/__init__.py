"""
HTTP surface for the Sorane client.

Quick start::

    from sorane.api import create_app

    app = create_app()  # ready for uvicorn

Tags:
    sorane, api, FastAPI
"""

from sorane.api.app import create_app, create_router
from sorane.api.middleware import PageVisitMiddleware

__all__ = ["create_app", "create_router", "PageVisitMiddleware"]
