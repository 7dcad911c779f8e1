"""
asgi.py -- Application assembly for Gatekeeper.

The single import target for ASGI servers. api/main.py builds the app; this
module only re-exports it so deployment config never points inside a package.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
