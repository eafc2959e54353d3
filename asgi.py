"""
asgi.py -- ASGI entry point for AuthLab.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so deployment tooling has a stable import
path that does not depend on the api/ package layout.
"""

from api.main import app

__all__ = ["app"]
