"""
asgi.py -- Application assembly for Gatekeeper.

Run with:  uvicorn asgi:app --reload

The only module a process manager needs to know about. api/main.py owns the
app; anything deployment-specific (extra routers, mounts) is attached here
rather than in api/.
"""

from api.main import app

__all__ = ["app"]
