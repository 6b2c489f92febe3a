"""
asgi.py -- Application assembly for CipherWire.

Run with:  uvicorn asgi:app --reload

api/main.py owns the FastAPI instance; services embedding CipherWire mount
their own routers on it here, keeping api/ free of service-specific routes.
"""

from api.main import app

__all__ = ["app"]
