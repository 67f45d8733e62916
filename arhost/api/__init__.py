"""
Client-facing surface: schemas, MessagePack codec and the FastAPI app.
"""

from __future__ import annotations

from .server import ClientSession, SessionManager, create_app

__all__ = ["ClientSession", "SessionManager", "create_app"]
