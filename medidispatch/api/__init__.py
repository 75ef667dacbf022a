"""
API package for MediDispatch backend.
"""

from .main import app, create_app
from .websocket import manager, router as ws_router

__all__ = ["app", "create_app", "manager", "ws_router"]
