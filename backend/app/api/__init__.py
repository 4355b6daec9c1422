"""API endpoints."""

from app.api.errors import register_exception_handlers
from app.api.routes import router
from app.api.websocket import manager, websocket_endpoint, ConnectionManager

__all__ = [
    "router",
    "register_exception_handlers",
    "manager",
    "websocket_endpoint",
    "ConnectionManager",
]
