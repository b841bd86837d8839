# src/sealpost/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .devices import router as devices_router
from .keys import router as keys_router
from .messages import router as messages_router
from .presence import router as presence_router
from .system import router as system_router

__all__ = [
    "devices_router",
    "keys_router",
    "messages_router",
    "presence_router",
    "system_router",
]
