# src/sealpost/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    devices_router,
    keys_router,
    messages_router,
    presence_router,
    system_router,
)

__all__ = [
    "devices_router",
    "keys_router",
    "messages_router",
    "presence_router",
    "system_router",
]
