"""System status endpoints for the Sealpost API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from sealpost.core.settings import settings

from ..dependencies import PresenceDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status")
async def get_status(request: Request, presence: PresenceDep) -> dict[str, Any]:
    """Return a sanitized snapshot of runtime state.

    Excludes secrets and connection strings.

    Returns:
        Dictionary containing app metadata, live connection count, limits and
        retention sweep progress
    """
    sweeper = getattr(request.app.state, "retention_sweeper", None)
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "presence": {
            "connections": presence.connection_count(),
            "keepalive_seconds": settings.presence_keepalive_seconds,
        },
        "limits": {
            "max_one_time_pre_keys": settings.max_one_time_pre_keys,
            "inbox_max_limit": settings.inbox_max_limit,
            "ack_max_ids": settings.ack_max_ids,
        },
        "retention": {
            "max_age_seconds": settings.retention_seconds,
            "sweeper_running": bool(sweeper and sweeper.running),
            "sweeps": sweeper.state.sweeps if sweeper else 0,
            "deleted": sweeper.state.deleted if sweeper else 0,
        },
    }
