"""Live presence table used to push "new message" hints to connected devices.

The table is a best-effort cache of which devices are reachable right now.
Delivery never depends on it: envelopes stay in the durable store until the
recipient pulls and acknowledges them.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from threading import Lock
from typing import Any, Protocol

logger = logging.getLogger(__name__)

__all__ = ["PresenceChannel", "PresenceHub", "timestamp_ms"]


def timestamp_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class PresenceChannel(Protocol):
    """Transport-side handle for one live connection."""

    @property
    def writable(self) -> bool:
        """Return True while frames can still be queued for the far end."""

    def offer(self, frame: Mapping[str, Any]) -> bool:
        """Queue ``frame`` without blocking; return False if it was not accepted."""

    def close(self) -> None:
        """Stop accepting frames and release the transport writer."""


class PresenceHub:
    """Maps each device id to its single live channel.

    One instance is created per application and shared by the connection
    handlers and the envelope send path. All table access goes through
    ``_lock``, so connect, disconnect and push never see a half-updated entry.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._channels: dict[str, PresenceChannel] = {}

    def on_connect(self, device_id: str, channel: PresenceChannel) -> PresenceChannel | None:
        """Make ``channel`` the live channel for ``device_id`` and greet it.

        Any previously registered channel is displaced (last connect wins) and
        returned to the caller.
        """
        with self._lock:
            previous = self._channels.get(device_id)
            self._channels[device_id] = channel

        if previous is not None and previous is not channel:
            logger.info("Presence channel replaced: device_id=%s", device_id)
        else:
            logger.info("Presence channel connected: device_id=%s", device_id)

        channel.offer({"type": "connected", "deviceId": device_id, "timestamp": timestamp_ms()})
        return previous

    def on_disconnect(self, device_id: str, channel: PresenceChannel) -> bool:
        """Remove ``device_id``'s entry if it still points at ``channel``.

        A late disconnect from a stale channel leaves a newer registration in
        place. Returns True if an entry was removed.
        """
        with self._lock:
            if self._channels.get(device_id) is not channel:
                removed = False
            else:
                del self._channels[device_id]
                removed = True

        if removed:
            logger.info("Presence channel disconnected: device_id=%s", device_id)
        else:
            logger.debug("Ignoring disconnect of stale channel: device_id=%s", device_id)
        return removed

    def push(self, device_id: str, payload: Mapping[str, Any]) -> bool:
        """Offer ``payload`` to the device's live channel.

        Returns False, without raising, when the device has no entry or its
        channel is not writable. Never waits for the far end.
        """
        with self._lock:
            channel = self._channels.get(device_id)
        if channel is None or not channel.writable:
            return False
        return channel.offer(payload)

    def is_online(self, device_id: str) -> bool:
        """Return True if ``device_id`` has a writable live channel."""
        with self._lock:
            channel = self._channels.get(device_id)
        return channel is not None and channel.writable

    def connection_count(self) -> int:
        """Return the number of devices with a registered channel."""
        with self._lock:
            return len(self._channels)

    def handle_frame(self, device_id: str, raw: str) -> dict[str, Any] | None:
        """Interpret an inbound application frame and return the reply, if any.

        Only the ``ping`` heartbeat is answered. The heartbeat is observational;
        nothing about delivery depends on it.
        """
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Invalid presence frame from device_id=%s", device_id)
            return None
        if not isinstance(data, dict):
            logger.warning("Invalid presence frame from device_id=%s", device_id)
            return None

        frame_type = data.get("type")
        logger.debug("Presence frame received: device_id=%s type=%s", device_id, frame_type)
        if frame_type == "ping":
            return {"type": "pong", "timestamp": timestamp_ms()}
        return None

    def close_all(self) -> None:
        """Drop every entry and close the channels; used at shutdown."""
        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.close()
        if channels:
            logger.info("Closed %d presence channels", len(channels))
