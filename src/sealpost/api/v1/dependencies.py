"""Shared API dependencies wiring sessions and services into endpoints."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from sealpost.db.session import get_db
from sealpost.services.device_registry import DeviceRegistry
from sealpost.services.envelopes import EnvelopeStore
from sealpost.services.key_bundles import KeyBundleStore
from sealpost.services.presence import PresenceHub

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_presence_hub(connection: HTTPConnection) -> PresenceHub:
    """Return the application's presence hub.

    The hub is created at startup and lives on ``app.state``; HTTP and
    WebSocket handlers share the same instance.
    """
    return connection.app.state.presence


PresenceDep = Annotated[PresenceHub, Depends(get_presence_hub)]


def get_device_registry(db: SessionDep) -> DeviceRegistry:
    """Return a device registry bound to the request session."""
    return DeviceRegistry(db)


DeviceRegistryDep = Annotated[DeviceRegistry, Depends(get_device_registry)]


def get_key_bundle_store(db: SessionDep, devices: DeviceRegistryDep) -> KeyBundleStore:
    """Return a key bundle store bound to the request session."""
    return KeyBundleStore(db, devices)


KeyBundleStoreDep = Annotated[KeyBundleStore, Depends(get_key_bundle_store)]


def get_envelope_store(
    db: SessionDep,
    devices: DeviceRegistryDep,
    presence: PresenceDep,
) -> EnvelopeStore:
    """Return an envelope store that notifies through the shared presence hub."""
    return EnvelopeStore(db, presence=presence, devices=devices)


EnvelopeStoreDep = Annotated[EnvelopeStore, Depends(get_envelope_store)]
