"""Device identity registration and lookup."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from sealpost.core.errors import NotFoundError, ValidationError
from sealpost.core.settings import settings
from sealpost.db.session import storage_errors
from sealpost.db.time import utcnow
from sealpost.db.upsert import upsert
from sealpost.models import Device, KeyBundle
from sealpost.models.device import new_device_id

logger = logging.getLogger(__name__)

__all__ = ["DeviceListing", "DeviceRegistry", "validate_public_key"]


@dataclass(frozen=True)
class DeviceListing:
    """A device belonging to a user, with a flag for a published key bundle."""

    device: Device
    has_key_bundle: bool


def validate_public_key(value: bytes, field: str = "public key") -> bytes:
    """Check that a key blob is within the accepted size range.

    Raises:
        ValidationError: If the blob is empty, too short or too long
    """
    if not isinstance(value, bytes | bytearray):
        raise ValidationError(f"{field} must be bytes")
    size = len(value)
    if size < settings.public_key_min_bytes or size > settings.public_key_max_bytes:
        raise ValidationError(
            f"{field} must be between {settings.public_key_min_bytes} and "
            f"{settings.public_key_max_bytes} bytes (got {size})"
        )
    return bytes(value)


def _validate_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise ValidationError("user id must be a non-empty string")
    if len(user_id) > settings.user_id_max_length:
        raise ValidationError(f"user id must be at most {settings.user_id_max_length} characters")
    return user_id


class DeviceRegistry:
    """Owns :class:`Device` rows; every other component reads devices through here."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def register(self, user_id: str, public_key: bytes) -> Device:
        """Register a device, or refresh ``last_seen_at`` if the pair already exists.

        The ``(user_id, public_key)`` unique constraint arbitrates concurrent
        first registrations, so the same pair always maps to one device id.
        Values are compared exactly as given.
        """
        user_id = _validate_user_id(user_id)
        public_key = validate_public_key(public_key)

        now = utcnow()
        with storage_errors(self.db, "device registration"):
            upsert(
                self.db,
                Device,
                values={
                    "id": new_device_id(),
                    "user_id": user_id,
                    "public_key": public_key,
                    "created_at": now,
                    "last_seen_at": now,
                },
                conflict_columns=("user_id", "public_key"),
                update_values={"last_seen_at": now},
            )
            self.db.commit()
            device = self.db.scalars(
                select(Device)
                .where(Device.user_id == user_id, Device.public_key == public_key)
                .execution_options(populate_existing=True)
            ).one()

        logger.info("Device registered: device_id=%s user_id=%s", device.id, user_id)
        return device

    def get_by_id(self, device_id: str) -> Device:
        """Return the device with ``device_id``.

        Raises:
            NotFoundError: If no such device exists
        """
        with storage_errors(self.db, "device lookup"):
            device = self.db.get(Device, device_id)
        if device is None:
            raise NotFoundError("Device not found")
        return device

    def get_many(self, device_ids: Iterable[str]) -> dict[str, Device]:
        """Return the existing devices among ``device_ids`` keyed by id."""
        wanted = set(device_ids)
        if not wanted:
            return {}
        with storage_errors(self.db, "device lookup"):
            devices = self.db.scalars(select(Device).where(Device.id.in_(wanted))).all()
        return {device.id: device for device in devices}

    def list_by_user(self, user_id: str) -> Sequence[DeviceListing]:
        """Return a user's devices, oldest registration first."""
        user_id = _validate_user_id(user_id)
        has_bundle = exists().where(KeyBundle.device_id == Device.id).label("has_key_bundle")
        stmt = (
            select(Device, has_bundle)
            .where(Device.user_id == user_id)
            .order_by(Device.created_at.asc(), Device.id.asc())
        )
        with storage_errors(self.db, "device listing"):
            rows = self.db.execute(stmt).all()
        return [DeviceListing(device=device, has_key_bundle=bool(flag)) for device, flag in rows]
