"""Key bundle publication and one-time pre-key distribution."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from sealpost.core.errors import ConflictError, NotFoundError, ValidationError
from sealpost.core.settings import settings
from sealpost.db.session import storage_errors
from sealpost.db.time import utcnow
from sealpost.db.upsert import upsert
from sealpost.models import KeyBundle, OneTimePreKey
from sealpost.services.device_registry import DeviceRegistry, validate_public_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyBundleHandle:
    """What a publisher gets back: never the pre-key pool itself."""

    bundle_id: str
    device_id: str
    updated_at: datetime


@dataclass(frozen=True)
class FetchedKeyBundle:
    """Material a peer needs to start a session with one device."""

    device_id: str
    user_id: str
    device_public_key: bytes
    identity_key: bytes
    signed_pre_key: bytes
    signature: bytes
    one_time_pre_key: bytes | None


@dataclass(frozen=True)
class KeyBundleSummary:
    """Bundle listing entry; carries no one-time pre-key."""

    device_id: str
    device_public_key: bytes
    identity_key: bytes
    signed_pre_key: bytes
    signature: bytes


def _validate_signature(signature: bytes) -> bytes:
    if not isinstance(signature, bytes | bytearray):
        raise ValidationError("signature must be bytes")
    size = len(signature)
    if size < settings.signature_min_bytes or size > settings.signature_max_bytes:
        raise ValidationError(
            f"signature must be between {settings.signature_min_bytes} and "
            f"{settings.signature_max_bytes} bytes (got {size})"
        )
    return bytes(signature)


class KeyBundleStore:
    """Owns :class:`KeyBundle` and :class:`OneTimePreKey` rows."""

    def __init__(self, db: Session, devices: DeviceRegistry | None = None) -> None:
        self.db = db
        self.devices = devices or DeviceRegistry(db)

    def publish(
        self,
        device_id: str,
        identity_key: bytes,
        signed_pre_key: bytes,
        signature: bytes,
        one_time_pre_keys: Sequence[bytes] = (),
    ) -> KeyBundleHandle:
        """Publish, or fully replace, the key bundle for ``device_id``.

        Identity key, signed pre-key, signature and the whole one-time pre-key
        pool are swapped in one transaction; readers see either the old bundle
        or the new one.

        Raises:
            NotFoundError: If the device is not registered
            ValidationError: If a key is malformed or the pool is over the cap
        """
        identity_key = validate_public_key(identity_key, "identity key")
        signed_pre_key = validate_public_key(signed_pre_key, "signed pre-key")
        signature = _validate_signature(signature)
        pool = list(one_time_pre_keys)
        if len(pool) > settings.max_one_time_pre_keys:
            raise ValidationError(
                f"at most {settings.max_one_time_pre_keys} one-time pre-keys may be published at once"
            )
        pool = [validate_public_key(key, "one-time pre-key") for key in pool]

        self.devices.get_by_id(device_id)

        now = utcnow()
        fields = {
            "identity_key": identity_key,
            "signed_pre_key": signed_pre_key,
            "signature": signature,
            "updated_at": now,
        }
        with storage_errors(self.db, "key bundle publish"):
            upsert(
                self.db,
                KeyBundle,
                values={"device_id": device_id, **fields, "id": _new_bundle_id(), "generation": 1},
                conflict_columns=("device_id",),
                update_values={**fields, "generation": KeyBundle.generation + 1},
            )
            generation = self.db.scalar(select(KeyBundle.generation).where(KeyBundle.device_id == device_id))
            self.db.execute(delete(OneTimePreKey).where(OneTimePreKey.device_id == device_id))
            if pool:
                self.db.add_all(
                    OneTimePreKey(device_id=device_id, public_key=key, generation=generation) for key in pool
                )
            self.db.commit()
            bundle = self.db.scalars(
                select(KeyBundle)
                .where(KeyBundle.device_id == device_id)
                .execution_options(populate_existing=True)
            ).one()

        logger.info(
            "Key bundle published: device_id=%s bundle_id=%s one_time_keys=%d",
            device_id,
            bundle.id,
            len(pool),
        )
        return KeyBundleHandle(bundle_id=bundle.id, device_id=device_id, updated_at=bundle.updated_at)

    def fetch(self, device_id: str) -> FetchedKeyBundle:
        """Return the bundle for ``device_id``, consuming one one-time pre-key.

        The oldest remaining pre-key is claimed; an empty pool is not an error
        and yields ``one_time_pre_key=None``.

        The returned identity key, signed pre-key, signature and one-time
        pre-key always come from the same publish. A key claimed from a pool
        that a later publish already replaced is discarded, never handed out.

        Raises:
            NotFoundError: If the device has no published bundle
            ConflictError: If a consistent bundle could not be assembled
        """
        generation, fields = self._read_bundle(device_id)
        device = self.devices.get_by_id(device_id)
        owner = {"user_id": device.user_id, "device_public_key": device.public_key}

        for _ in range(settings.prekey_claim_attempts):
            claimed = self._claim_one_time_pre_key(device_id)
            if claimed is None:
                return FetchedKeyBundle(**fields, **owner, one_time_pre_key=None)
            key, key_generation = claimed
            if key_generation != generation:
                # Republished since the first read; pick up the bundle the key belongs to.
                generation, fields = self._read_bundle(device_id)
            if key_generation == generation:
                return FetchedKeyBundle(**fields, **owner, one_time_pre_key=key)
            logger.warning(
                "Discarded one-time pre-key from a replaced pool: device_id=%s generation=%d",
                device_id,
                key_generation,
            )

        raise ConflictError("Could not read a consistent key bundle; it is being republished rapidly")

    def _read_bundle(self, device_id: str) -> tuple[int, dict[str, object]]:
        stmt = select(
            KeyBundle.generation,
            KeyBundle.identity_key,
            KeyBundle.signed_pre_key,
            KeyBundle.signature,
        ).where(KeyBundle.device_id == device_id)
        with storage_errors(self.db, "key bundle fetch"):
            row = self.db.execute(stmt).first()
            self.db.commit()
        if row is None:
            raise NotFoundError("Key bundle not found")
        return row.generation, {
            "device_id": device_id,
            "identity_key": row.identity_key,
            "signed_pre_key": row.signed_pre_key,
            "signature": row.signature,
        }

    def _claim_one_time_pre_key(self, device_id: str) -> tuple[bytes, int] | None:
        """Pop the head of the device's pool with a compare-and-delete.

        Returns the key and the publish generation it belongs to. A claim only
        counts if this session's DELETE removed the row it read; losing that
        race to a concurrent fetch means retrying on the new head.
        """
        head_stmt = (
            select(OneTimePreKey.id, OneTimePreKey.public_key, OneTimePreKey.generation)
            .where(OneTimePreKey.device_id == device_id)
            .order_by(OneTimePreKey.id.asc())
            .limit(1)
        )
        for _ in range(settings.prekey_claim_attempts):
            with storage_errors(self.db, "one-time pre-key claim"):
                head = self.db.execute(head_stmt).first()
                if head is None:
                    self.db.commit()
                    logger.info("One-time pre-key pool exhausted: device_id=%s", device_id)
                    return None
                result = self.db.execute(delete(OneTimePreKey).where(OneTimePreKey.id == head.id))
                self.db.commit()
            if result.rowcount == 1:
                logger.debug("One-time pre-key consumed: device_id=%s key_id=%s", device_id, head.id)
                return head.public_key, head.generation
            logger.debug("Lost one-time pre-key race: device_id=%s key_id=%s", device_id, head.id)

        raise ConflictError("Could not claim a one-time pre-key; the pool is under heavy contention")

    def remaining_one_time_pre_keys(self, device_id: str) -> int:
        """Return how many unclaimed one-time pre-keys ``device_id`` has left.

        Raises:
            NotFoundError: If the device has no published bundle
        """
        with storage_errors(self.db, "one-time pre-key count"):
            bundle_exists = self.db.scalar(
                select(func.count()).select_from(KeyBundle).where(KeyBundle.device_id == device_id)
            )
            if not bundle_exists:
                raise NotFoundError("Key bundle not found")
            return self.db.scalar(
                select(func.count()).select_from(OneTimePreKey).where(OneTimePreKey.device_id == device_id)
            ) or 0

    def fetch_all_for_user(self, user_id: str) -> list[KeyBundleSummary]:
        """Return summaries for each of ``user_id``'s devices that has a bundle.

        Listing never consumes one-time pre-keys.
        """
        listings = [listing for listing in self.devices.list_by_user(user_id) if listing.has_key_bundle]
        if not listings:
            return []

        device_ids = [listing.device.id for listing in listings]
        with storage_errors(self.db, "user key bundle listing"):
            bundles = self.db.scalars(select(KeyBundle).where(KeyBundle.device_id.in_(device_ids))).all()
        by_device = {bundle.device_id: bundle for bundle in bundles}

        summaries = []
        for listing in listings:
            bundle = by_device.get(listing.device.id)
            if bundle is None:
                continue
            summaries.append(
                KeyBundleSummary(
                    device_id=listing.device.id,
                    device_public_key=listing.device.public_key,
                    identity_key=bundle.identity_key,
                    signed_pre_key=bundle.signed_pre_key,
                    signature=bundle.signature,
                )
            )
        return summaries


def _new_bundle_id() -> str:
    return str(uuid.uuid4())
