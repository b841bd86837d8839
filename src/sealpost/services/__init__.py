"""Business logic services for the Sealpost relay."""

from .device_registry import DeviceListing, DeviceRegistry
from .envelopes import EnvelopeStore, InboxEntry
from .key_bundles import FetchedKeyBundle, KeyBundleHandle, KeyBundleStore, KeyBundleSummary
from .presence import PresenceHub
from .retention import RetentionSweeper

__all__ = [
    "DeviceListing",
    "DeviceRegistry",
    "EnvelopeStore",
    "FetchedKeyBundle",
    "InboxEntry",
    "KeyBundleHandle",
    "KeyBundleStore",
    "KeyBundleSummary",
    "PresenceHub",
    "RetentionSweeper",
]
