# src/sealpost/models/__init__.py
"""SQLAlchemy models for the Sealpost relay."""

from .device import Device
from .envelope import Envelope
from .key_bundle import KeyBundle, OneTimePreKey

__all__ = [
    "Device",
    "Envelope",
    "KeyBundle", "OneTimePreKey",
]
