"""Error taxonomy shared by the relay's core services.

Every failure a core operation reports to its caller is one of the classes
below. The API layer maps them onto HTTP status codes in ``sealpost.main``.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base exception raised for relay failures.

    This is the base class for all classified core errors.
    """

    status_code: int = 500


class ValidationError(RelayError):
    """Raised when input is malformed or out of range.

    The caller is at fault; the operation is never retried internally.
    """

    status_code = 422


class NotFoundError(RelayError):
    """Raised when a referenced device or key bundle does not exist."""

    status_code = 404


class ConflictError(RelayError):
    """Raised when an atomic storage contract could not be honoured.

    Seeing this means the storage layer lost a race it should have
    serialized; it does not indicate a client mistake.
    """

    status_code = 409


class StorageUnavailableError(RelayError):
    """Raised when the durable store cannot be reached.

    This is a transient condition; callers may retry with backoff.
    """

    status_code = 503
