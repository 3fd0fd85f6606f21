"""Exception taxonomy for the claim-check client.

All errors raised by the client derive from ClaimCheckError so callers can
catch a single base class. Backend failures are chained with ``raise ... from``
so the original cause stays reachable through ``__cause__``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from claimcheck.models import BlobPointer


class ClaimCheckError(Exception):
    """Base exception for claim-check errors."""

    pass


class ConfigurationError(ClaimCheckError):
    """Raised when the client configuration is invalid or unusable."""

    pass


class InvalidPropertiesError(ClaimCheckError, ValueError):
    """Raised when application properties violate the message property rules."""

    pass


class StorageError(ClaimCheckError):
    """Raised when the payload store fails."""

    def __init__(self, message: str, pointer: BlobPointer | None = None) -> None:
        super().__init__(message)
        self.pointer = pointer


class PayloadNotFoundError(StorageError):
    """Raised when an offloaded payload no longer exists in the store."""

    pass


class SendError(ClaimCheckError):
    """Raised when a message could not be delivered to the queue."""

    def __init__(self, message: str, pointer: BlobPointer | None = None) -> None:
        super().__init__(message)
        self.pointer = pointer


class ReceiveError(ClaimCheckError):
    """Raised when messages could not be received from the queue."""

    pass
