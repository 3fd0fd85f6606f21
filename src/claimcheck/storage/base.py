"""Base object storage interface.

Defines the abstract interface the payload store talks to. Backends map
their own "not found" errors to FileNotFoundError on reads and to a False
return on deletes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class ObjectInfo:
    """A listed object and its user metadata."""

    name: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerKey:
    """Customer-provided encryption key material (base64 key and its SHA-256)."""

    key: str
    key_sha256: str

    def __repr__(self) -> str:
        return "CustomerKey(key='***')"


class ObjectStore(ABC):
    """Abstract base class for object storage backends."""

    @abstractmethod
    async def ensure_container(self, container: str) -> bool:
        """Create the container if it does not exist.

        Returns:
            True if created, False if it already existed
        """
        ...

    @abstractmethod
    async def put(
        self,
        container: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        access_tier: str | None = None,
        encryption_scope: str | None = None,
        customer_key: CustomerKey | None = None,
    ) -> None:
        """Write an object, overwriting any existing object under the key."""
        ...

    @abstractmethod
    async def get(
        self, container: str, key: str, *, customer_key: CustomerKey | None = None
    ) -> bytes:
        """Read an object.

        Raises:
            FileNotFoundError: If the object does not exist
        """
        ...

    @abstractmethod
    async def delete(self, container: str, key: str) -> bool:
        """Delete an object.

        Returns:
            True if deleted, False if it did not exist
        """
        ...

    @abstractmethod
    async def generate_signed_uri(self, container: str, key: str, expiry: timedelta) -> str:
        """Return a read-only URI for the object valid for ``expiry``."""
        ...

    @abstractmethod
    def list_with_metadata(self, container: str, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        """Iterate objects under a prefix together with their metadata."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
