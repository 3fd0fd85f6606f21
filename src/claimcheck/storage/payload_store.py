"""Payload store: claim-check persistence on top of an ObjectStore.

Stores message bodies under ``blob_key_prefix + name_hint`` and hands back a
BlobPointer. Applies the configured access tier, encryption, and TTL
metadata on every write, and sweeps expired payloads on demand.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from claimcheck.constants import (
    CONTENT_TYPE_METADATA,
    CUSTOMER_KEY_METADATA,
    ENCRYPTION_SCOPE_METADATA,
    EXPIRES_AT_METADATA,
)
from claimcheck.errors import ClaimCheckError, PayloadNotFoundError, StorageError
from claimcheck.models import BlobPointer, encode_body
from claimcheck.observability.metrics import get_metrics
from claimcheck.storage.base import CustomerKey, ObjectStore

if TYPE_CHECKING:
    from claimcheck.config import ClientConfiguration

logger = logging.getLogger(__name__)


def _expires_at(metadata: dict[str, str]) -> str | None:
    # Azure may return metadata keys in a different case than written
    wanted = EXPIRES_AT_METADATA.lower()
    for key, value in metadata.items():
        if key.lower() == wanted:
            return value
    return None


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class PayloadStore:
    """Stores, retrieves and deletes offloaded message payloads."""

    def __init__(
        self,
        object_store: ObjectStore,
        container_name: str,
        config: ClientConfiguration,
    ) -> None:
        self.object_store = object_store
        self.container_name = container_name
        self.config = config
        self._metrics = get_metrics(config.metrics_enabled)

    @property
    def customer_key(self) -> CustomerKey | None:
        encryption = self.config.encryption
        if not encryption.has_customer_provided_key():
            return None
        return CustomerKey(
            key=encryption.customer_provided_key or "",
            key_sha256=encryption.key_sha256() or "",
        )

    async def ensure_container(self) -> None:
        try:
            await self.object_store.ensure_container(self.container_name)
        except Exception as e:
            raise StorageError(
                f"Failed to ensure container {self.container_name}: {e}"
            ) from e

    def _build_metadata(self, content_type: str) -> dict[str, str]:
        metadata = {CONTENT_TYPE_METADATA: content_type}

        if self.config.blob_ttl_days > 0:
            expires = datetime.now(UTC) + timedelta(days=self.config.blob_ttl_days)
            metadata[EXPIRES_AT_METADATA] = expires.isoformat()

        encryption = self.config.encryption
        if encryption.has_encryption_scope():
            metadata[ENCRYPTION_SCOPE_METADATA] = encryption.encryption_scope or ""
        elif encryption.has_customer_provided_key():
            metadata[CUSTOMER_KEY_METADATA] = "true"

        return metadata

    async def store(
        self,
        name_hint: str,
        payload: bytes | str | None,
        content_type: str | None = None,
    ) -> BlobPointer:
        """Store a payload and return a pointer to it.

        Raises:
            ConfigurationError: If both an encryption scope and a customer key are set
            StorageError: If the backend write fails
        """
        encryption = self.config.encryption
        encryption.ensure_consistent()

        key = f"{self.config.blob_key_prefix}{name_hint}"
        data = encode_body(payload)
        content_type = content_type or self.config.default_content_type
        pointer = BlobPointer(container_name=self.container_name, blob_name=key)

        try:
            await self.object_store.put(
                self.container_name,
                key,
                data,
                content_type=content_type,
                metadata=self._build_metadata(content_type),
                access_tier=self.config.blob_access_tier,
                encryption_scope=encryption.encryption_scope or None,
                customer_key=self.customer_key,
            )
        except ClaimCheckError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to store payload {pointer}: {e}", pointer) from e

        logger.debug(f"Stored payload {pointer} ({len(data)} bytes)")
        return pointer

    async def retrieve(self, pointer: BlobPointer) -> bytes | None:
        """Fetch a payload.

        Returns None when the payload is missing and
        ``ignore_payload_not_found`` is set.

        Raises:
            PayloadNotFoundError: If the payload is missing
            StorageError: If the backend read fails
        """
        try:
            return await self.object_store.get(
                pointer.container_name, pointer.blob_name, customer_key=self.customer_key
            )
        except FileNotFoundError as e:
            if self.config.ignore_payload_not_found:
                logger.warning(f"Payload {pointer} not found, ignoring")
                return None
            raise PayloadNotFoundError(f"Payload not found: {pointer}", pointer) from e
        except ClaimCheckError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to retrieve payload {pointer}: {e}", pointer) from e

    async def delete(self, pointer: BlobPointer) -> bool:
        """Delete a payload; an already-missing payload returns False."""
        try:
            deleted = await self.object_store.delete(pointer.container_name, pointer.blob_name)
        except Exception as e:
            raise StorageError(f"Failed to delete payload {pointer}: {e}", pointer) from e

        if deleted:
            logger.debug(f"Deleted payload {pointer}")
        else:
            logger.debug(f"Payload {pointer} already absent")
        return deleted

    async def generate_signed_uri(
        self, pointer: BlobPointer, expiry: timedelta | None = None
    ) -> str:
        """Return a read-only URI for the payload."""
        expiry = expiry or self.config.sas_token_validation_time
        try:
            return await self.object_store.generate_signed_uri(
                pointer.container_name, pointer.blob_name, expiry
            )
        except Exception as e:
            raise StorageError(
                f"Failed to generate signed URI for {pointer}: {e}", pointer
            ) from e

    async def cleanup_expired_blobs(self) -> int:
        """Delete payloads whose ``expiresAt`` metadata lies in the past.

        Objects without TTL metadata are never touched. Failures on single
        objects are logged and skipped.

        Returns:
            Number of payloads deleted
        """
        now = datetime.now(UTC)
        deleted = 0

        try:
            async for info in self.object_store.list_with_metadata(
                self.container_name, self.config.blob_key_prefix
            ):
                expires_at = _expires_at(info.metadata)
                if expires_at is None:
                    continue

                try:
                    if _parse_timestamp(expires_at) >= now:
                        continue
                    if await self.object_store.delete(self.container_name, info.name):
                        deleted += 1
                        logger.debug(f"Deleted expired payload {info.name}")
                except Exception as e:
                    logger.warning(f"Failed to clean up payload {info.name}: {e}")
        except Exception as e:
            logger.error(f"Failed to list payloads in {self.container_name}: {e}")

        if deleted:
            self._metrics.expired_blobs_deleted_total.inc(deleted)
        logger.info(f"TTL cleanup removed {deleted} expired payload(s)")
        return deleted
