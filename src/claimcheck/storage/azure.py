"""Azure Blob Storage backend."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from claimcheck.errors import StorageError
from claimcheck.storage.base import CustomerKey, ObjectInfo, ObjectStore

logger = logging.getLogger(__name__)


class AzureObjectStore(ObjectStore):
    """Azure Blob Storage implementation using azure-storage-blob aio client."""

    def __init__(
        self,
        connection_string: str | None = None,
        account_url: str | None = None,
        credential: Any | None = None,
    ) -> None:
        self.connection_string = connection_string
        self.account_url = account_url
        self.credential = credential
        self._client: Any | None = None

    async def _get_client(self) -> Any:
        """Get or create BlobServiceClient."""
        if self._client is None:
            from azure.storage.blob.aio import BlobServiceClient

            if self.connection_string:
                self._client = BlobServiceClient.from_connection_string(
                    self.connection_string
                )
            elif self.account_url:
                self._client = BlobServiceClient(
                    account_url=self.account_url, credential=self.credential
                )
            else:
                raise StorageError(
                    "Azure storage requires AZURE_STORAGE_CONNECTION_STRING or AZURE_ACCOUNT_URL"
                )

        return self._client

    async def ensure_container(self, container: str) -> bool:
        client = await self._get_client()
        container_client = client.get_container_client(container)

        try:
            await container_client.create_container()
            logger.info(f"Created blob container: {container}")
            return True
        except Exception as exc:
            from azure.core.exceptions import ResourceExistsError

            if isinstance(exc, ResourceExistsError):
                return False
            raise

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
        from azure.storage.blob import ContentSettings, CustomerProvidedEncryptionKey

        client = await self._get_client()
        blob_client = client.get_blob_client(container=container, blob=key)

        options: dict[str, Any] = {}
        if access_tier:
            options["standard_blob_tier"] = access_tier
        if encryption_scope:
            options["encryption_scope"] = encryption_scope
        if customer_key is not None:
            options["cpk"] = CustomerProvidedEncryptionKey(
                key_value=customer_key.key, key_hash=customer_key.key_sha256
            )

        await blob_client.upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
            metadata=metadata or {},
            **options,
        )

    async def get(
        self, container: str, key: str, *, customer_key: CustomerKey | None = None
    ) -> bytes:
        client = await self._get_client()
        blob_client = client.get_blob_client(container=container, blob=key)

        options: dict[str, Any] = {}
        if customer_key is not None:
            from azure.storage.blob import CustomerProvidedEncryptionKey

            options["cpk"] = CustomerProvidedEncryptionKey(
                key_value=customer_key.key, key_hash=customer_key.key_sha256
            )

        try:
            stream = await blob_client.download_blob(**options)
            data = await stream.readall()
            return cast(bytes, data)
        except Exception as exc:
            from azure.core.exceptions import ResourceNotFoundError

            if isinstance(exc, ResourceNotFoundError):
                raise FileNotFoundError(f"Blob not found: {container}/{key}") from exc
            raise

    async def delete(self, container: str, key: str) -> bool:
        client = await self._get_client()
        blob_client = client.get_blob_client(container=container, blob=key)

        try:
            await blob_client.delete_blob()
            return True
        except Exception as exc:
            from azure.core.exceptions import ResourceNotFoundError

            if isinstance(exc, ResourceNotFoundError):
                return False
            raise

    async def generate_signed_uri(self, container: str, key: str, expiry: timedelta) -> str:
        """Generate a read-only SAS URI for a blob.

        Requires a shared key credential (an account key connection string).
        """
        from azure.storage.blob import BlobSasPermissions, generate_blob_sas

        client = await self._get_client()
        credential = client.credential
        account_key = getattr(credential, "account_key", None)
        if not account_key:
            raise StorageError("SAS generation requires a shared key credential")

        token = generate_blob_sas(
            account_name=client.account_name,
            container_name=container,
            blob_name=key,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(UTC) + expiry,
        )
        blob_client = client.get_blob_client(container=container, blob=key)
        return f"{blob_client.url}?{token}"

    async def list_with_metadata(
        self, container: str, prefix: str = ""
    ) -> AsyncIterator[ObjectInfo]:
        client = await self._get_client()
        container_client = client.get_container_client(container)

        async for blob in container_client.list_blobs(
            name_starts_with=prefix or None, include=["metadata"]
        ):
            yield ObjectInfo(name=blob.name, metadata=dict(blob.metadata or {}))

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            await self._client.close()
            self._client = None


class SasPayloadResolver:
    """Download payloads through a SAS URI, without storage credentials.

    Used in receive-only mode where the receiver holds no account key.
    """

    async def download(self, sas_uri: str) -> bytes:
        from azure.storage.blob.aio import BlobClient

        async with BlobClient.from_blob_url(sas_uri) as blob_client:
            try:
                stream = await blob_client.download_blob()
                return cast(bytes, await stream.readall())
            except Exception as exc:
                from azure.core.exceptions import ResourceNotFoundError

                if isinstance(exc, ResourceNotFoundError):
                    raise FileNotFoundError("Blob not found at SAS URI") from exc
                raise
