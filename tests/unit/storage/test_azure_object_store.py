"""Unit tests for the Azure object store backend."""

from __future__ import annotations

import base64
from datetime import timedelta
from types import SimpleNamespace
from typing import Any

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from claimcheck.errors import StorageError
from claimcheck.storage.azure import AzureObjectStore
from claimcheck.storage.base import CustomerKey


class FakeAzureDownload:
    def __init__(self, data: bytes) -> None:
        self._data = data

    async def readall(self) -> bytes:
        return self._data


class FakeAzureBlobClient:
    def __init__(self, service: FakeAzureServiceClient, container: str, name: str) -> None:
        self._service = service
        self._name = name
        self.url = f"https://acct.blob.core.windows.net/{container}/{name}"

    async def upload_blob(self, data: bytes, **kwargs: Any) -> None:
        self._service.store[self._name] = data
        self._service.metadata[self._name] = kwargs.get("metadata") or {}
        self._service.upload_kwargs.append(kwargs)

    async def download_blob(self, **kwargs: Any) -> FakeAzureDownload:
        if self._name not in self._service.store:
            raise ResourceNotFoundError("missing")
        return FakeAzureDownload(self._service.store[self._name])

    async def delete_blob(self) -> None:
        if self._name not in self._service.store:
            raise ResourceNotFoundError("missing")
        del self._service.store[self._name]


class FakeAzureContainerClient:
    def __init__(self, service: FakeAzureServiceClient) -> None:
        self._service = service

    async def create_container(self) -> None:
        if self._service.container_exists:
            raise ResourceExistsError("exists")
        self._service.container_exists = True

    async def list_blobs(self, name_starts_with: str | None = None, include: Any = None):  # type: ignore[no-untyped-def]
        for name in list(self._service.store):
            if name_starts_with is None or name.startswith(name_starts_with):
                yield SimpleNamespace(name=name, metadata=self._service.metadata.get(name))


class FakeAzureServiceClient:
    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.upload_kwargs: list[dict[str, Any]] = []
        self.container_exists = False
        self.account_name = "acct"
        self.credential = SimpleNamespace(account_key=base64.b64encode(b"secret").decode())
        self.closed = False

    def get_container_client(self, container: str) -> FakeAzureContainerClient:
        return FakeAzureContainerClient(self)

    def get_blob_client(self, container: str, blob: str) -> FakeAzureBlobClient:
        return FakeAzureBlobClient(self, container, blob)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def service() -> FakeAzureServiceClient:
    return FakeAzureServiceClient()


@pytest.fixture
def azure_store(monkeypatch: pytest.MonkeyPatch, service: FakeAzureServiceClient) -> AzureObjectStore:
    store = AzureObjectStore(connection_string="UseDevelopmentStorage=true")

    async def get_client() -> Any:
        return service

    monkeypatch.setattr(store, "_get_client", get_client)
    return store


@pytest.mark.asyncio
async def test_azure_object_store_roundtrip(azure_store: AzureObjectStore) -> None:
    """Put, get, and delete using mocked Azure storage."""
    await azure_store.put("c", "k", b"payload", content_type="text/plain", metadata={"a": "b"})

    assert await azure_store.get("c", "k") == b"payload"
    assert await azure_store.delete("c", "k") is True
    assert await azure_store.delete("c", "k") is False


@pytest.mark.asyncio
async def test_get_missing_raises_file_not_found(azure_store: AzureObjectStore) -> None:
    with pytest.raises(FileNotFoundError):
        await azure_store.get("c", "missing")


@pytest.mark.asyncio
async def test_put_options(azure_store: AzureObjectStore, service: FakeAzureServiceClient) -> None:
    """Tier, scope and customer key are passed to the SDK."""
    await azure_store.put(
        "c",
        "k",
        b"x",
        access_tier="Cool",
        encryption_scope="scope",
        customer_key=CustomerKey(key="a2V5", key_sha256="aGFzaA=="),
    )
    kwargs = service.upload_kwargs[-1]

    assert kwargs["overwrite"] is True
    assert kwargs["standard_blob_tier"] == "Cool"
    assert kwargs["encryption_scope"] == "scope"
    assert kwargs["cpk"].key_value == "a2V5"


@pytest.mark.asyncio
async def test_ensure_container(azure_store: AzureObjectStore) -> None:
    assert await azure_store.ensure_container("c") is True
    assert await azure_store.ensure_container("c") is False


@pytest.mark.asyncio
async def test_list_with_metadata(azure_store: AzureObjectStore) -> None:
    await azure_store.put("c", "p/a", b"1", metadata={"expiresAt": "2020-01-01T00:00:00+00:00"})
    await azure_store.put("c", "q/b", b"2")

    listed = [info async for info in azure_store.list_with_metadata("c", "p/")]

    assert [info.name for info in listed] == ["p/a"]
    assert listed[0].metadata == {"expiresAt": "2020-01-01T00:00:00+00:00"}


@pytest.mark.asyncio
async def test_generate_signed_uri(azure_store: AzureObjectStore) -> None:
    uri = await azure_store.generate_signed_uri("c", "k", timedelta(hours=1))

    assert uri.startswith("https://acct.blob.core.windows.net/c/k?")
    assert "sp=r" in uri
    assert "sig=" in uri


@pytest.mark.asyncio
async def test_generate_signed_uri_requires_key(
    azure_store: AzureObjectStore, service: FakeAzureServiceClient
) -> None:
    service.credential = None

    with pytest.raises(StorageError):
        await azure_store.generate_signed_uri("c", "k", timedelta(hours=1))


@pytest.mark.asyncio
async def test_missing_credentials() -> None:
    store = AzureObjectStore()

    with pytest.raises(StorageError):
        await store.get("c", "k")


@pytest.mark.asyncio
async def test_close(service: FakeAzureServiceClient) -> None:
    store = AzureObjectStore(connection_string="UseDevelopmentStorage=true")
    store._client = service

    await store.close()

    assert service.closed is True
    assert store._client is None
