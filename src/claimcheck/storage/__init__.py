"""Payload storage for offloaded message bodies.

Provides:
- ObjectStore interface with Azure Blob Storage and in-memory backends
- PayloadStore, which turns bodies into BlobPointers and back
- SasPayloadResolver for credential-less downloads in receive-only mode
"""

from claimcheck.storage.azure import AzureObjectStore, SasPayloadResolver
from claimcheck.storage.base import CustomerKey, ObjectInfo, ObjectStore
from claimcheck.storage.memory import InMemoryObjectStore
from claimcheck.storage.payload_store import PayloadStore

__all__ = [
    "ObjectStore",
    "ObjectInfo",
    "CustomerKey",
    "AzureObjectStore",
    "InMemoryObjectStore",
    "PayloadStore",
    "SasPayloadResolver",
]
