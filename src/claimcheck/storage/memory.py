"""In-memory object storage.

Keeps objects in a dict keyed by (container, key). Intended for tests and
local development. Failures can be injected per operation:

    store = InMemoryObjectStore()
    store.fail_on["delete"] = RuntimeError("storage down")
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from claimcheck.storage.base import CustomerKey, ObjectInfo, ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """An object held by InMemoryObjectStore."""

    data: bytes
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    access_tier: str | None = None
    encryption_scope: str | None = None
    customer_key: CustomerKey | None = None


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store with call counting and failure injection."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], StoredObject] = {}
        self.containers: set[str] = set()
        self.calls: Counter[str] = Counter()
        self.fail_on: dict[str, BaseException] = {}

    def _record(self, operation: str) -> None:
        self.calls[operation] += 1
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    async def ensure_container(self, container: str) -> bool:
        self._record("ensure_container")
        if container in self.containers:
            return False
        self.containers.add(container)
        return True

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
        self._record("put")
        self.containers.add(container)
        self.objects[(container, key)] = StoredObject(
            data=bytes(data),
            content_type=content_type,
            metadata=dict(metadata or {}),
            access_tier=access_tier,
            encryption_scope=encryption_scope,
            customer_key=customer_key,
        )

    async def get(
        self, container: str, key: str, *, customer_key: CustomerKey | None = None
    ) -> bytes:
        self._record("get")
        stored = self.objects.get((container, key))
        if stored is None:
            raise FileNotFoundError(f"Object not found: {container}/{key}")
        return stored.data

    async def delete(self, container: str, key: str) -> bool:
        self._record("delete")
        return self.objects.pop((container, key), None) is not None

    async def generate_signed_uri(self, container: str, key: str, expiry: timedelta) -> str:
        self._record("generate_signed_uri")
        expires = (datetime.now(UTC) + expiry).strftime("%Y-%m-%dT%H:%M:%SZ")
        return f"memory://{container}/{key}?sp=r&se={expires}"

    async def list_with_metadata(
        self, container: str, prefix: str = ""
    ) -> AsyncIterator[ObjectInfo]:
        self._record("list")
        # Snapshot so deletes during iteration are safe
        for (obj_container, key), stored in list(self.objects.items()):
            if obj_container == container and key.startswith(prefix):
                yield ObjectInfo(name=key, metadata=dict(stored.metadata))

    def contains(self, container: str, key: str) -> bool:
        return (container, key) in self.objects

    def __len__(self) -> int:
        return len(self.objects)
