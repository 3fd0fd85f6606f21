"""Pluggable strategies for the offloading client.

Each extension point is a single-method abstract class with one default
implementation. Inject a custom strategy through ClientConfiguration:

    class PriorityCriteria(SizeCriteria):
        def should_offload(self, body, application_properties):
            return (application_properties or {}).get("priority") == "bulk"

    config = ClientConfiguration(size_criteria=PriorityCriteria())
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

from claimcheck.models import BlobPointer, QueueMessage, payload_size


class SizeCriteria(ABC):
    """Decides whether a body goes through blob storage."""

    @abstractmethod
    def should_offload(
        self, body: bytes | str | None, application_properties: dict[str, Any] | None
    ) -> bool:
        """Return True if the body must be offloaded."""
        pass


class DefaultSizeCriteria(SizeCriteria):
    """Offload when the UTF-8 size is strictly above the threshold."""

    def __init__(self, threshold: int, always_through_blob: bool = False) -> None:
        self.threshold = threshold
        self.always_through_blob = always_through_blob

    def should_offload(
        self, body: bytes | str | None, application_properties: dict[str, Any] | None
    ) -> bool:
        if self.always_through_blob:
            return True
        return payload_size(body) > self.threshold


class BlobNameResolver(ABC):
    """Produces the name hint under which a payload is stored."""

    @abstractmethod
    def resolve(self, message: QueueMessage) -> str:
        pass


class DefaultBlobNameResolver(BlobNameResolver):
    """Use the caller's message id, falling back to a random UUID."""

    def resolve(self, message: QueueMessage) -> str:
        if message.message_id:
            return message.message_id
        return str(uuid4())


class MessageBodyReplacer(ABC):
    """Produces the body sent on the wire in place of an offloaded payload."""

    @abstractmethod
    def replace(self, original_body: bytes | str | None, pointer: BlobPointer) -> bytes | str:
        pass


class DefaultMessageBodyReplacer(MessageBodyReplacer):
    """Replace the body with the pointer's JSON form."""

    def replace(self, original_body: bytes | str | None, pointer: BlobPointer) -> bytes | str:
        return pointer.to_json()


class StorageConnectionStringProvider(ABC):
    """Supplies the storage connection string, e.g. from a secret store."""

    @abstractmethod
    def get_connection_string(self) -> str:
        pass


class PlainTextConnectionStringProvider(StorageConnectionStringProvider):
    """Return a fixed connection string."""

    def __init__(self, connection_string: str) -> None:
        if not connection_string:
            raise ValueError("connection_string must not be empty")
        self._connection_string = connection_string

    def get_connection_string(self) -> str:
        return self._connection_string

    def __repr__(self) -> str:
        return "PlainTextConnectionStringProvider(connection_string='***')"
