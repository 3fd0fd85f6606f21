"""Message and pointer models.

BlobPointer is the claim-check itself: the small JSON document sent on the
wire in place of an offloaded body. QueueMessage and InboundMessage are the
transport-level shapes; ReceivedMessage is what callers get back after
rehydration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import orjson

from claimcheck.errors import StorageError


def encode_body(body: bytes | str | None) -> bytes:
    """Return the UTF-8 wire bytes of a message body."""
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    return body.encode("utf-8")


def payload_size(body: bytes | str | None) -> int:
    """Return the UTF-8 byte length of a body; None counts as empty."""
    return len(encode_body(body))


@dataclass(frozen=True, slots=True)
class BlobPointer:
    """Reference to a payload stored in blob storage."""

    container_name: str
    blob_name: str

    def to_json(self) -> str:
        """Serialize to the wire form ``{"containerName": ..., "blobName": ...}``."""
        return orjson.dumps(
            {"containerName": self.container_name, "blobName": self.blob_name}
        ).decode("utf-8")

    @classmethod
    def from_json(cls, data: str | bytes) -> BlobPointer:
        """Parse a pointer from its wire form.

        Raises:
            StorageError: If the document is not a valid pointer
        """
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise StorageError(f"Malformed blob pointer: {exc}") from exc

        if not isinstance(parsed, dict):
            raise StorageError("Malformed blob pointer: expected a JSON object")

        container = parsed.get("containerName")
        blob = parsed.get("blobName")
        if not isinstance(container, str) or not isinstance(blob, str) or not blob:
            raise StorageError("Malformed blob pointer: containerName and blobName required")

        return cls(container_name=container, blob_name=blob)

    def __str__(self) -> str:
        return f"{self.container_name}/{self.blob_name}"


@dataclass
class QueueMessage:
    """A message as handed to the queue transport for sending."""

    body: bytes | str
    application_properties: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None
    session_id: str | None = None
    content_type: str | None = None

    @property
    def size(self) -> int:
        return payload_size(self.body)


@dataclass
class InboundMessage:
    """A raw message as returned by the queue transport.

    ``raw`` holds the transport's own message object and is what settlement
    calls operate on.
    """

    body: bytes
    application_properties: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None
    delivery_count: int = 0
    sequence_number: int | None = None
    content_type: str | None = None
    session_id: str | None = None
    dead_letter_reason: str | None = None
    dead_letter_description: str | None = None
    sub_queue: Any = None
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class ReceivedMessage:
    """A received message with its original payload restored."""

    message_id: str | None
    body: bytes | str | None
    application_properties: dict[str, Any] | None = None
    payload_from_blob: bool = False
    blob_pointer: BlobPointer | None = None
    dead_letter_reason: str | None = None
    dead_letter_description: str | None = None
    delivery_count: int = 0
    sequence_number: int | None = None
    content_type: str | None = None
    session_id: str | None = None
    source: InboundMessage | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.payload_from_blob and self.blob_pointer is not None:
            raise ValueError("blob_pointer requires payload_from_blob=True")

    @property
    def is_dead_lettered(self) -> bool:
        return self.dead_letter_reason is not None
