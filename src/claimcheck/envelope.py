"""Outgoing message construction and received message helpers.

Shared by the async client and the blocking facade. Nothing in here touches
the network: building a pointer message and stripping internal properties
are pure functions of the configuration and the input.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from claimcheck.constants import (
    BINARY_CONTENT_TYPE,
    BLOB_POINTER_MARKER,
    BLOB_POINTER_MARKER_VALUE,
    CONTENT_TYPE_PROPERTY,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    RESERVED_ATTRIBUTE_NAME,
    TRACEPARENT_PROPERTY,
    TRACESTATE_PROPERTY,
    USER_AGENT,
    USER_AGENT_PROPERTY,
)
from claimcheck.ids import compute_content_hash
from claimcheck.models import BlobPointer, QueueMessage, encode_body, payload_size
from claimcheck.observability.tracing import inject_trace_context

if TYPE_CHECKING:
    from claimcheck.config import ClientConfiguration
    from claimcheck.extensions import MessageBodyReplacer

__all__ = [
    "EnvelopeBuilder",
    "decode_body",
    "encode_body",
    "is_offloaded",
    "is_text_content_type",
    "payload_size",
    "resolve_content_type",
    "strip_internal_properties",
]

_INTERNAL_PROPERTIES = (
    BLOB_POINTER_MARKER,
    RESERVED_ATTRIBUTE_NAME,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    USER_AGENT_PROPERTY,
    CONTENT_TYPE_PROPERTY,
    TRACEPARENT_PROPERTY,
    TRACESTATE_PROPERTY,
)

_TEXT_MARKERS = ("json", "xml", "charset=", "javascript", "yaml", "csv")


def resolve_content_type(
    body: bytes | str | None, content_type: str | None, config: ClientConfiguration
) -> str:
    """Pick the content type for a body; binary bodies default to octet-stream."""
    if content_type:
        return content_type
    if isinstance(body, (bytes, bytearray, memoryview)):
        return BINARY_CONTENT_TYPE
    return config.default_content_type


def is_text_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return lowered.startswith("text/") or any(marker in lowered for marker in _TEXT_MARKERS)


def decode_body(data: bytes | None, content_type: str | None) -> bytes | str:
    """Return text bodies as str and everything else as bytes."""
    data = data or b""
    if is_text_content_type(content_type):
        return data.decode("utf-8", errors="replace")
    return data


def is_offloaded(properties: dict[str, Any] | None) -> bool:
    if not properties:
        return False
    return str(properties.get(BLOB_POINTER_MARKER, "")).lower() == BLOB_POINTER_MARKER_VALUE


def strip_internal_properties(
    properties: dict[str, Any] | None, sas_property: str | None = None
) -> dict[str, Any]:
    """Copy properties without anything the client itself wrote on send.

    Args:
        properties: Application properties as received
        sas_property: Name of the SAS URI property, if one is configured
    """
    return {
        key: value
        for key, value in (properties or {}).items()
        if key not in _INTERNAL_PROPERTIES and key != sas_property
    }


class EnvelopeBuilder:
    """Builds the QueueMessage actually handed to the transport."""

    def __init__(self, config: ClientConfiguration, replacer: MessageBodyReplacer) -> None:
        self.config = config
        self.replacer = replacer

    def _message_id(self, body: bytes | str | None, message_id: str | None) -> str | None:
        if self.config.enable_duplicate_detection_id:
            return compute_content_hash(body)
        return message_id

    def _properties(self, application_properties: dict[str, Any] | None) -> dict[str, Any]:
        properties = dict(application_properties or {})
        properties[USER_AGENT_PROPERTY] = USER_AGENT
        if self.config.tracing_enabled:
            inject_trace_context(properties)
        return properties

    def direct(
        self,
        body: bytes | str | None,
        application_properties: dict[str, Any] | None,
        *,
        content_type: str,
        message_id: str | None = None,
        session_id: str | None = None,
    ) -> QueueMessage:
        """A message carrying its body inline."""
        return QueueMessage(
            body=body if body is not None else "",
            application_properties=self._properties(application_properties),
            message_id=self._message_id(body, message_id),
            session_id=session_id,
            content_type=content_type,
        )

    def offloaded(
        self,
        body: bytes | str | None,
        application_properties: dict[str, Any] | None,
        pointer: BlobPointer,
        *,
        content_type: str,
        message_id: str | None = None,
        session_id: str | None = None,
        sas_uri: str | None = None,
    ) -> QueueMessage:
        """A message whose body was replaced by a pointer to stored payload.

        A custom replacer must keep the pointer JSON recoverable from the
        body, since receivers parse it back out.
        """
        properties = self._properties(application_properties)
        properties[BLOB_POINTER_MARKER] = BLOB_POINTER_MARKER_VALUE
        properties[self.config.reserved_attribute_name] = payload_size(body)
        properties[CONTENT_TYPE_PROPERTY] = content_type
        if sas_uri:
            properties[self.config.message_property_for_blob_sas_uri] = sas_uri

        return QueueMessage(
            body=self.replacer.replace(body, pointer),
            application_properties=properties,
            message_id=self._message_id(body, message_id),
            session_id=session_id,
            content_type=content_type,
        )
