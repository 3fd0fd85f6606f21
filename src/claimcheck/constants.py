"""Wire-level constants shared with other large-message clients.

These names and values appear on the wire and in blob metadata. Changing any
of them breaks interoperability with messages already in flight.
"""

from __future__ import annotations

CLIENT_VERSION = "0.1.0"

# Application property flagging a message whose body is a blob pointer
BLOB_POINTER_MARKER = "com.azure.servicebus.largemessage.BlobPointer"
BLOB_POINTER_MARKER_VALUE = "true"

# Application properties carrying the original payload size
RESERVED_ATTRIBUTE_NAME = "ExtendedPayloadSize"
LEGACY_RESERVED_ATTRIBUTE_NAME = "ServiceBusLargePayloadSize"

USER_AGENT_PROPERTY = "LargeMessageClientUserAgent"
USER_AGENT = f"servicebus-claimcheck/{CLIENT_VERSION}"

CONTENT_TYPE_PROPERTY = "contentType"
TRACEPARENT_PROPERTY = "traceparent"
TRACESTATE_PROPERTY = "tracestate"

DEFAULT_MESSAGE_SIZE_THRESHOLD = 262144
MAX_ALLOWED_PROPERTIES = 9
MAX_APPLICATION_PROPERTIES_SIZE = 64 * 1024

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"
BINARY_CONTENT_TYPE = "application/octet-stream"
DEFAULT_SAS_URI_PROPERTY = "$attachment.sas.uri"
DEFAULT_DEAD_LETTER_REASON = "ProcessingFailure"

# Blob metadata keys
EXPIRES_AT_METADATA = "expiresAt"
CONTENT_TYPE_METADATA = "contentType"
ENCRYPTION_SCOPE_METADATA = "encryptionScope"
CUSTOMER_KEY_METADATA = "hasCustomerKey"

MAX_BLOB_KEY_PREFIX_LENGTH = 988

RESERVED_PROPERTY_NAMES = frozenset(
    {
        BLOB_POINTER_MARKER,
        RESERVED_ATTRIBUTE_NAME,
        LEGACY_RESERVED_ATTRIBUTE_NAME,
        USER_AGENT_PROPERTY,
        CONTENT_TYPE_PROPERTY,
        TRACEPARENT_PROPERTY,
        TRACESTATE_PROPERTY,
    }
)
