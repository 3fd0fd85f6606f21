"""Claim-check client for Azure Service Bus.

Message bodies above a size threshold are stored in Azure Blob Storage and
replaced on the wire by a small pointer. Receivers get the original body
back without knowing it took a detour.
"""

from claimcheck.client import AsyncOffloadingClient
from claimcheck.config import ClientConfiguration, EncryptionSettings, get_configuration
from claimcheck.constants import CLIENT_VERSION
from claimcheck.errors import (
    ClaimCheckError,
    ConfigurationError,
    InvalidPropertiesError,
    PayloadNotFoundError,
    ReceiveError,
    SendError,
    StorageError,
)
from claimcheck.factory import create_async_client, create_client
from claimcheck.models import BlobPointer, ReceivedMessage
from claimcheck.processor import ErrorContext, MessageProcessor
from claimcheck.sync_client import OffloadingMessageClient

__version__ = CLIENT_VERSION

__all__ = [
    "AsyncOffloadingClient",
    "OffloadingMessageClient",
    "MessageProcessor",
    "ErrorContext",
    "ClientConfiguration",
    "EncryptionSettings",
    "get_configuration",
    "BlobPointer",
    "ReceivedMessage",
    "create_client",
    "create_async_client",
    "ClaimCheckError",
    "ConfigurationError",
    "InvalidPropertiesError",
    "StorageError",
    "PayloadNotFoundError",
    "SendError",
    "ReceiveError",
]
