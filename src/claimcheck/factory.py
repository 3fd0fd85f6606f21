"""Build clients from configuration.

Example:
    from claimcheck.factory import create_client

    client = create_client()  # reads CLAIMCHECK_* / AZURE_* environment
"""

from __future__ import annotations

import logging
from typing import Any

from claimcheck.cleanup import BlobCleanupScheduler
from claimcheck.client import AsyncOffloadingClient
from claimcheck.config import ClientConfiguration, get_configuration
from claimcheck.errors import ConfigurationError
from claimcheck.storage.azure import AzureObjectStore, SasPayloadResolver
from claimcheck.storage.base import ObjectStore
from claimcheck.storage.payload_store import PayloadStore
from claimcheck.sync_client import OffloadingMessageClient
from claimcheck.transport.base import QueueTransport
from claimcheck.transport.servicebus import ServiceBusTransport

logger = logging.getLogger(__name__)


def create_object_store(config: ClientConfiguration) -> ObjectStore:
    """Create the Azure object store from the configured credentials."""
    connection_string = config.resolve_storage_connection_string()
    if connection_string:
        return AzureObjectStore(connection_string=connection_string)
    if config.storage_account_url:
        return AzureObjectStore(account_url=config.storage_account_url)
    raise ConfigurationError(
        "Blob storage requires AZURE_STORAGE_CONNECTION_STRING, "
        "a connection string provider, or AZURE_ACCOUNT_URL"
    )


def create_payload_store(
    config: ClientConfiguration, object_store: ObjectStore | None = None
) -> PayloadStore | None:
    """Create the payload store; receive-only clients have none."""
    if config.receive_only_mode:
        logger.info("Receive-only mode: payloads are downloaded through SAS URIs")
        return None
    if object_store is None:
        object_store = create_object_store(config)
    return PayloadStore(object_store, config.container_name, config)


def create_transport(config: ClientConfiguration) -> QueueTransport:
    if not config.servicebus_connection_string:
        raise ConfigurationError("SERVICEBUS_CONNECTION_STRING is required")
    return ServiceBusTransport(config.servicebus_connection_string, config.queue_name)


def create_async_client(
    config: ClientConfiguration | None = None,
    *,
    transport: QueueTransport | None = None,
    object_store: ObjectStore | None = None,
    **kwargs: Any,
) -> AsyncOffloadingClient:
    """Wire an AsyncOffloadingClient from configuration."""
    if config is None:
        config = get_configuration()
    if transport is None:
        transport = create_transport(config)
    payload_store = create_payload_store(config, object_store)
    sas_resolver = SasPayloadResolver() if config.receive_only_mode else None
    return AsyncOffloadingClient(
        transport, payload_store, config, sas_resolver=sas_resolver, **kwargs
    )


def create_client(
    config: ClientConfiguration | None = None,
    *,
    transport: QueueTransport | None = None,
    object_store: ObjectStore | None = None,
    **kwargs: Any,
) -> OffloadingMessageClient:
    """Wire a blocking OffloadingMessageClient from configuration."""
    if config is None:
        config = get_configuration()
    if transport is None:
        transport = create_transport(config)
    payload_store = create_payload_store(config, object_store)
    sas_resolver = SasPayloadResolver() if config.receive_only_mode else None
    return OffloadingMessageClient(
        transport, payload_store, config, sas_resolver=sas_resolver, **kwargs
    )


def create_cleanup_scheduler(
    config: ClientConfiguration, payload_store: PayloadStore | None
) -> BlobCleanupScheduler | None:
    """Create the TTL cleanup scheduler, or None when it is disabled."""
    return BlobCleanupScheduler.from_configuration(config, payload_store)
