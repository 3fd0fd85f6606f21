"""Shared fixtures for claim-check tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from claimcheck.client import AsyncOffloadingClient
from claimcheck.config import ClientConfiguration, get_configuration
from claimcheck.storage.memory import InMemoryObjectStore
from claimcheck.storage.payload_store import PayloadStore
from claimcheck.transport.memory import InMemoryQueueTransport

CONTAINER = "large-messages"
THRESHOLD = 100


@pytest.fixture(autouse=True)
def _clear_configuration_cache() -> Any:
    get_configuration.cache_clear()
    yield
    get_configuration.cache_clear()


@pytest.fixture
def make_config() -> Callable[..., ClientConfiguration]:
    """Build configurations with a small threshold and instant retries."""

    def factory(**overrides: Any) -> ClientConfiguration:
        values: dict[str, Any] = {
            "message_size_threshold": THRESHOLD,
            "retry_backoff_millis": 0,
            "metrics_enabled": False,
            "tracing_enabled": False,
            "container_name": CONTAINER,
        }
        values.update(overrides)
        return ClientConfiguration(**values)

    return factory


@pytest.fixture
def config(make_config: Callable[..., ClientConfiguration]) -> ClientConfiguration:
    return make_config()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def transport() -> InMemoryQueueTransport:
    return InMemoryQueueTransport()


@pytest.fixture
def payload_store(
    object_store: InMemoryObjectStore, config: ClientConfiguration
) -> PayloadStore:
    return PayloadStore(object_store, CONTAINER, config)


@pytest.fixture
def make_client(
    transport: InMemoryQueueTransport,
    object_store: InMemoryObjectStore,
    make_config: Callable[..., ClientConfiguration],
) -> Callable[..., AsyncOffloadingClient]:
    """Build clients over the shared in-memory transport and object store."""

    def factory(**overrides: Any) -> AsyncOffloadingClient:
        client_config = make_config(**overrides)
        store = PayloadStore(object_store, CONTAINER, client_config)
        return AsyncOffloadingClient(transport, store, client_config)

    return factory


@pytest.fixture
def client(make_client: Callable[..., AsyncOffloadingClient]) -> AsyncOffloadingClient:
    return make_client()
