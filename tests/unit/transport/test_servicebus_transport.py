"""Tests for the Service Bus transport using fake SDK clients."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

from claimcheck.errors import ConfigurationError
from claimcheck.models import QueueMessage
from claimcheck.transport.base import SubQueue
from claimcheck.transport.servicebus import (
    ServiceBusTransport,
    from_received_message,
    to_servicebus_message,
)


def _received(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "body": iter([b"hel", b"lo"]),
        "application_properties": {b"orderId": b"42", "count": 3},
        "message_id": "m1",
        "delivery_count": 2,
        "sequence_number": 7,
        "content_type": "text/plain",
        "session_id": None,
        "dead_letter_reason": None,
        "dead_letter_error_description": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class FakeServiceBusClient:
    def __init__(self) -> None:
        self.sender = SimpleNamespace(
            send_messages=AsyncMock(),
            schedule_messages=AsyncMock(return_value=[11]),
            close=AsyncMock(),
        )
        self.receivers: dict[Any, SimpleNamespace] = {}
        self.closed = False

    def get_queue_sender(self, queue_name: str) -> SimpleNamespace:
        return self.sender

    def get_queue_receiver(self, queue_name: str, sub_queue: Any = None) -> SimpleNamespace:
        receiver = SimpleNamespace(
            receive_messages=AsyncMock(return_value=[_received()]),
            receive_deferred_messages=AsyncMock(return_value=[]),
            complete_message=AsyncMock(),
            abandon_message=AsyncMock(),
            defer_message=AsyncMock(),
            dead_letter_message=AsyncMock(),
            renew_message_lock=AsyncMock(return_value=datetime.now(UTC)),
            close=AsyncMock(),
        )
        self.receivers[sub_queue] = receiver
        return receiver

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeServiceBusClient:
    return FakeServiceBusClient()


@pytest.fixture
def sb_transport(fake_client: FakeServiceBusClient) -> ServiceBusTransport:
    transport = ServiceBusTransport("Endpoint=sb://example/;SharedAccessKey=x", "orders")
    transport._client = fake_client
    return transport


class TestConversion:
    """Tests for SDK message conversion."""

    def test_from_received_message(self) -> None:
        inbound = from_received_message(_received(), SubQueue.ACTIVE)

        assert inbound.body == b"hello"
        assert inbound.application_properties == {"orderId": "42", "count": 3}
        assert inbound.delivery_count == 2
        assert inbound.sequence_number == 7
        assert inbound.sub_queue == SubQueue.ACTIVE

    def test_dead_letter_fields(self) -> None:
        inbound = from_received_message(
            _received(body=b"x", dead_letter_reason="Bad", dead_letter_error_description="why"),
            SubQueue.DEAD_LETTER,
        )

        assert inbound.dead_letter_reason == "Bad"
        assert inbound.dead_letter_description == "why"

    def test_to_servicebus_message(self) -> None:
        message = to_servicebus_message(
            QueueMessage(
                body="hello",
                application_properties={"k": "v"},
                message_id="m1",
                content_type="text/plain",
            )
        )

        assert message.message_id == "m1"
        assert message.content_type == "text/plain"
        assert message.application_properties == {"k": "v"}


class TestServiceBusTransport:
    """Tests for ServiceBusTransport."""

    def test_requires_connection_string(self) -> None:
        with pytest.raises(ConfigurationError):
            ServiceBusTransport("", "orders")

    @pytest.mark.asyncio
    async def test_send(
        self, sb_transport: ServiceBusTransport, fake_client: FakeServiceBusClient
    ) -> None:
        await sb_transport.send(QueueMessage(body="x", message_id="m1"))

        fake_client.sender.send_messages.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_schedule_returns_sequence_number(self, sb_transport: ServiceBusTransport) -> None:
        number = await sb_transport.schedule(QueueMessage(body="x"), datetime.now(UTC))

        assert number == 11

    @pytest.mark.asyncio
    async def test_settles_on_originating_receiver(
        self, sb_transport: ServiceBusTransport, fake_client: FakeServiceBusClient
    ) -> None:
        dead = (await sb_transport.receive(sub_queue=SubQueue.DEAD_LETTER))[0]
        active = (await sb_transport.receive())[0]

        await sb_transport.complete(dead)
        await sb_transport.abandon(active)

        dlq_receiver = next(r for key, r in fake_client.receivers.items() if key is not None)
        active_receiver = fake_client.receivers[None]
        dlq_receiver.complete_message.assert_awaited_once_with(dead.raw)
        active_receiver.abandon_message.assert_awaited_once_with(active.raw)

    @pytest.mark.asyncio
    async def test_dead_letter_passes_reason(
        self, sb_transport: ServiceBusTransport, fake_client: FakeServiceBusClient
    ) -> None:
        message = (await sb_transport.receive())[0]

        await sb_transport.dead_letter(message, "Reason", "Details")

        fake_client.receivers[None].dead_letter_message.assert_awaited_once_with(
            message.raw, reason="Reason", error_description="Details"
        )

    @pytest.mark.asyncio
    async def test_close(
        self, sb_transport: ServiceBusTransport, fake_client: FakeServiceBusClient
    ) -> None:
        await sb_transport.receive()
        await sb_transport.send(QueueMessage(body="x"))

        await sb_transport.close()

        fake_client.sender.close.assert_awaited_once()
        fake_client.receivers[None].close.assert_awaited_once()
        assert fake_client.closed is True
