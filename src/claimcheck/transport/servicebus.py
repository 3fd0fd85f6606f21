"""Azure Service Bus transport using the azure-servicebus aio client."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, cast

from claimcheck.errors import ConfigurationError
from claimcheck.models import InboundMessage, QueueMessage, encode_body
from claimcheck.transport.base import MessageBatch, QueueTransport, SubQueue

logger = logging.getLogger(__name__)


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def _body_bytes(message: Any) -> bytes:
    body = message.body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    # Data bodies arrive as an iterable of sections
    return b"".join(bytes(section) for section in body)


def to_servicebus_message(message: QueueMessage) -> Any:
    """Convert a QueueMessage into an azure.servicebus.ServiceBusMessage."""
    from azure.servicebus import ServiceBusMessage

    return ServiceBusMessage(
        encode_body(message.body),
        application_properties=dict(message.application_properties) or None,
        message_id=message.message_id,
        session_id=message.session_id,
        content_type=message.content_type,
    )


def from_received_message(message: Any, sub_queue: SubQueue) -> InboundMessage:
    """Convert a ServiceBusReceivedMessage into an InboundMessage."""
    properties = {
        _decode(key): _decode(value)
        for key, value in (message.application_properties or {}).items()
    }
    return InboundMessage(
        body=_body_bytes(message),
        application_properties=properties,
        message_id=message.message_id,
        delivery_count=message.delivery_count or 0,
        sequence_number=message.sequence_number,
        content_type=message.content_type,
        session_id=message.session_id,
        dead_letter_reason=message.dead_letter_reason,
        dead_letter_description=message.dead_letter_error_description,
        sub_queue=sub_queue,
        raw=message,
    )


class ServiceBusMessageBatch(MessageBatch):
    """Wraps azure.servicebus ServiceBusMessageBatch."""

    def __init__(self, batch: Any) -> None:
        self._batch = batch
        self._messages: list[QueueMessage] = []

    def try_add(self, message: QueueMessage) -> bool:
        from azure.servicebus.exceptions import MessageSizeExceededError

        try:
            self._batch.add_message(to_servicebus_message(message))
        except MessageSizeExceededError:
            return False
        self._messages.append(message)
        return True

    @property
    def messages(self) -> list[QueueMessage]:
        return list(self._messages)

    @property
    def native(self) -> Any:
        return self._batch


class ServiceBusTransport(QueueTransport):
    """Queue transport for a single Service Bus queue.

    Creates one sender and one receiver per sub-queue lazily. Messages are
    settled on the receiver they were received from.
    """

    def __init__(self, connection_string: str, queue_name: str) -> None:
        if not connection_string:
            raise ConfigurationError("Service Bus connection string is required")
        self.connection_string = connection_string
        self.queue_name = queue_name
        self._client: Any | None = None
        self._sender: Any | None = None
        self._receivers: dict[SubQueue, Any] = {}

    def _get_client(self) -> Any:
        if self._client is None:
            from azure.servicebus.aio import ServiceBusClient

            self._client = ServiceBusClient.from_connection_string(self.connection_string)
        return self._client

    def _get_sender(self) -> Any:
        if self._sender is None:
            self._sender = self._get_client().get_queue_sender(queue_name=self.queue_name)
        return self._sender

    def _get_receiver(self, sub_queue: SubQueue) -> Any:
        receiver = self._receivers.get(sub_queue)
        if receiver is None:
            client = self._get_client()
            if sub_queue == SubQueue.DEAD_LETTER:
                from azure.servicebus import ServiceBusSubQueue

                receiver = client.get_queue_receiver(
                    queue_name=self.queue_name, sub_queue=ServiceBusSubQueue.DEAD_LETTER
                )
            else:
                receiver = client.get_queue_receiver(queue_name=self.queue_name)
            self._receivers[sub_queue] = receiver
        return receiver

    def _receiver_for(self, message: InboundMessage) -> Any:
        sub_queue = message.sub_queue if isinstance(message.sub_queue, SubQueue) else SubQueue.ACTIVE
        return self._get_receiver(sub_queue)

    async def send(self, message: QueueMessage) -> None:
        await self._get_sender().send_messages(to_servicebus_message(message))

    async def schedule(self, message: QueueMessage, enqueue_time: datetime) -> int:
        numbers = await self._get_sender().schedule_messages(
            to_servicebus_message(message), enqueue_time
        )
        return cast(int, numbers[0])

    async def create_batch(self) -> MessageBatch:
        batch = await self._get_sender().create_message_batch()
        return ServiceBusMessageBatch(batch)

    async def send_batch(self, batch: MessageBatch) -> None:
        if isinstance(batch, ServiceBusMessageBatch):
            await self._get_sender().send_messages(batch.native)
        else:
            await self._get_sender().send_messages(
                [to_servicebus_message(m) for m in batch.messages]
            )

    async def receive(
        self,
        max_messages: int = 1,
        max_wait_time: float | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
    ) -> list[InboundMessage]:
        receiver = self._get_receiver(sub_queue)
        messages = await receiver.receive_messages(
            max_message_count=max_messages, max_wait_time=max_wait_time
        )
        return [from_received_message(m, sub_queue) for m in messages]

    async def receive_deferred(self, sequence_numbers: Sequence[int]) -> list[InboundMessage]:
        receiver = self._get_receiver(SubQueue.ACTIVE)
        messages = await receiver.receive_deferred_messages(
            sequence_numbers=list(sequence_numbers)
        )
        return [from_received_message(m, SubQueue.ACTIVE) for m in messages]

    async def complete(self, message: InboundMessage) -> None:
        await self._receiver_for(message).complete_message(message.raw)

    async def abandon(self, message: InboundMessage) -> None:
        await self._receiver_for(message).abandon_message(message.raw)

    async def defer(self, message: InboundMessage) -> None:
        await self._receiver_for(message).defer_message(message.raw)

    async def dead_letter(
        self,
        message: InboundMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        await self._receiver_for(message).dead_letter_message(
            message.raw, reason=reason, error_description=description
        )

    async def renew_lock(self, message: InboundMessage) -> datetime:
        return cast(datetime, await self._receiver_for(message).renew_message_lock(message.raw))

    async def close(self) -> None:
        for receiver in self._receivers.values():
            await receiver.close()
        self._receivers.clear()
        if self._sender is not None:
            await self._sender.close()
            self._sender = None
        if self._client is not None:
            await self._client.close()
            self._client = None
        logger.debug(f"Closed Service Bus transport for {self.queue_name}")
