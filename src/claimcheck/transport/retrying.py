"""Retry decoration for queue transports.

RetryingTransport wraps any QueueTransport and runs every broker call under
a RetryPolicy. Callers see the same interface; retries are invisible except
in the logs.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from claimcheck.models import InboundMessage, QueueMessage
from claimcheck.retry import RetryPolicy
from claimcheck.transport.base import MessageBatch, QueueTransport, SubQueue


class RetryingTransport(QueueTransport):
    """Delegate to an inner transport, retrying each call."""

    def __init__(self, inner: QueueTransport, policy: RetryPolicy) -> None:
        self.inner = inner
        self.policy = policy

    async def send(self, message: QueueMessage) -> None:
        await self.policy.run(self.inner.send, message, description="send message")

    async def schedule(self, message: QueueMessage, enqueue_time: datetime) -> int:
        return await self.policy.run(
            self.inner.schedule, message, enqueue_time, description="schedule message"
        )

    async def create_batch(self) -> MessageBatch:
        return await self.policy.run(self.inner.create_batch, description="create batch")

    async def send_batch(self, batch: MessageBatch) -> None:
        await self.policy.run(self.inner.send_batch, batch, description="send batch")

    async def receive(
        self,
        max_messages: int = 1,
        max_wait_time: float | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
    ) -> list[InboundMessage]:
        return await self.policy.run(
            self.inner.receive,
            max_messages,
            max_wait_time,
            sub_queue,
            description="receive messages",
        )

    async def receive_deferred(self, sequence_numbers: Sequence[int]) -> list[InboundMessage]:
        return await self.policy.run(
            self.inner.receive_deferred, sequence_numbers, description="receive deferred"
        )

    async def complete(self, message: InboundMessage) -> None:
        await self.policy.run(self.inner.complete, message, description="complete message")

    async def abandon(self, message: InboundMessage) -> None:
        await self.policy.run(self.inner.abandon, message, description="abandon message")

    async def defer(self, message: InboundMessage) -> None:
        await self.policy.run(self.inner.defer, message, description="defer message")

    async def dead_letter(
        self,
        message: InboundMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        await self.policy.run(
            self.inner.dead_letter,
            message,
            reason,
            description,
            description="dead-letter message",
        )

    async def renew_lock(self, message: InboundMessage) -> datetime:
        return await self.policy.run(self.inner.renew_lock, message, description="renew lock")

    async def close(self) -> None:
        await self.inner.close()
