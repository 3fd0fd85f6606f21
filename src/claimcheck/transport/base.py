"""Queue transport interface.

The offloading client never talks to a broker directly; it goes through a
QueueTransport. Implementations:
- ServiceBusTransport: Azure Service Bus via azure-servicebus aio
- InMemoryQueueTransport: for tests and local development
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from claimcheck.models import InboundMessage, QueueMessage


class SubQueue(str, Enum):
    """Queue a receiver reads from."""

    ACTIVE = "active"
    DEAD_LETTER = "deadletter"


class MessageBatch(ABC):
    """A size-bounded group of messages sent in one call."""

    @abstractmethod
    def try_add(self, message: QueueMessage) -> bool:
        """Add a message if it fits; return False if it does not."""
        pass

    @property
    @abstractmethod
    def messages(self) -> list[QueueMessage]:
        pass

    def __len__(self) -> int:
        return len(self.messages)


class QueueTransport(ABC):
    """Abstract queue transport."""

    @abstractmethod
    async def send(self, message: QueueMessage) -> None:
        pass

    @abstractmethod
    async def schedule(self, message: QueueMessage, enqueue_time: datetime) -> int:
        """Schedule a message and return its sequence number."""
        pass

    @abstractmethod
    async def create_batch(self) -> MessageBatch:
        pass

    @abstractmethod
    async def send_batch(self, batch: MessageBatch) -> None:
        pass

    @abstractmethod
    async def receive(
        self,
        max_messages: int = 1,
        max_wait_time: float | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
    ) -> list[InboundMessage]:
        pass

    @abstractmethod
    async def receive_deferred(self, sequence_numbers: Sequence[int]) -> list[InboundMessage]:
        pass

    @abstractmethod
    async def complete(self, message: InboundMessage) -> None:
        pass

    @abstractmethod
    async def abandon(self, message: InboundMessage) -> None:
        pass

    @abstractmethod
    async def defer(self, message: InboundMessage) -> None:
        pass

    @abstractmethod
    async def dead_letter(
        self,
        message: InboundMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def renew_lock(self, message: InboundMessage) -> datetime:
        """Renew the message lock and return the new expiry."""
        pass

    async def close(self) -> None:
        return None
