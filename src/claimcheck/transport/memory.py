"""In-memory queue transport.

Mimics the parts of Service Bus the client relies on: peek-lock receive,
settlement, deferral, scheduling, a dead-letter sub-queue and delivery
counts. Suitable for tests and single-process development.

Failures can be injected per operation, optionally for a limited number of
calls:

    transport = InMemoryQueueTransport()
    transport.fail("send", RuntimeError("broker down"), times=2)
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from claimcheck.models import InboundMessage, QueueMessage, encode_body
from claimcheck.transport.base import MessageBatch, QueueTransport, SubQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_BYTES = 1024 * 1024


@dataclass
class QueueEntry:
    """A message held by the in-memory queue."""

    message: QueueMessage
    sequence_number: int
    delivery_count: int = 0
    dead_letter_reason: str | None = None
    dead_letter_description: str | None = None
    sub_queue: SubQueue = SubQueue.ACTIVE


@dataclass
class _Failure:
    error: BaseException
    remaining: int | None


class InMemoryMessageBatch(MessageBatch):
    """Batch bounded by the total UTF-8 size of its bodies."""

    def __init__(self, max_size_bytes: int = DEFAULT_MAX_BATCH_BYTES) -> None:
        self.max_size_bytes = max_size_bytes
        self._messages: list[QueueMessage] = []
        self._size = 0

    def try_add(self, message: QueueMessage) -> bool:
        size = message.size
        if self._size + size > self.max_size_bytes:
            return False
        self._messages.append(message)
        self._size += size
        return True

    @property
    def messages(self) -> list[QueueMessage]:
        return list(self._messages)


class InMemoryQueueTransport(QueueTransport):
    """Queue transport backed by in-process deques."""

    def __init__(
        self,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
        lock_duration: timedelta = timedelta(seconds=60),
    ) -> None:
        self.max_batch_bytes = max_batch_bytes
        self.lock_duration = lock_duration
        self.active: deque[QueueEntry] = deque()
        self.dead_letter_queue: deque[QueueEntry] = deque()
        self.deferred: dict[int, QueueEntry] = {}
        self.scheduled: list[tuple[datetime, QueueEntry]] = []
        self.sent: list[QueueMessage] = []
        self.calls: Counter[str] = Counter()
        self._locked: dict[int, QueueEntry] = {}
        self._failures: dict[str, _Failure] = {}
        self._next_sequence = 1
        self.closed = False

    def fail(self, operation: str, error: BaseException, times: int | None = None) -> None:
        """Make ``operation`` raise ``error``, forever or for ``times`` calls."""
        self._failures[operation] = _Failure(error, times)

    def _record(self, operation: str) -> None:
        self.calls[operation] += 1
        failure = self._failures.get(operation)
        if failure is None:
            return
        if failure.remaining is not None:
            failure.remaining -= 1
            if failure.remaining <= 0:
                del self._failures[operation]
        raise failure.error

    def _enqueue(self, message: QueueMessage) -> QueueEntry:
        entry = QueueEntry(message=message, sequence_number=self._next_sequence)
        self._next_sequence += 1
        return entry

    def _to_inbound(self, entry: QueueEntry) -> InboundMessage:
        message = entry.message
        return InboundMessage(
            body=encode_body(message.body),
            application_properties=dict(message.application_properties),
            message_id=message.message_id,
            delivery_count=entry.delivery_count,
            sequence_number=entry.sequence_number,
            content_type=message.content_type,
            session_id=message.session_id,
            dead_letter_reason=entry.dead_letter_reason,
            dead_letter_description=entry.dead_letter_description,
            sub_queue=entry.sub_queue,
            raw=entry,
        )

    def _release_scheduled(self) -> None:
        now = datetime.now(UTC)
        due = [item for item in self.scheduled if item[0] <= now]
        for item in due:
            self.scheduled.remove(item)
            self.active.append(item[1])

    def _take_locked(self, message: InboundMessage) -> QueueEntry:
        entry = self._locked.pop(message.sequence_number or 0, None)
        if entry is None:
            raise RuntimeError(f"Message lock lost: {message.message_id}")
        return entry

    async def send(self, message: QueueMessage) -> None:
        self._record("send")
        self.sent.append(message)
        self.active.append(self._enqueue(message))

    async def schedule(self, message: QueueMessage, enqueue_time: datetime) -> int:
        self._record("schedule")
        entry = self._enqueue(message)
        self.sent.append(message)
        self.scheduled.append((enqueue_time, entry))
        return entry.sequence_number

    async def create_batch(self) -> MessageBatch:
        return InMemoryMessageBatch(self.max_batch_bytes)

    async def send_batch(self, batch: MessageBatch) -> None:
        self._record("send_batch")
        for message in batch.messages:
            self.sent.append(message)
            self.active.append(self._enqueue(message))

    async def receive(
        self,
        max_messages: int = 1,
        max_wait_time: float | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
    ) -> list[InboundMessage]:
        self._record("receive")
        self._release_scheduled()
        source = self.dead_letter_queue if sub_queue == SubQueue.DEAD_LETTER else self.active

        received: list[InboundMessage] = []
        while source and len(received) < max_messages:
            entry = source.popleft()
            entry.delivery_count += 1
            self._locked[entry.sequence_number] = entry
            received.append(self._to_inbound(entry))
        return received

    async def receive_deferred(self, sequence_numbers: Sequence[int]) -> list[InboundMessage]:
        self._record("receive_deferred")
        received: list[InboundMessage] = []
        for number in sequence_numbers:
            entry = self.deferred.pop(number, None)
            if entry is None:
                continue
            entry.delivery_count += 1
            self._locked[entry.sequence_number] = entry
            received.append(self._to_inbound(entry))
        return received

    async def complete(self, message: InboundMessage) -> None:
        self._record("complete")
        self._take_locked(message)

    async def abandon(self, message: InboundMessage) -> None:
        self._record("abandon")
        entry = self._take_locked(message)
        target = self.dead_letter_queue if entry.sub_queue == SubQueue.DEAD_LETTER else self.active
        target.appendleft(entry)

    async def defer(self, message: InboundMessage) -> None:
        self._record("defer")
        entry = self._take_locked(message)
        self.deferred[entry.sequence_number] = entry

    async def dead_letter(
        self,
        message: InboundMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        self._record("dead_letter")
        entry = self._take_locked(message)
        entry.dead_letter_reason = reason
        entry.dead_letter_description = description
        entry.sub_queue = SubQueue.DEAD_LETTER
        self.dead_letter_queue.append(entry)

    async def renew_lock(self, message: InboundMessage) -> datetime:
        self._record("renew_lock")
        if (message.sequence_number or 0) not in self._locked:
            raise RuntimeError(f"Message lock lost: {message.message_id}")
        return datetime.now(UTC) + self.lock_duration

    async def close(self) -> None:
        self.closed = True
