"""Background message processor.

Provides a processor that:
- Receives messages from the active queue or the dead-letter sub-queue
- Restores offloaded payloads and hands each message to a handler
- Completes messages on success (with payload cleanup when configured)
- Dead-letters or abandons messages on failure
- Supports graceful shutdown

Example:
    async def handle(message: ReceivedMessage) -> None:
        print(message.body)

    processor = await client.process_messages(handle)
    ...
    await processor.stop()

    # Or as context manager
    async with MessageProcessor(client, handle):
        await asyncio.Event().wait()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Awaitable, Callable

from claimcheck.models import InboundMessage, ReceivedMessage
from claimcheck.observability.logging import LogContext
from claimcheck.transport.base import SubQueue

if TYPE_CHECKING:
    from claimcheck.client import AsyncOffloadingClient, MessageHandler

logger = logging.getLogger(__name__)


@dataclass
class ErrorContext:
    """Details of a processing failure passed to the error handler."""

    error: BaseException
    message_id: str | None
    sub_queue: SubQueue
    operation: str


ErrorHandler = Callable[[ErrorContext], Awaitable[None]]


class MessageProcessor:
    """Receive-handle-settle loop over one queue."""

    def __init__(
        self,
        client: AsyncOffloadingClient,
        handler: MessageHandler,
        *,
        error_handler: ErrorHandler | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
        max_messages: int = 10,
        max_wait_time: float | None = 5.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.handler = handler
        self.error_handler = error_handler
        self.sub_queue = sub_queue
        self.max_messages = max_messages
        self.max_wait_time = max_wait_time
        self.poll_interval = poll_interval

        self.processed = 0
        self.failed = 0
        self._running = False
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start processing in a background task."""
        if self._running:
            return
        self._running = True
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Message processor started on {self.sub_queue.value} queue")

    async def stop(self) -> None:
        """Stop the processor gracefully.

        Messages already received are handled and settled before returning.
        """
        self._running = False
        self._stopped.set()

        if self._task is not None:
            task, self._task = self._task, None
            if task is not asyncio.current_task():
                await asyncio.gather(task, return_exceptions=True)

        logger.info(
            f"Message processor stopped on {self.sub_queue.value} queue "
            f"(processed={self.processed}, failed={self.failed})"
        )

    async def run(self) -> None:
        """Run the processor until stopped."""
        await self.start()
        task = self._task
        try:
            if task is not None:
                await task
        finally:
            await self.stop()

    async def _loop(self) -> None:
        while self._running:
            try:
                received = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error receiving messages: {e}")
                await self._report(ErrorContext(e, None, self.sub_queue, "receive"))
                received = 0

            if received == 0 and self._running:
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    continue

    async def run_once(self) -> int:
        """Receive and process one batch of messages.

        Returns:
            Number of messages received
        """
        inbound = await self.client.receive_raw(
            self.max_messages, self.max_wait_time, self.sub_queue
        )
        for message in inbound:
            with LogContext(message_id=message.message_id):
                succeeded = await self.process(message)
            if succeeded:
                self.processed += 1
            else:
                self.failed += 1
        return len(inbound)

    async def process(self, inbound: InboundMessage) -> bool:
        """Restore, handle and settle a single message.

        Returns:
            True if the handler succeeded and the message was completed
        """
        try:
            message = await self.client.reconstruct(inbound)
        except Exception as e:
            logger.error(f"Failed to restore message {inbound.message_id}: {e}")
            await self.settle_failure(inbound, e)
            await self._report(ErrorContext(e, inbound.message_id, self.sub_queue, "reconstruct"))
            return False

        try:
            await self.handler(message)
        except Exception as e:
            logger.error(f"Handler failed for message {message.message_id}: {e}")
            await self.settle_failure(message, e)
            await self._report(ErrorContext(e, message.message_id, self.sub_queue, "handle"))
            return False

        try:
            await self.client.complete_message(message)
        except Exception as e:
            logger.error(f"Failed to complete message {message.message_id}: {e}")
            await self._report(ErrorContext(e, message.message_id, self.sub_queue, "complete"))
            return False

        return True

    async def settle_failure(
        self, message: ReceivedMessage | InboundMessage, error: BaseException
    ) -> None:
        """Dead-letter or abandon a message whose processing failed.

        Active-queue messages go to the dead-letter sub-queue when
        ``dead_letter_on_failure`` is set. Everything else is abandoned so the
        broker redelivers it.
        """
        config = self.client.config
        try:
            if self.sub_queue == SubQueue.ACTIVE and config.dead_letter_on_failure:
                await self.client.dead_letter_message(
                    message,
                    reason=config.dead_letter_reason,
                    description=f"Processing failed: {error}",
                )
            else:
                await self.client.abandon_message(message)
        except Exception as e:
            logger.error(f"Failed to settle message {message.message_id}: {e}")

    async def _report(self, context: ErrorContext) -> None:
        if self.error_handler is None:
            return
        try:
            await self.error_handler(context)
        except Exception:
            logger.exception("Error in error handler")

    async def __aenter__(self) -> MessageProcessor:
        """Context manager entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit."""
        await self.stop()
