"""Blocking facade over AsyncOffloadingClient.

The facade owns a private event loop running in a daemon thread. Every call
is submitted to that loop with ``asyncio.run_coroutine_threadsafe`` and the
calling thread blocks on the result, so one client can be shared between
threads.

Example:
    with OffloadingMessageClient(transport, payload_store, config) as client:
        client.send_message(big_document)
        for message in client.receive_messages(max_messages=5):
            client.complete_message(message)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Iterable, Sequence
from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from claimcheck.client import AsyncOffloadingClient
from claimcheck.models import BlobPointer, ReceivedMessage

if TYPE_CHECKING:
    from claimcheck.config import ClientConfiguration
    from claimcheck.processor import ErrorContext, MessageProcessor
    from claimcheck.retry import RetryPolicy
    from claimcheck.storage.azure import SasPayloadResolver
    from claimcheck.storage.payload_store import PayloadStore
    from claimcheck.transport.base import QueueTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessorHandle:
    """Controls a processor started by the blocking client."""

    def __init__(self, client: OffloadingMessageClient, processor: MessageProcessor) -> None:
        self._client = client
        self.processor = processor

    @property
    def is_running(self) -> bool:
        return self.processor.is_running

    def stop(self) -> None:
        """Stop the processor and wait for in-flight messages."""
        if self.processor.is_running:
            self._client._call(self.processor.stop())


class OffloadingMessageClient:
    """Thread-safe blocking claim-check client."""

    def __init__(
        self,
        transport: QueueTransport,
        payload_store: PayloadStore | None = None,
        config: ClientConfiguration | None = None,
        *,
        sas_resolver: SasPayloadResolver | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._async = AsyncOffloadingClient(
            transport,
            payload_store,
            config,
            sas_resolver=sas_resolver,
            retry_policy=retry_policy,
        )
        self._processors: list[ProcessorHandle] = []
        self._closed = False
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="claimcheck-client-loop", daemon=True
        )
        self._thread.start()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _call(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._closed:
            coro.close()
            raise RuntimeError("Client is closed")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    @property
    def config(self) -> ClientConfiguration:
        return self._async.config

    @property
    def async_client(self) -> AsyncOffloadingClient:
        return self._async

    # Send

    def send_message(
        self,
        body: bytes | str | None,
        application_properties: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> BlobPointer | None:
        return self._call(self._async.send_message(body, application_properties, **kwargs))

    def send_binary(
        self,
        body: bytes,
        application_properties: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> BlobPointer | None:
        return self._call(self._async.send_binary(body, application_properties, **kwargs))

    def send_message_batch(
        self,
        bodies: Sequence[bytes | str],
        application_properties: dict[str, Any] | None = None,
    ) -> list[BlobPointer | None]:
        return self._call(self._async.send_message_batch(bodies, application_properties))

    def schedule_message(
        self,
        body: bytes | str | None,
        enqueue_time: datetime,
        application_properties: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> int:
        return self._call(
            self._async.schedule_message(body, enqueue_time, application_properties, **kwargs)
        )

    # Receive

    def receive_messages(
        self, max_messages: int = 1, max_wait_time: float | None = None
    ) -> list[ReceivedMessage]:
        return self._call(self._async.receive_messages(max_messages, max_wait_time))

    def receive_dead_letter_messages(
        self, max_messages: int = 1, max_wait_time: float | None = None
    ) -> list[ReceivedMessage]:
        return self._call(self._async.receive_dead_letter_messages(max_messages, max_wait_time))

    def receive_deferred_messages(self, sequence_numbers: Sequence[int]) -> list[ReceivedMessage]:
        return self._call(self._async.receive_deferred_messages(sequence_numbers))

    # Settlement

    def complete_message(self, message: ReceivedMessage) -> None:
        self._call(self._async.complete_message(message))

    def abandon_message(self, message: ReceivedMessage) -> None:
        self._call(self._async.abandon_message(message))

    def defer_message(self, message: ReceivedMessage) -> None:
        self._call(self._async.defer_message(message))

    def dead_letter_message(
        self,
        message: ReceivedMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        self._call(self._async.dead_letter_message(message, reason, description))

    def renew_message_lock(self, message: ReceivedMessage) -> datetime:
        return self._call(self._async.renew_message_lock(message))

    def renew_message_lock_batch(
        self, messages: Iterable[ReceivedMessage]
    ) -> dict[str | None, datetime]:
        return self._call(self._async.renew_message_lock_batch(list(messages)))

    def delete_payload(self, message: ReceivedMessage) -> bool:
        return self._call(self._async.delete_payload(message))

    def delete_payload_batch(self, messages: Iterable[ReceivedMessage]) -> int:
        return self._call(self._async.delete_payload_batch(list(messages)))

    # Processing

    def _start_processor(
        self,
        handler: Callable[[ReceivedMessage], Any],
        error_handler: Callable[[ErrorContext], Any] | None,
        dead_letter: bool,
        options: dict[str, Any],
    ) -> ProcessorHandle:
        async def handle(message: ReceivedMessage) -> None:
            await asyncio.to_thread(handler, message)

        async def handle_error(context: ErrorContext) -> None:
            if error_handler is not None:
                await asyncio.to_thread(error_handler, context)

        if dead_letter:
            coro = self._async.process_dead_letter_messages(handle, handle_error, **options)
        else:
            coro = self._async.process_messages(handle, handle_error, **options)

        processor_handle = ProcessorHandle(self, self._call(coro))
        self._processors.append(processor_handle)
        return processor_handle

    def process_messages(
        self,
        handler: Callable[[ReceivedMessage], Any],
        error_handler: Callable[[ErrorContext], Any] | None = None,
        **options: Any,
    ) -> ProcessorHandle:
        """Start processing the active queue with a blocking handler."""
        return self._start_processor(handler, error_handler, False, options)

    def process_dead_letter_messages(
        self,
        handler: Callable[[ReceivedMessage], Any],
        error_handler: Callable[[ErrorContext], Any] | None = None,
        **options: Any,
    ) -> ProcessorHandle:
        """Start processing the dead-letter sub-queue with a blocking handler."""
        return self._start_processor(handler, error_handler, True, options)

    # Lifecycle

    def close(self) -> None:
        """Stop processors, close transports and shut down the loop thread."""
        if self._closed:
            return
        try:
            for processor_handle in self._processors:
                processor_handle.stop()
            self._call(self._async.close())
        finally:
            self._closed = True
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()
            logger.debug("Blocking client closed")

    def __enter__(self) -> OffloadingMessageClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
