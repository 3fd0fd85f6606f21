"""Asynchronous claim-check client.

Sends messages through a QueueTransport, offloading bodies that match the
size criteria to a PayloadStore and sending a pointer in their place.
Received pointer messages are rehydrated transparently.

Send path:
    validate properties -> size check -> direct send
                                      -> store payload -> send pointer
                                                        -> on failure: delete payload once

Example:
    async with AsyncOffloadingClient(transport, payload_store, config) as client:
        await client.send_message(large_json, {"orderId": "42"})

        for message in await client.receive_messages(max_messages=10):
            handle(message.body)
            await client.complete_message(message)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from claimcheck.config import ClientConfiguration, get_configuration
from claimcheck.constants import CONTENT_TYPE_PROPERTY
from claimcheck.envelope import (
    EnvelopeBuilder,
    decode_body,
    is_offloaded,
    resolve_content_type,
    strip_internal_properties,
)
from claimcheck.errors import (
    ConfigurationError,
    PayloadNotFoundError,
    ReceiveError,
    SendError,
    StorageError,
)
from claimcheck.models import (
    BlobPointer,
    InboundMessage,
    QueueMessage,
    ReceivedMessage,
    payload_size,
)
from claimcheck.observability.logging import LogContext
from claimcheck.observability.metrics import get_metrics
from claimcheck.observability.tracing import extract_trace_context, get_tracer
from claimcheck.retry import RetryPolicy
from claimcheck.storage.payload_store import PayloadStore
from claimcheck.transport.base import MessageBatch, QueueTransport, SubQueue
from claimcheck.transport.retrying import RetryingTransport
from claimcheck.validation import validate_application_properties

if TYPE_CHECKING:
    from claimcheck.processor import ErrorHandler, MessageProcessor
    from claimcheck.storage.azure import SasPayloadResolver

logger = logging.getLogger(__name__)

MessageHandler = Callable[[ReceivedMessage], Awaitable[None]]


@dataclass
class PreparedMessage:
    """An outgoing message and the pointer to its stored payload, if any."""

    message: QueueMessage
    pointer: BlobPointer | None = None

    @property
    def mode(self) -> str:
        return "offloaded" if self.pointer else "direct"


@dataclass
class _Chunk:
    # batch is None for a message too large for an empty batch
    batch: MessageBatch | None
    items: list[PreparedMessage]


class AsyncOffloadingClient:
    """Claim-check client over a queue transport and a payload store."""

    def __init__(
        self,
        transport: QueueTransport,
        payload_store: PayloadStore | None = None,
        config: ClientConfiguration | None = None,
        *,
        sas_resolver: SasPayloadResolver | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config or get_configuration()
        self.retry_policy = retry_policy or RetryPolicy.from_configuration(self.config)
        self.transport = RetryingTransport(transport, self.retry_policy)
        self.payload_store = payload_store
        self.sas_resolver = sas_resolver

        self._size_criteria = self.config.resolve_size_criteria()
        self._name_resolver = self.config.resolve_blob_name_resolver()
        self._envelope = EnvelopeBuilder(self.config, self.config.resolve_body_replacer())
        self._tracer = get_tracer(__name__, self.config.tracing_enabled)
        self._metrics = get_metrics(self.config.metrics_enabled)

    async def __aenter__(self) -> AsyncOffloadingClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()
        if self.payload_store is not None:
            await self.payload_store.object_store.close()

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def should_offload(
        self, body: bytes | str | None, application_properties: dict[str, Any] | None = None
    ) -> bool:
        if not self.config.payload_support_enabled:
            return False
        return self._size_criteria.should_offload(body, application_properties)

    async def _cleanup_orphan(self, pointer: BlobPointer) -> None:
        """Delete a payload whose pointer message was never sent.

        One attempt, no retry. Failures are logged and never raised so the
        caller sees the original send error.
        """
        if self.payload_store is None:
            return
        try:
            await self.payload_store.delete(pointer)
            self._metrics.orphan_cleanups_total.labels(outcome="success").inc()
            logger.info(f"Cleaned up orphaned payload {pointer}")
        except Exception as e:
            self._metrics.orphan_cleanups_total.labels(outcome="failure").inc()
            logger.warning(f"Failed to clean up orphaned payload {pointer}: {e}")

    async def _signed_uri(self, pointer: BlobPointer) -> str | None:
        if not self.config.sas_enabled or self.payload_store is None:
            return None
        try:
            return await self.payload_store.generate_signed_uri(pointer)
        except Exception as e:
            logger.warning(f"Failed to generate SAS URI for {pointer}, sending without it: {e}")
            return None

    async def prepare_message(
        self,
        body: bytes | str | None,
        application_properties: dict[str, Any] | None = None,
        *,
        message_id: str | None = None,
        session_id: str | None = None,
        content_type: str | None = None,
    ) -> PreparedMessage:
        """Validate, offload if needed, and build the outgoing message.

        Raises:
            InvalidPropertiesError: If the application properties are invalid
            ConfigurationError: If the body must be offloaded but no payload
                store is available
            SendError: If storing the payload fails
        """
        validate_application_properties(
            application_properties,
            self.config.max_allowed_properties,
            reserved=(self.config.message_property_for_blob_sas_uri,),
        )
        content_type = resolve_content_type(body, content_type, self.config)

        if not self.should_offload(body, application_properties):
            message = self._envelope.direct(
                body,
                application_properties,
                content_type=content_type,
                message_id=message_id,
                session_id=session_id,
            )
            return PreparedMessage(message)

        if self.config.receive_only_mode or self.payload_store is None:
            raise ConfigurationError(
                "Message exceeds the size threshold but no payload store is available"
            )

        name_hint = self._name_resolver.resolve(
            QueueMessage(
                body=body if body is not None else "",
                application_properties=dict(application_properties or {}),
                message_id=message_id,
                session_id=session_id,
                content_type=content_type,
            )
        )

        try:
            pointer = await self.retry_policy.run(
                self.payload_store.store,
                name_hint,
                body,
                content_type,
                description="store payload",
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise SendError(f"Failed to store payload: {e}") from e

        try:
            sas_uri = await self._signed_uri(pointer)
            message = self._envelope.offloaded(
                body,
                application_properties,
                pointer,
                content_type=content_type,
                message_id=message_id,
                session_id=session_id,
                sas_uri=sas_uri,
            )
        except Exception as e:
            await self._cleanup_orphan(pointer)
            raise SendError(f"Failed to build pointer message: {e}", pointer) from e

        logger.debug(f"Offloaded {payload_size(body)} byte payload to {pointer}")
        return PreparedMessage(message, pointer)

    async def send_message(
        self,
        body: bytes | str | None,
        application_properties: dict[str, Any] | None = None,
        *,
        message_id: str | None = None,
        session_id: str | None = None,
        content_type: str | None = None,
    ) -> BlobPointer | None:
        """Send a message, offloading its body if it matches the size criteria.

        Returns:
            Pointer to the stored payload, or None if sent inline

        Raises:
            InvalidPropertiesError: If the application properties are invalid
            SendError: If the payload could not be stored or the message
                could not be sent after retries
        """
        with LogContext(message_id=message_id), self._tracer.start_as_current_span(
            "claimcheck.send"
        ) as span:
            prepared = await self.prepare_message(
                body,
                application_properties,
                message_id=message_id,
                session_id=session_id,
                content_type=content_type,
            )
            span.set_attribute("claimcheck.offloaded", prepared.pointer is not None)

            try:
                await self.transport.send(prepared.message)
            except Exception as e:
                span.record_exception(e)
                self._metrics.send_failures_total.labels(mode=prepared.mode).inc()
                if prepared.pointer is not None:
                    await self._cleanup_orphan(prepared.pointer)
                raise SendError(f"Failed to send message: {e}", prepared.pointer) from e

            self._metrics.messages_sent_total.labels(mode=prepared.mode).inc()
            logger.debug(f"Sent {prepared.mode} message")
            return prepared.pointer

    async def send_binary(
        self,
        body: bytes,
        application_properties: dict[str, Any] | None = None,
        *,
        content_type: str | None = None,
        **kwargs: Any,
    ) -> BlobPointer | None:
        """Send a binary body; the receiver gets bytes back."""
        return await self.send_message(
            body, application_properties, content_type=content_type, **kwargs
        )

    async def schedule_message(
        self,
        body: bytes | str | None,
        enqueue_time: datetime,
        application_properties: dict[str, Any] | None = None,
        *,
        message_id: str | None = None,
        session_id: str | None = None,
        content_type: str | None = None,
    ) -> int:
        """Schedule a message for later delivery and return its sequence number."""
        with self._tracer.start_as_current_span("claimcheck.schedule"):
            prepared = await self.prepare_message(
                body,
                application_properties,
                message_id=message_id,
                session_id=session_id,
                content_type=content_type,
            )
            try:
                sequence_number = await self.transport.schedule(prepared.message, enqueue_time)
            except Exception as e:
                self._metrics.send_failures_total.labels(mode=prepared.mode).inc()
                if prepared.pointer is not None:
                    await self._cleanup_orphan(prepared.pointer)
                raise SendError(f"Failed to schedule message: {e}", prepared.pointer) from e

            self._metrics.messages_sent_total.labels(mode=prepared.mode).inc()
            logger.debug(f"Scheduled {prepared.mode} message #{sequence_number} for {enqueue_time}")
            return sequence_number

    async def _pack(self, prepared: list[PreparedMessage]) -> list[_Chunk]:
        chunks: list[_Chunk] = []
        current = _Chunk(await self.transport.create_batch(), [])

        for item in prepared:
            assert current.batch is not None
            if current.batch.try_add(item.message):
                current.items.append(item)
                continue

            if current.items:
                chunks.append(current)
                current = _Chunk(await self.transport.create_batch(), [])
                assert current.batch is not None
                if current.batch.try_add(item.message):
                    current.items.append(item)
                    continue

            logger.warning("Message does not fit an empty batch, sending it alone")
            chunks.append(_Chunk(None, [item]))

        if current.items:
            chunks.append(current)
        return chunks

    async def send_message_batch(
        self,
        bodies: Sequence[bytes | str],
        application_properties: dict[str, Any] | None = None,
    ) -> list[BlobPointer | None]:
        """Send several messages, packing them into as few batches as possible.

        Each body is offloaded independently. If a batch fails, the payloads
        of every message not yet sent are deleted before SendError is raised.

        Returns:
            One pointer (or None for inline messages) per body, in order
        """
        if not bodies:
            return []

        with self._tracer.start_as_current_span("claimcheck.send_batch") as span:
            span.set_attribute("claimcheck.batch_size", len(bodies))
            prepared: list[PreparedMessage] = []
            try:
                for body in bodies:
                    prepared.append(await self.prepare_message(body, application_properties))
                chunks = await self._pack(prepared)
            except Exception:
                for item in prepared:
                    if item.pointer is not None:
                        await self._cleanup_orphan(item.pointer)
                raise

            for index, chunk in enumerate(chunks):
                try:
                    if chunk.batch is None:
                        await self.transport.send(chunk.items[0].message)
                    else:
                        await self.transport.send_batch(chunk.batch)
                except Exception as e:
                    span.record_exception(e)
                    for pending in chunks[index:]:
                        for item in pending.items:
                            self._metrics.send_failures_total.labels(mode=item.mode).inc()
                            if item.pointer is not None:
                                await self._cleanup_orphan(item.pointer)
                    raise SendError(
                        f"Failed to send batch {index + 1}/{len(chunks)}: {e}"
                    ) from e

                for item in chunk.items:
                    self._metrics.messages_sent_total.labels(mode=item.mode).inc()

            logger.debug(f"Sent {len(prepared)} message(s) in {len(chunks)} batch(es)")
            return [item.pointer for item in prepared]

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def _download(self, message: InboundMessage, pointer: BlobPointer) -> bytes | None:
        properties = message.application_properties or {}

        if self.config.receive_only_mode:
            sas_uri = properties.get(self.config.message_property_for_blob_sas_uri)
            if not sas_uri or self.sas_resolver is None:
                raise StorageError(
                    f"Message {message.message_id} has no SAS URI; "
                    "receive-only mode cannot download its payload",
                    pointer,
                )
            try:
                data = await self.retry_policy.run(
                    self.sas_resolver.download, str(sas_uri), description="download payload"
                )
            except FileNotFoundError as e:
                if self.config.ignore_payload_not_found:
                    logger.warning(f"Payload {pointer} not found, ignoring")
                    return None
                raise PayloadNotFoundError(f"Payload not found: {pointer}", pointer) from e
            self._metrics.payloads_retrieved_total.labels(source="sas").inc()
            return data

        if self.payload_store is None:
            raise ConfigurationError("Received an offloaded message but no payload store is set")

        data = await self.retry_policy.run(
            self.payload_store.retrieve, pointer, description="retrieve payload"
        )
        self._metrics.payloads_retrieved_total.labels(source="store").inc()
        return data

    async def reconstruct(self, message: InboundMessage) -> ReceivedMessage:
        """Turn a transport message into a ReceivedMessage, fetching its payload.

        Raises:
            PayloadNotFoundError: If the payload is gone and not ignored
            StorageError: If the payload could not be fetched
        """
        properties = message.application_properties or {}
        user_properties = strip_internal_properties(
            properties, self.config.message_property_for_blob_sas_uri
        )

        if not (self.config.payload_support_enabled and is_offloaded(properties)):
            return ReceivedMessage(
                message_id=message.message_id,
                body=decode_body(message.body, message.content_type),
                application_properties=user_properties,
                dead_letter_reason=message.dead_letter_reason,
                dead_letter_description=message.dead_letter_description,
                delivery_count=message.delivery_count,
                sequence_number=message.sequence_number,
                content_type=message.content_type,
                session_id=message.session_id,
                source=message,
            )

        with LogContext(message_id=message.message_id), self._tracer.start_as_current_span(
            "claimcheck.retrieve", context=extract_trace_context(properties)
        ):
            pointer = BlobPointer.from_json(message.body)
            data = await self._download(message, pointer)

        content_type = properties.get(CONTENT_TYPE_PROPERTY) or message.content_type
        logger.debug(f"Resolved payload from {pointer}")
        return ReceivedMessage(
            message_id=message.message_id,
            body=decode_body(data, content_type),
            application_properties=user_properties,
            payload_from_blob=True,
            blob_pointer=pointer,
            dead_letter_reason=message.dead_letter_reason,
            dead_letter_description=message.dead_letter_description,
            delivery_count=message.delivery_count,
            sequence_number=message.sequence_number,
            content_type=content_type,
            session_id=message.session_id,
            source=message,
        )

    async def receive_raw(
        self,
        max_messages: int = 1,
        max_wait_time: float | None = None,
        sub_queue: SubQueue = SubQueue.ACTIVE,
    ) -> list[InboundMessage]:
        """Receive transport messages without rehydrating them."""
        try:
            return await self.transport.receive(max_messages, max_wait_time, sub_queue)
        except Exception as e:
            raise ReceiveError(f"Failed to receive messages from {sub_queue.value}: {e}") from e

    async def receive_messages(
        self, max_messages: int = 1, max_wait_time: float | None = None
    ) -> list[ReceivedMessage]:
        """Receive messages from the active queue with payloads restored."""
        inbound = await self.receive_raw(max_messages, max_wait_time)
        return [await self.reconstruct(message) for message in inbound]

    async def receive_dead_letter_messages(
        self, max_messages: int = 1, max_wait_time: float | None = None
    ) -> list[ReceivedMessage]:
        """Receive messages from the dead-letter sub-queue with payloads restored."""
        inbound = await self.receive_raw(max_messages, max_wait_time, SubQueue.DEAD_LETTER)
        return [await self.reconstruct(message) for message in inbound]

    async def receive_deferred_messages(
        self, sequence_numbers: Sequence[int]
    ) -> list[ReceivedMessage]:
        """Receive previously deferred messages.

        Messages whose payload cannot be restored are logged and skipped.
        """
        try:
            inbound = await self.transport.receive_deferred(sequence_numbers)
        except Exception as e:
            raise ReceiveError(f"Failed to receive deferred messages: {e}") from e

        received: list[ReceivedMessage] = []
        for message in inbound:
            try:
                received.append(await self.reconstruct(message))
            except Exception as e:
                logger.error(f"Failed to restore deferred message {message.message_id}: {e}")
        return received

    # ------------------------------------------------------------------
    # Settlement and cleanup
    # ------------------------------------------------------------------

    @staticmethod
    def _inbound(message: ReceivedMessage | InboundMessage) -> InboundMessage:
        if isinstance(message, InboundMessage):
            return message
        if message.source is None:
            raise ValueError(f"Message {message.message_id} was not received by this client")
        return message.source

    async def complete_message(self, message: ReceivedMessage | InboundMessage) -> None:
        """Complete a message, deleting its payload if auto cleanup is on."""
        await self.transport.complete(self._inbound(message))
        if self.config.auto_cleanup_on_complete and isinstance(message, ReceivedMessage):
            await self._delete_blob(message)

    async def abandon_message(self, message: ReceivedMessage | InboundMessage) -> None:
        await self.transport.abandon(self._inbound(message))

    async def defer_message(self, message: ReceivedMessage | InboundMessage) -> None:
        await self.transport.defer(self._inbound(message))

    async def dead_letter_message(
        self,
        message: ReceivedMessage | InboundMessage,
        reason: str | None = None,
        description: str | None = None,
    ) -> None:
        """Move a message to the dead-letter sub-queue."""
        reason = reason or self.config.dead_letter_reason
        await self.transport.dead_letter(self._inbound(message), reason, description)
        self._metrics.dead_lettered_total.inc()
        logger.info(f"Dead-lettered message {message.message_id}: {reason}")

    async def renew_message_lock(self, message: ReceivedMessage | InboundMessage) -> datetime:
        return await self.transport.renew_lock(self._inbound(message))

    async def renew_message_lock_batch(
        self, messages: Iterable[ReceivedMessage]
    ) -> dict[str | None, datetime]:
        """Renew several locks; failures are logged and left out of the result."""
        renewed: dict[str | None, datetime] = {}
        for message in messages:
            try:
                renewed[message.message_id] = await self.renew_message_lock(message)
            except Exception as e:
                logger.warning(f"Failed to renew lock for {message.message_id}: {e}")
        return renewed

    async def delete_payload(self, message: ReceivedMessage) -> bool:
        """Delete the stored payload of a received message.

        Returns:
            True if a payload was deleted
        """
        if not self.config.cleanup_blob_on_delete:
            logger.debug("Payload cleanup is disabled, skipping delete")
            return False
        return await self._delete_blob(message)

    async def _delete_blob(self, message: ReceivedMessage) -> bool:
        if not (
            self.config.payload_support_enabled
            and message.payload_from_blob
            and message.blob_pointer is not None
        ):
            return False
        if self.payload_store is None:
            logger.warning(f"No payload store to delete {message.blob_pointer}")
            return False

        try:
            return await self.retry_policy.run(
                self.payload_store.delete, message.blob_pointer, description="delete payload"
            )
        except Exception as e:
            logger.warning(f"Failed to delete payload {message.blob_pointer}: {e}")
            return False

    async def delete_payload_batch(self, messages: Iterable[ReceivedMessage]) -> int:
        """Delete the payloads of several messages and return how many were deleted."""
        deleted = 0
        for message in messages:
            if await self.delete_payload(message):
                deleted += 1
        return deleted

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_messages(
        self,
        handler: MessageHandler,
        error_handler: ErrorHandler | None = None,
        **options: Any,
    ) -> MessageProcessor:
        """Start a processor for the active queue and return it."""
        from claimcheck.processor import MessageProcessor

        processor = MessageProcessor(self, handler, error_handler=error_handler, **options)
        await processor.start()
        return processor

    async def process_dead_letter_messages(
        self,
        handler: MessageHandler,
        error_handler: ErrorHandler | None = None,
        **options: Any,
    ) -> MessageProcessor:
        """Start a processor for the dead-letter sub-queue and return it."""
        from claimcheck.processor import MessageProcessor

        processor = MessageProcessor(
            self,
            handler,
            error_handler=error_handler,
            sub_queue=SubQueue.DEAD_LETTER,
            **options,
        )
        await processor.start()
        return processor
