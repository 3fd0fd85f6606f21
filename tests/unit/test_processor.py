"""Tests for the background message processor."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from claimcheck.client import AsyncOffloadingClient
from claimcheck.models import ReceivedMessage
from claimcheck.processor import ErrorContext, MessageProcessor
from claimcheck.storage.memory import InMemoryObjectStore
from claimcheck.transport.base import SubQueue
from claimcheck.transport.memory import InMemoryQueueTransport

LARGE = "P" * 500

ClientFactory = Callable[..., AsyncOffloadingClient]


class Recorder:
    """Collects handled messages and optionally fails."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[ReceivedMessage] = []

    async def __call__(self, message: ReceivedMessage) -> None:
        self.messages.append(message)
        if self.fail:
            raise RuntimeError("handler exploded")


class TestRunOnce:
    """Tests for a single receive-handle-settle cycle."""

    @pytest.mark.asyncio
    async def test_success_completes(
        self, client: AsyncOffloadingClient, transport: InMemoryQueueTransport
    ) -> None:
        await client.send_message(LARGE)
        await client.send_message("small")
        handler = Recorder()
        processor = MessageProcessor(client, handler)

        assert await processor.run_once() == 2

        assert [m.body for m in handler.messages] == [LARGE, "small"]
        assert processor.processed == 2
        assert processor.failed == 0
        assert transport.calls["complete"] == 2

    @pytest.mark.asyncio
    async def test_failure_dead_letters(
        self, client: AsyncOffloadingClient, transport: InMemoryQueueTransport
    ) -> None:
        await client.send_message(LARGE)
        processor = MessageProcessor(client, Recorder(fail=True))

        await processor.run_once()

        assert processor.failed == 1
        entry = transport.dead_letter_queue[0]
        assert entry.dead_letter_reason == "ProcessingFailure"
        assert entry.dead_letter_description == "Processing failed: handler exploded"

    @pytest.mark.asyncio
    async def test_failure_abandons_when_dead_lettering_disabled(
        self, make_client: ClientFactory, transport: InMemoryQueueTransport
    ) -> None:
        client = make_client(dead_letter_on_failure=False)
        await client.send_message("small")
        processor = MessageProcessor(client, Recorder(fail=True))

        await processor.run_once()

        assert len(transport.active) == 1
        assert len(transport.dead_letter_queue) == 0

    @pytest.mark.asyncio
    async def test_missing_payload_dead_letters(
        self,
        client: AsyncOffloadingClient,
        transport: InMemoryQueueTransport,
        object_store: InMemoryObjectStore,
    ) -> None:
        await client.send_message(LARGE)
        object_store.objects.clear()
        handler = Recorder()
        contexts: list[ErrorContext] = []

        async def on_error(context: ErrorContext) -> None:
            contexts.append(context)

        processor = MessageProcessor(client, handler, error_handler=on_error)
        await processor.run_once()

        assert handler.messages == []
        assert len(transport.dead_letter_queue) == 1
        assert contexts[0].operation == "reconstruct"

    @pytest.mark.asyncio
    async def test_auto_cleanup_on_success(
        self, make_client: ClientFactory, object_store: InMemoryObjectStore
    ) -> None:
        client = make_client(auto_cleanup_on_complete=True)
        await client.send_message(LARGE)

        await MessageProcessor(client, Recorder()).run_once()

        assert len(object_store) == 0

    @pytest.mark.asyncio
    async def test_error_handler_failure_is_contained(
        self, client: AsyncOffloadingClient
    ) -> None:
        await client.send_message("small")

        async def broken(context: ErrorContext) -> None:
            raise ValueError("error handler bug")

        processor = MessageProcessor(client, Recorder(fail=True), error_handler=broken)

        assert await processor.run_once() == 1
        assert processor.failed == 1


class TestDeadLetterProcessing:
    """Tests for processing the dead-letter sub-queue."""

    @pytest.mark.asyncio
    async def test_dead_letter_failure_abandons(
        self, client: AsyncOffloadingClient, transport: InMemoryQueueTransport
    ) -> None:
        await client.send_message(LARGE)
        message = (await client.receive_messages())[0]
        await client.dead_letter_message(message, "Bad")

        processor = MessageProcessor(client, Recorder(fail=True), sub_queue=SubQueue.DEAD_LETTER)
        await processor.run_once()

        assert len(transport.dead_letter_queue) == 1
        assert transport.dead_letter_queue[0].delivery_count == 2

    @pytest.mark.asyncio
    async def test_dead_letter_success_completes(self, client: AsyncOffloadingClient) -> None:
        await client.send_message(LARGE)
        message = (await client.receive_messages())[0]
        await client.dead_letter_message(message, "Bad")
        handler = Recorder()

        processor = MessageProcessor(client, handler, sub_queue=SubQueue.DEAD_LETTER)
        await processor.run_once()

        assert handler.messages[0].body == LARGE
        assert handler.messages[0].dead_letter_reason == "Bad"
        assert await client.receive_dead_letter_messages() == []


class TestLifecycle:
    """Tests for start, stop and the background loop."""

    @pytest.mark.asyncio
    async def test_background_processing(self, client: AsyncOffloadingClient) -> None:
        handler = Recorder()
        processor = await client.process_messages(handler, poll_interval=0.01)
        assert processor.is_running

        await client.send_message("hello")
        for _ in range(100):
            if handler.messages:
                break
            await asyncio.sleep(0.01)
        await processor.stop()

        assert not processor.is_running
        assert [m.body for m in handler.messages] == ["hello"]

    @pytest.mark.asyncio
    async def test_receive_errors_reported_and_loop_continues(
        self, client: AsyncOffloadingClient, transport: InMemoryQueueTransport
    ) -> None:
        transport.fail("receive", ConnectionError("down"), times=3)
        contexts: list[ErrorContext] = []

        async def on_error(context: ErrorContext) -> None:
            contexts.append(context)

        handler = Recorder()
        async with MessageProcessor(
            client, handler, error_handler=on_error, poll_interval=0.01
        ):
            await client.send_message("after outage")
            for _ in range(200):
                if handler.messages:
                    break
                await asyncio.sleep(0.01)

        assert contexts and contexts[0].operation == "receive"
        assert [m.body for m in handler.messages] == ["after outage"]

    @pytest.mark.asyncio
    async def test_dead_letter_processor(self, client: AsyncOffloadingClient) -> None:
        processor = await client.process_dead_letter_messages(Recorder(), poll_interval=0.01)

        assert processor.sub_queue == SubQueue.DEAD_LETTER
        await processor.stop()
