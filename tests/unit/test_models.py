"""Tests for message and pointer models."""

from __future__ import annotations

import orjson
import pytest

from claimcheck.errors import StorageError
from claimcheck.models import BlobPointer, QueueMessage, ReceivedMessage, encode_body, payload_size


class TestBlobPointer:
    """Tests for BlobPointer."""

    def test_wire_format(self) -> None:
        """JSON uses the camelCase keys other clients expect."""
        pointer = BlobPointer("large-messages", "orders/abc")

        assert orjson.loads(pointer.to_json()) == {
            "containerName": "large-messages",
            "blobName": "orders/abc",
        }

    def test_parse(self) -> None:
        pointer = BlobPointer.from_json('{"containerName":"c","blobName":"b"}')

        assert pointer == BlobPointer("c", "b")

    def test_value_equality_and_hash(self) -> None:
        assert BlobPointer("c", "b") == BlobPointer("c", "b")
        assert len({BlobPointer("c", "b"), BlobPointer("c", "b")}) == 1

    @pytest.mark.parametrize(
        "data",
        ["not json", "[1, 2]", '{"containerName": "c"}', '{"containerName": "c", "blobName": ""}'],
    )
    def test_malformed_input(self, data: str) -> None:
        with pytest.raises(StorageError):
            BlobPointer.from_json(data)


class TestReceivedMessage:
    """Tests for ReceivedMessage."""

    def test_pointer_requires_blob_flag(self) -> None:
        """A pointer on an inline message is rejected."""
        with pytest.raises(ValueError):
            ReceivedMessage(
                message_id="m",
                body="x",
                payload_from_blob=False,
                blob_pointer=BlobPointer("c", "b"),
            )

    def test_offloaded_message(self) -> None:
        message = ReceivedMessage(
            message_id="m", body="x", payload_from_blob=True, blob_pointer=BlobPointer("c", "b")
        )

        assert message.payload_from_blob is True
        assert message.is_dead_lettered is False


class TestBodyHelpers:
    """Tests for body encoding helpers."""

    def test_utf8_size(self) -> None:
        assert payload_size("é") == 2
        assert payload_size(b"abc") == 3
        assert payload_size(None) == 0

    def test_encode(self) -> None:
        assert encode_body("hé") == "hé".encode()
        assert encode_body(bytearray(b"x")) == b"x"

    def test_queue_message_size(self) -> None:
        assert QueueMessage(body="abcd").size == 4
