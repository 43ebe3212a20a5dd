"""Tests for chat_client.messages."""

from datetime import datetime, timezone

import pytest

from chat_client.messages import (
    ConfirmedMessage,
    MessageStatus,
    OptimisticMessage,
    is_temp_id,
    new_temp_id,
)


def message_payload(**overrides):
    payload = {
        "id": 10,
        "chat_id": 3,
        "sender_id": "5b3c9f8e-0000-4000-8000-000000000001",
        "sender": {"id": "5b3c9f8e-0000-4000-8000-000000000001", "name": "Fiona"},
        "message_type": "text",
        "content": "Hello",
        "read": False,
        "created_at": "2026-03-01T12:00:00Z",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# TestTempIds
# =============================================================================


class TestTempIds:
    def test_new_temp_ids_are_unique_and_prefixed(self):
        first, second = new_temp_id(), new_temp_id()

        assert first != second
        assert is_temp_id(first) is True

    @pytest.mark.parametrize("value", [10, "10", None, "abc"])
    def test_server_ids_are_not_temp_ids(self, value):
        assert is_temp_id(value) is False


# =============================================================================
# TestOptimisticMessage
# =============================================================================


class TestOptimisticMessage:
    def test_compose_is_pending(self):
        message = OptimisticMessage.compose(3, 7, "Hi")

        assert message.status is MessageStatus.PENDING
        assert message.key == message.temp_id
        assert message.sender_id == "7"
        assert message.created_at.tzinfo is not None

    def test_failed_round_trip(self):
        pending = OptimisticMessage.compose(3, 7, "Hi")

        failed = pending.as_failed()

        assert failed.is_failed is True
        assert pending.is_failed is False
        assert failed.as_pending().status is MessageStatus.PENDING
        assert failed.temp_id == pending.temp_id


# =============================================================================
# TestConfirmedMessage
# =============================================================================


class TestConfirmedMessage:
    def test_from_payload(self):
        message = ConfirmedMessage.from_payload(message_payload())

        assert message.key == 10
        assert message.chat_id == 3
        assert message.sender_name == "Fiona"
        assert message.status is MessageStatus.CONFIRMED
        assert message.created_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert message.is_system is False

    def test_system_message_without_sender(self):
        message = ConfirmedMessage.from_payload(
            message_payload(sender_id=None, sender=None, message_type="system", content="Ann left")
        )

        assert message.sender_id is None
        assert message.sender_name == ""
        assert message.is_system is True

    def test_stored_temp_id_is_kept(self):
        message = ConfirmedMessage.from_payload(message_payload(client_message_id="tmp-abc"))

        assert message.client_message_id == "tmp-abc"
        assert ConfirmedMessage.from_payload(message_payload()).client_message_id is None
