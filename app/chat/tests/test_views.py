"""
Tests for the chat REST API.

Covers every endpoint under /api/v1/chats/ plus the response envelopes:
    Success: {"success": true, ...payload}
    Failure: {"success": false, "message": ..., "error_code": ...}
"""

import uuid
from unittest.mock import patch

from chat.models import Chat, Message, MessageType, Participant
from chat.services import MessageService, PresenceService
from chat.tests.factories import GroupChatFactory, MessageFactory, PrivateChatFactory


# =============================================================================
# TestChatCreate
# =============================================================================


class TestChatCreate:
    """
    Tests for POST /api/v1/chats/.

    Verifies:
    - New private chat answers 201, an existing one 200 with the same id
    - Group chats include the caller
    - Invalid participant sets are rejected with the failure envelope
    """

    url = "/api/v1/chats/"

    def test_create_private_chat(self, freelancer_client, freelancer, client_user):
        response = freelancer_client.post(
            self.url, {"participant_ids": [str(client_user.id)]}, format="json"
        )

        assert response.status_code == 201
        assert response.data["success"] is True
        chat = response.data["chat"]
        assert chat["is_group"] is False
        assert chat["display_name"] == "Carl Client"
        assert {p["id"] for p in chat["participants"]} == {str(freelancer.id), str(client_user.id)}
        assert chat["messages"] == []

    def test_existing_private_chat_returns_200(self, client_client, private_chat, freelancer):
        """
        Either side asking again gets the same chat back.

        Why it matters: Two users must never end up with two private chats.
        """
        response = client_client.post(
            self.url, {"participant_ids": [str(freelancer.id)]}, format="json"
        )

        assert response.status_code == 200
        assert response.data["message"] == "Chat already exists"
        assert response.data["chat"]["id"] == private_chat.id
        assert Chat.objects.filter(is_group=False).count() == 1

    def test_create_group_chat(self, freelancer_client, freelancer, client_user, third_user):
        response = freelancer_client.post(
            self.url,
            {
                "participant_ids": [str(client_user.id), str(third_user.id)],
                "name": "Launch",
                "is_group": True,
            },
            format="json",
        )

        assert response.status_code == 201
        chat = response.data["chat"]
        assert chat["name"] == "Launch"
        assert chat["participant_count"] == 3
        assert str(freelancer.id) in {p["id"] for p in chat["participants"]}

    def test_private_chat_with_two_others_rejected(
        self, freelancer_client, client_user, third_user
    ):
        response = freelancer_client.post(
            self.url,
            {"participant_ids": [str(client_user.id), str(third_user.id)]},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["success"] is False
        assert response.data["error_code"] == "INVALID_PARTICIPANTS"

    def test_unknown_participant_is_404(self, freelancer_client):
        response = freelancer_client.post(
            self.url, {"participant_ids": [str(uuid.uuid4())]}, format="json"
        )

        assert response.status_code == 404
        assert response.data["error_code"] == "USER_NOT_FOUND"

    def test_malformed_body_is_validation_error(self, freelancer_client):
        response = freelancer_client.post(
            self.url, {"participant_ids": ["not-a-uuid"]}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert "participant_ids" in response.data["errors"]

    def test_requires_authentication(self, api_client, client_user):
        response = api_client.post(
            self.url, {"participant_ids": [str(client_user.id)]}, format="json"
        )

        assert response.status_code == 401
        assert response.data["success"] is False


# =============================================================================
# TestChatList
# =============================================================================


class TestChatList:
    """
    Tests for GET /api/v1/chats/.

    Verifies:
    - Only the caller's chats are listed, most recent activity first
    - Each entry carries unread count, last message and presence
    - page/limit pagination with the envelope
    """

    url = "/api/v1/chats/"

    def test_lists_only_callers_chats(self, outsider_client, private_chat, group_chat):
        response = outsider_client.get(self.url)

        assert response.status_code == 200
        assert response.data["chats"] == []
        assert response.data["pagination"]["total"] == 0

    def test_most_recent_activity_first(
        self, freelancer_client, freelancer, private_chat, group_chat
    ):
        MessageService.append(private_chat.id, freelancer, "older")
        MessageService.append(group_chat.id, freelancer, "newer")

        response = freelancer_client.get(self.url)

        assert [c["id"] for c in response.data["chats"]] == [group_chat.id, private_chat.id]

    def test_entry_shape(self, client_client, private_chat, freelancer):
        MessageFactory(chat=private_chat, sender=freelancer, content="First")
        MessageFactory(chat=private_chat, sender=freelancer, content="Second")
        PresenceService.connect(freelancer)

        response = client_client.get(self.url)

        entry = response.data["chats"][0]
        assert entry["display_name"] == "Fiona Freelancer"
        assert entry["unread_count"] == 2
        assert entry["last_message"]["content"] == "Second"
        online = {p["id"]: p["is_online"] for p in entry["participants"]}
        assert online[str(freelancer.id)] is True

    def test_pagination(self, freelancer_client, freelancer, client_user):
        for _ in range(3):
            GroupChatFactory(created_by=freelancer, members=[client_user])

        response = freelancer_client.get(self.url, {"page": 2, "limit": 2})

        assert len(response.data["chats"]) == 1
        assert response.data["pagination"] == {
            "page": 2,
            "limit": 2,
            "total": 3,
            "total_pages": 2,
            "has_next": False,
        }


# =============================================================================
# TestChatRetrieve
# =============================================================================


class TestChatRetrieve:
    def test_retrieve_marks_read(self, client_client, private_chat, freelancer, client_user):
        """
        Opening a chat marks the counterpart's messages read.

        Why it matters: unread badges clear as soon as the chat is viewed.
        """
        MessageFactory(chat=private_chat, sender=freelancer)
        own = MessageFactory(chat=private_chat, sender=client_user)

        response = client_client.get(f"/api/v1/chats/{private_chat.id}/")

        assert response.status_code == 200
        assert response.data["chat"]["unread_count"] == 0
        assert [m["read"] for m in response.data["chat"]["messages"]] == [True, False]
        own.refresh_from_db()
        assert own.read is False

    def test_non_participant_is_forbidden(self, outsider_client, private_chat):
        response = outsider_client.get(f"/api/v1/chats/{private_chat.id}/")

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_PARTICIPANT"

    def test_missing_chat_is_404(self, freelancer_client):
        response = freelancer_client.get("/api/v1/chats/999999/")

        assert response.status_code == 404
        assert response.data["error_code"] == "CHAT_NOT_FOUND"


# =============================================================================
# TestChatDestroy
# =============================================================================


class TestChatDestroy:
    def test_delete_private_chat(self, freelancer_client, private_chat, freelancer):
        MessageFactory(chat=private_chat, sender=freelancer)

        response = freelancer_client.delete(f"/api/v1/chats/{private_chat.id}/")

        assert response.status_code == 200
        assert response.data["success"] is True
        assert not Chat.objects.filter(id=private_chat.id).exists()
        assert Message.objects.count() == 0

    def test_group_chat_cannot_be_deleted(self, freelancer_client, group_chat):
        response = freelancer_client.delete(f"/api/v1/chats/{group_chat.id}/")

        assert response.status_code == 400
        assert response.data["error_code"] == "NOT_PRIVATE"
        assert Chat.objects.filter(id=group_chat.id).exists()

    def test_non_participant_cannot_delete(self, outsider_client, private_chat):
        response = outsider_client.delete(f"/api/v1/chats/{private_chat.id}/")

        assert response.status_code == 403


# =============================================================================
# TestChatParticipants
# =============================================================================


class TestChatParticipants:
    """
    Tests for POST /api/v1/chats/{id}/participants/.

    Verifies:
    - Participants can add users to group chats (201)
    - Private chats reject additions
    - Duplicates answer 409
    """

    def test_add_participant(self, freelancer_client, group_chat, third_user):
        response = freelancer_client.post(
            f"/api/v1/chats/{group_chat.id}/participants/",
            {"user_id": str(third_user.id)},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["participant"]["id"] == str(third_user.id)
        assert response.data["participant"]["name"] == "Tina Third"
        assert Message.objects.filter(
            chat=group_chat, message_type=MessageType.SYSTEM, content="Tina Third joined"
        ).exists()

    def test_private_chat_rejects_additions(self, freelancer_client, private_chat, third_user):
        response = freelancer_client.post(
            f"/api/v1/chats/{private_chat.id}/participants/",
            {"user_id": str(third_user.id)},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "NOT_GROUP"

    def test_duplicate_is_conflict(self, freelancer_client, group_chat, client_user):
        response = freelancer_client.post(
            f"/api/v1/chats/{group_chat.id}/participants/",
            {"user_id": str(client_user.id)},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "ALREADY_PARTICIPANT"

    def test_outsider_cannot_add(self, outsider_client, group_chat, third_user):
        response = outsider_client.post(
            f"/api/v1/chats/{group_chat.id}/participants/",
            {"user_id": str(third_user.id)},
            format="json",
        )

        assert response.status_code == 403


# =============================================================================
# TestChatLeave
# =============================================================================


class TestChatLeave:
    def test_leave_group(self, client_client, group_chat, client_user):
        response = client_client.delete(f"/api/v1/chats/{group_chat.id}/leave/")

        assert response.status_code == 200
        assert response.data["chat_deleted"] is False
        assert not Participant.objects.filter(chat=group_chat, user=client_user).exists()

    def test_last_participant_deletes_chat(self, freelancer, client_user, authenticated_client_factory):
        chat = GroupChatFactory(created_by=freelancer, members=[client_user])
        authenticated_client_factory(client_user).delete(f"/api/v1/chats/{chat.id}/leave/")

        response = authenticated_client_factory(freelancer).delete(
            f"/api/v1/chats/{chat.id}/leave/"
        )

        assert response.data["chat_deleted"] is True
        assert not Chat.objects.filter(id=chat.id).exists()

    def test_private_chat_cannot_be_left(self, freelancer_client, private_chat):
        response = freelancer_client.delete(f"/api/v1/chats/{private_chat.id}/leave/")

        assert response.status_code == 400
        assert response.data["error_code"] == "NOT_GROUP"


# =============================================================================
# TestChatRead
# =============================================================================


class TestChatRead:
    def test_mark_read_reports_changed_count(self, client_client, private_chat, freelancer):
        MessageFactory.create_batch(3, chat=private_chat, sender=freelancer)

        first = client_client.post(f"/api/v1/chats/{private_chat.id}/read/")
        second = client_client.post(f"/api/v1/chats/{private_chat.id}/read/")

        assert first.data == {"success": True, "marked_read": 3}
        assert second.data["marked_read"] == 0

    def test_read_broadcasts_after_commit(
        self, client_client, private_chat, freelancer, django_capture_on_commit_callbacks
    ):
        MessageFactory(chat=private_chat, sender=freelancer)

        with patch("chat.services.events.broadcast_messages_read") as broadcast:
            with django_capture_on_commit_callbacks(execute=True):
                client_client.post(f"/api/v1/chats/{private_chat.id}/read/")

        broadcast.assert_called_once()
        chat_id, reader_id, count = broadcast.call_args.args
        assert (chat_id, count) == (private_chat.id, 1)


# =============================================================================
# TestMessages
# =============================================================================


class TestMessages:
    """
    Tests for /api/v1/chats/{id}/messages/.

    Verifies:
    - Listing is newest first, paginated, and marks messages read
    - Sending persists the message and echoes temp_id
    - Blank content and non-participants are rejected
    """

    def url(self, chat):
        return f"/api/v1/chats/{chat.id}/messages/"

    def test_list_newest_first(self, client_client, private_chat, freelancer):
        messages = [
            MessageFactory(chat=private_chat, sender=freelancer, content=f"m{i}")
            for i in range(3)
        ]

        response = client_client.get(self.url(private_chat), {"limit": 2})

        assert response.status_code == 200
        assert [m["id"] for m in response.data["messages"]] == [messages[2].id, messages[1].id]
        assert response.data["pagination"]["has_next"] is True
        assert all(m.read for m in Message.objects.filter(chat=private_chat))

    def test_send_message(self, freelancer_client, private_chat, freelancer):
        response = freelancer_client.post(
            self.url(private_chat), {"content": "  Hello there  ", "temp_id": "tmp-1"}, format="json"
        )

        assert response.status_code == 201
        assert response.data["temp_id"] == "tmp-1"
        body = response.data["chat_message"]
        assert body["content"] == "Hello there"
        assert body["sender_id"] == str(freelancer.id)
        assert body["read"] is False
        private_chat.refresh_from_db()
        assert private_chat.last_message_at is not None

    def test_send_broadcasts_with_temp_id(
        self, freelancer_client, private_chat, django_capture_on_commit_callbacks
    ):
        with patch("chat.services.events.broadcast_new_message") as broadcast:
            with django_capture_on_commit_callbacks(execute=True):
                freelancer_client.post(
                    self.url(private_chat), {"content": "Hi", "temp_id": "tmp-9"}, format="json"
                )

        message, temp_id = broadcast.call_args.args
        assert message.content == "Hi"
        assert temp_id == "tmp-9"

    def test_resend_with_same_temp_id_returns_stored_message(
        self, freelancer_client, private_chat
    ):
        """
        Resending after a lost socket ack does not duplicate the message.

        Why it matters: The client falls back to this endpoint with the same
        temp_id when the socket drops, and the server may already have
        stored the message.
        """
        body = {"content": "Milestone done", "temp_id": "tmp-resend"}

        first = freelancer_client.post(self.url(private_chat), body, format="json")
        second = freelancer_client.post(self.url(private_chat), body, format="json")

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.data["chat_message"]["id"] == first.data["chat_message"]["id"]
        assert second.data["temp_id"] == "tmp-resend"
        assert Message.objects.filter(chat=private_chat).count() == 1

    def test_blank_content_rejected(self, freelancer_client, private_chat):
        response = freelancer_client.post(self.url(private_chat), {"content": "   "}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "EMPTY_CONTENT"
        assert Message.objects.count() == 0

    def test_outsider_cannot_send(self, outsider_client, private_chat):
        response = outsider_client.post(self.url(private_chat), {"content": "Hi"}, format="json")

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_PARTICIPANT"

    def test_outsider_cannot_list(self, outsider_client, private_chat):
        response = outsider_client.get(self.url(private_chat))

        assert response.status_code == 403

    def test_system_message_has_null_sender(self, freelancer_client, group_chat, third_user):
        freelancer_client.post(
            f"/api/v1/chats/{group_chat.id}/participants/",
            {"user_id": str(third_user.id)},
            format="json",
        )

        response = freelancer_client.get(self.url(group_chat))

        system = response.data["messages"][0]
        assert system["message_type"] == "system"
        assert system["sender"] is None
        assert system["sender_id"] is None
