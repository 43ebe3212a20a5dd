"""
Serializers for chat API.

Serializer Hierarchy:
    MessageSerializer: Message with sender summary (also the websocket payload)
    MessageCreateSerializer: Send new message (optionally carrying temp_id)

    ParticipantSerializer: Participant with display info and presence
    ParticipantCreateSerializer: Add participant to group

    ChatListSerializer: List view with last message and unread count
    ChatDetailSerializer: Full details including recent messages
    ChatCreateSerializer: Private or group chat creation

Design Decisions:
    - Read and write serializers are separate for clarity
    - Presence comes from serializer context ("presence": {user_id: entry})
      so a list of chats costs one cache round trip, not one per member
    - Private chats have no stored name; display_name is the counterpart's
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import serializers

from authentication.serializers import UserSummarySerializer
from chat.constants import MESSAGE_CONFIG
from chat.models import Chat, Message, Participant
from chat.services import MessageService, PresenceService

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message serializer.

    Used by the REST API and as the payload of new_message / message_ack
    events. System messages have a null sender.
    """

    chat_id = serializers.IntegerField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True, allow_null=True)
    sender = UserSummarySerializer(read_only=True, allow_null=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "chat_id",
            "sender_id",
            "sender",
            "message_type",
            "content",
            "read",
            "client_message_id",
            "created_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """Validate message creation input."""

    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        allow_blank=True,
        trim_whitespace=False,
    )
    temp_id = serializers.CharField(
        max_length=64,
        required=False,
        allow_blank=True,
        help_text="Client optimistic id; echoed in the broadcast and deduplicates resends",
    )


# =============================================================================
# Participant Serializers
# =============================================================================


class ParticipantSerializer(serializers.ModelSerializer):
    """
    Participant with user info and presence.

    Reads presence from context["presence"] when present, falling back to a
    cache lookup per participant.
    """

    id = serializers.UUIDField(source="user.id", read_only=True)
    name = serializers.CharField(source="user.display_name", read_only=True)
    avatar_url = serializers.CharField(source="user.avatar_url", read_only=True)
    role = serializers.CharField(source="user.role", read_only=True)
    is_online = serializers.SerializerMethodField()
    last_seen = serializers.DateTimeField(source="user.last_seen", read_only=True)

    class Meta:
        model = Participant
        fields = ["id", "name", "avatar_url", "role", "is_online", "last_seen", "joined_at"]
        read_only_fields = fields

    def get_is_online(self, obj: Participant) -> bool:
        presence = self.context.get("presence")
        if presence is not None:
            entry = presence.get(str(obj.user_id))
            return bool(entry and entry["is_online"])
        return PresenceService.is_online(obj.user_id)


class ParticipantCreateSerializer(serializers.Serializer):
    """Validate participant addition input."""

    user_id = serializers.UUIDField(help_text="User to add to the group chat")


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatListSerializer(serializers.ModelSerializer):
    """
    Chat serializer for list views.

    Includes the participant list, last message preview and the caller's
    unread count. Requires context["request"].
    """

    display_name = serializers.SerializerMethodField()
    participants = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Chat
        fields = [
            "id",
            "name",
            "display_name",
            "is_group",
            "participants",
            "participant_count",
            "last_message",
            "last_message_at",
            "unread_count",
            "created_at",
        ]
        read_only_fields = fields

    def _user(self):
        return self.context["request"].user

    def get_display_name(self, obj: Chat) -> str:
        if obj.is_group:
            return obj.name or f"Group ({obj.participant_count} members)"
        counterpart = obj.get_counterpart(self._user())
        return counterpart.display_name if counterpart else "Private chat"

    def get_participants(self, obj: Chat) -> list[dict[str, Any]]:
        participants = obj.participants.all()
        return ParticipantSerializer(participants, many=True, context=self.context).data

    def get_last_message(self, obj: Chat) -> dict[str, Any] | None:
        message = obj.messages.select_related("sender").order_by("-created_at", "-id").first()
        if message is None:
            return None
        return MessageSerializer(message).data

    def get_unread_count(self, obj: Chat) -> int:
        return MessageService.unread_count(obj, self._user())


class ChatDetailSerializer(ChatListSerializer):
    """Chat serializer for detail views: adds recent messages, oldest first."""

    messages = serializers.SerializerMethodField()

    class Meta(ChatListSerializer.Meta):
        fields = ChatListSerializer.Meta.fields + ["messages"]
        read_only_fields = fields

    def get_messages(self, obj: Chat) -> list[dict[str, Any]]:
        return MessageSerializer(MessageService.recent_messages(obj), many=True).data


class ChatCreateSerializer(serializers.Serializer):
    """
    Validate chat creation input.

    The caller is always added to participant_ids by the service.
    """

    participant_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=True,
        help_text="Users to include besides the caller",
    )
    name = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_GROUP_NAME_LENGTH,
        required=False,
        allow_blank=True,
        default="",
    )
    is_group = serializers.BooleanField(required=False, default=False)
