"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Chat management with inline participants
- Message moderation
"""

from django.contrib import admin

from chat.models import Chat, Message, Participant, PrivateChatPair


class ParticipantInline(admin.TabularInline):
    """Inline display of participants in chat admin."""

    model = Participant
    extra = 0
    readonly_fields = ["joined_at"]
    raw_id_fields = ["user"]


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    """Admin interface for Chat model."""

    list_display = [
        "id",
        "is_group",
        "name",
        "participant_count",
        "created_at",
        "last_message_at",
    ]
    list_filter = ["is_group", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = ["created_at", "updated_at", "participant_count", "last_message_at"]
    raw_id_fields = ["created_by"]
    inlines = [ParticipantInline]
    ordering = ["-created_at"]


@admin.register(PrivateChatPair)
class PrivateChatPairAdmin(admin.ModelAdmin):
    """Admin interface for PrivateChatPair model."""

    list_display = ["chat", "user_lower", "user_higher"]
    raw_id_fields = ["chat", "user_lower", "user_higher"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = ["id", "chat", "sender", "message_type", "read", "created_at"]
    list_filter = ["message_type", "read", "created_at"]
    search_fields = ["content"]
    readonly_fields = ["created_at", "updated_at"]
    raw_id_fields = ["chat", "sender"]
    ordering = ["-created_at"]
