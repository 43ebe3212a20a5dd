"""
Chat system models.

This module defines the data models for marketplace chat:
- Private chats between exactly two users (at most one per pair)
- Group chats with a name and a mutable member set

Models:
    Chat: Container for messages between participants
    PrivateChatPair: Helper enforcing one private chat per unordered user pair
    Participant: Membership of a user in a chat
    Message: Individual, immutable message within a chat

Design Decisions:
    - Private chats have fixed membership: they are deleted, never left
    - A group chat is deleted when its last participant leaves
    - Deleting a chat cascades to its participants, messages and pair row
    - Messages are immutable apart from the read flag, which only goes
      false -> true
    - Display name, avatar and last-seen live on User; online state lives
      in the presence cache
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.models import BaseModel

if TYPE_CHECKING:
    from authentication.models import User


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message
    SYSTEM: Auto-generated event message (e.g. "Ada joined")
    """

    TEXT = "text", "Text"
    SYSTEM = "system", "System"


class Chat(BaseModel):
    """
    A chat between two or more users.

    Chat Kinds:
        Private (is_group=False): Exactly 2 participants, immutable membership,
            no name. Unique per user pair (enforced via PrivateChatPair).

        Group (is_group=True): Named chat whose members can add others and
            leave. Deleted when no participants remain.

    Fields:
        name: Group name (empty string for private chats)
        is_group: Chat kind
        created_by: User who created the chat
        participant_count: Cached count of participants
        last_message_at: Timestamp of most recent message (for sorting)

    Relationships:
        participants: Participant rows for this chat
        messages: Message rows for this chat
        private_pair: PrivateChatPair if the chat is private
    """

    name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Name for group chats (empty for private)",
    )

    is_group = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Group chat (True) or private chat (False)",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_chats",
        help_text="User who created this chat",
    )

    participant_count = models.PositiveIntegerField(
        default=0,
        help_text="Current number of participants (cached)",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting chat lists)",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="Participant",
        related_name="chats",
    )

    class Meta:
        db_table = "chat_chat"
        ordering = ["-last_message_at", "-created_at"]

    def __str__(self) -> str:
        if not self.is_group:
            return f"Private({self.pk})"
        if self.name:
            return f"Group: {self.name}"
        return f"Group({self.pk})"

    @property
    def is_private(self) -> bool:
        return not self.is_group

    def has_participant(self, user: User) -> bool:
        return self.participants.filter(user=user).exists()

    def get_counterpart(self, user: User) -> User | None:
        """
        Return the other participant of a private chat.

        Uses prefetched participants when available.

        Returns:
            The other user, or None for group chats
        """
        if self.is_group:
            return None
        for participant in self.participants.all():
            if participant.user_id != user.id:
                return participant.user
        return None


class PrivateChatPair(models.Model):
    """
    Enforces uniqueness of private chats between two users.

    Stores user pairs in canonical order (lower user id first) so that
    whichever user initiates, the same row is found. The unique constraint
    is what makes concurrent "create private chat" requests converge.

    Fields:
        chat: The private chat (OneToOne, serves as PK)
        user_lower: User with lower ID
        user_higher: User with higher ID

    Constraints:
        - UniqueConstraint(user_lower, user_higher): One chat per pair
        - CheckConstraint(user_lower_id < user_higher_id): Canonical order
    """

    chat = models.OneToOneField(
        Chat,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="private_pair",
        help_text="The private chat this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this pair",
    )

    class Meta:
        db_table = "chat_private_chat_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_private_chat_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="private_pair_user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"PrivatePair({self.user_lower_id}, {self.user_higher_id})"

    @staticmethod
    def canonical(user_a_id, user_b_id) -> tuple:
        """Order two user ids the way they are stored."""
        return (user_a_id, user_b_id) if str(user_a_id) < str(user_b_id) else (user_b_id, user_a_id)


class Participant(BaseModel):
    """
    Membership of a user in a chat.

    Rows are deleted when a user leaves a group; a user who is added back
    gets a fresh row.

    Fields:
        chat: Chat this membership belongs to
        user: Participating user
        joined_at: When the user joined

    Constraints:
        - UniqueConstraint(chat, user): a user appears at most once per chat
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Chat this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_participations",
        help_text="Participating user",
    )

    joined_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user joined this chat",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["joined_at", "id"]
        indexes = [
            models.Index(fields=["user", "-joined_at"], name="chat_part_user_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["chat", "user"],
                name="unique_chat_participant",
            ),
        ]

    def __str__(self) -> str:
        return f"Participant: {self.user_id} in {self.chat_id}"


class Message(BaseModel):
    """
    A message within a chat.

    Message Types:
        TEXT: User-authored message
        SYSTEM: Membership event text (sender is NULL)

    Fields:
        chat: Chat this message belongs to
        sender: Author (NULL for system messages)
        message_type: text or system
        content: Message text
        client_message_id: Sender-supplied id (the client temp_id) that makes
            a resend of the same message return the stored row
        read: Whether a participant other than the sender has read it.
              Only ever set from False to True.

    Ordering:
        (created_at, id) ascending; the id breaks ties between messages
        created in the same instant.
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Chat this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message (null for system messages)",
    )

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        help_text="Type of message",
    )

    content = models.TextField(help_text="Message text")

    read = models.BooleanField(
        default=False,
        help_text="Read by a participant other than the sender",
    )

    client_message_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Client temp id; unique per chat and sender when set",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["chat", "created_at", "id"], name="chat_msg_chat_time_idx"),
            models.Index(
                fields=["chat", "read"],
                name="chat_msg_unread_idx",
                condition=Q(read=False),
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["chat", "sender", "client_message_id"],
                condition=Q(client_message_id__isnull=False),
                name="unique_chat_msg_client_id",
            ),
        ]

    def __str__(self) -> str:
        sender = self.sender_id or "system"
        return f"Message({self.pk}) from {sender} in {self.chat_id}"

    @property
    def is_system(self) -> bool:
        return self.message_type == MessageType.SYSTEM
