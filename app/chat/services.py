"""
Chat system service layer.

This module provides the business logic for the chat system, encapsulating
all operations on chats, participants, messages and presence.

Services:
    ChatService: Chat lifecycle (create with private-pair dedup, list, get, delete)
    ParticipantService: Membership changes (add, leave)
    MessageService: Message log (append, list, mark as read, unread counts)
    PresenceService: Online state and durable last-seen

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures raise core.exceptions (rendered by the API and the consumer)
    - All multi-row writes run in transactions
    - Room broadcasts run after commit, so listeners never see rolled-back rows
    - Membership changes in groups generate system messages

Usage:
    from chat.services import ChatService, MessageService

    # Find or create the private chat between two users
    chat, created = ChatService.create_chat(creator=user, participant_ids=[other.id])

    # Send a message (temp_id is echoed in the broadcast for reconciliation)
    message = MessageService.append(chat.id, sender=user, content="Hi", temp_id="tmp-1")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import IntegrityError
from django.db.models import F, Prefetch
from django.utils import timezone

from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from core.services import BaseService

from chat import events
from chat.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
from chat.models import Chat, Message, MessageType, Participant, PrivateChatPair

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)


def _get_chat(chat_id, for_update: bool = False) -> Chat:
    queryset = Chat.objects.select_for_update() if for_update else Chat.objects
    chat = queryset.filter(id=chat_id).first()
    if chat is None:
        raise NotFoundError(
            "Chat not found",
            error_code="CHAT_NOT_FOUND",
            details={"chat_id": chat_id},
        )
    return chat


def _require_participant(chat: Chat, user: User) -> None:
    if not Participant.objects.filter(chat=chat, user=user).exists():
        raise ForbiddenError(
            "You are not a participant in this chat",
            error_code="NOT_PARTICIPANT",
            details={"chat_id": chat.id},
        )


class ChatService(BaseService):
    """
    Service for chat lifecycle operations.

    Methods:
        create_chat: Create a group chat or find-or-create a private chat
        get_or_create_private: Race-safe private chat lookup/creation
        list_chats: A user's chats, most recent activity first
        get_chat: Fetch a chat the user participates in
        delete_private_chat: Delete a private chat and everything in it
    """

    @classmethod
    def create_chat(
        cls,
        creator: User,
        participant_ids: Iterable,
        name: str = "",
        is_group: bool = False,
    ) -> tuple[Chat, bool]:
        """
        Create a chat, or return the existing private chat for the pair.

        The creator is always a participant, whether or not their id was
        passed in participant_ids.

        Args:
            creator: Requesting user
            participant_ids: User ids to include
            name: Group name (ignored for private chats)
            is_group: Chat kind

        Returns:
            (chat, created) where created is False when an existing private
            chat was returned

        Raises:
            ValidationError: Wrong participant count for the chat kind
            NotFoundError: A participant id is not an active user
        """
        ids = {str(pid) for pid in participant_ids}
        ids.add(str(creator.id))

        if not is_group and len(ids) != 2:
            raise ValidationError(
                "Private chats need exactly two participants",
                error_code="INVALID_PARTICIPANTS",
                details={"participant_count": len(ids)},
            )
        if is_group and len(ids) < 2:
            raise ValidationError(
                "Group chats need at least two participants",
                error_code="INVALID_PARTICIPANTS",
                details={"participant_count": len(ids)},
            )

        User = get_user_model()
        users = list(User.objects.filter(id__in=ids, is_active=True))
        if len(users) != len(ids):
            missing = sorted(ids - {str(u.id) for u in users})
            raise NotFoundError(
                "One or more participants were not found",
                error_code="USER_NOT_FOUND",
                details={"user_ids": missing},
            )

        if not is_group:
            other = next(u for u in users if u.id != creator.id)
            return cls.get_or_create_private(creator, other)

        name = (name or "").strip()[: MESSAGE_CONFIG.MAX_GROUP_NAME_LENGTH]
        with cls.atomic():
            chat = Chat.objects.create(
                name=name,
                is_group=True,
                created_by=creator,
                participant_count=len(users),
            )
            Participant.objects.bulk_create(
                [Participant(chat=chat, user=user) for user in users]
            )

        cls.get_logger().info(
            f"Created group chat {chat.id} '{name}' with {len(users)} participants"
        )
        return chat, True

    @classmethod
    def get_or_create_private(cls, user_a: User, user_b: User) -> tuple[Chat, bool]:
        """
        Return the private chat between two users, creating it if needed.

        Implementation:
            1. Canonicalize order (lower user id first)
            2. Look up PrivateChatPair, locking the row if it exists
            3. If not found, create chat, pair and participants in a savepoint
            4. If the pair insert loses a race (unique constraint), return the
               chat the winning request created

        Returns:
            (chat, created)
        """
        lower_id, higher_id = PrivateChatPair.canonical(user_a.id, user_b.id)

        with cls.atomic():
            existing = (
                PrivateChatPair.objects.select_for_update()
                .select_related("chat")
                .filter(user_lower_id=lower_id, user_higher_id=higher_id)
                .first()
            )
            if existing is not None:
                cls.get_logger().debug(
                    f"Found existing private chat {existing.chat_id} "
                    f"between users {lower_id} and {higher_id}"
                )
                return existing.chat, False

            try:
                with cls.atomic():
                    chat = Chat.objects.create(
                        is_group=False,
                        created_by=user_a,
                        participant_count=2,
                    )
                    PrivateChatPair.objects.create(
                        chat=chat,
                        user_lower_id=lower_id,
                        user_higher_id=higher_id,
                    )
                    Participant.objects.bulk_create(
                        [
                            Participant(chat=chat, user=user_a),
                            Participant(chat=chat, user=user_b),
                        ]
                    )
            except IntegrityError:
                winner = PrivateChatPair.objects.select_related("chat").get(
                    user_lower_id=lower_id, user_higher_id=higher_id
                )
                cls.get_logger().info(
                    f"Private chat race between {lower_id} and {higher_id} "
                    f"resolved to chat {winner.chat_id}"
                )
                return winner.chat, False

        cls.get_logger().info(
            f"Created private chat {chat.id} between users {lower_id} and {higher_id}"
        )
        return chat, True

    @classmethod
    def list_chats(cls, user: User) -> QuerySet[Chat]:
        """Chats the user participates in, most recently active first."""
        return (
            Chat.objects.filter(participants__user=user)
            .prefetch_related(
                Prefetch(
                    "participants",
                    queryset=Participant.objects.select_related("user"),
                )
            )
            .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
        )

    @classmethod
    def get_chat(cls, chat_id, user: User) -> Chat:
        """
        Fetch a chat for a participant.

        Raises:
            NotFoundError: Chat does not exist
            ForbiddenError: User is not a participant
        """
        chat = _get_chat(chat_id)
        _require_participant(chat, user)
        return chat

    @classmethod
    def co_participant_ids(cls, user_id) -> list:
        """Distinct ids of everyone who shares at least one chat with user_id."""
        return list(
            Participant.objects.filter(chat__participants__user_id=user_id)
            .exclude(user_id=user_id)
            .order_by()
            .values_list("user_id", flat=True)
            .distinct()
        )

    @classmethod
    def member_ids(cls, chat_id) -> list:
        return list(
            Participant.objects.filter(chat_id=chat_id).values_list("user_id", flat=True)
        )

    @classmethod
    def delete_private_chat(cls, chat_id, user: User) -> None:
        """
        Delete a private chat with its messages and pair row.

        Raises:
            NotFoundError: Chat does not exist
            ForbiddenError: User is not a participant
            InvalidOperationError: Chat is a group (participants leave instead)
        """
        chat = cls.get_chat(chat_id, user)
        if chat.is_group:
            raise InvalidOperationError(
                "Group chats cannot be deleted; leave the chat instead",
                error_code="NOT_PRIVATE",
            )

        chat_pk = chat.id
        other_ids = list(
            chat.participants.exclude(user=user).values_list("user_id", flat=True)
        )
        with cls.atomic():
            chat.delete()
            for other_id in [user.id, *other_ids]:
                cls.after_commit(
                    lambda uid=other_id: events.broadcast_participant_left(chat_pk, uid)
                )

        cls.get_logger().info(f"Deleted private chat {chat_pk} by user {user.id}")


class ParticipantService(BaseService):
    """
    Service for membership changes in group chats.

    Methods:
        add_participant: Add a user to a group chat
        remove_participant: Remove the requesting user from a group chat (leave)
    """

    @classmethod
    def add_participant(cls, chat_id, user_id, added_by: User) -> Participant:
        """
        Add a user to a group chat.

        Args:
            chat_id: Group chat
            user_id: User to add
            added_by: Requesting user (must be a participant)

        Returns:
            The new Participant

        Raises:
            NotFoundError: Chat or user does not exist
            InvalidOperationError: Chat is private
            ForbiddenError: added_by is not a participant
            ConflictError: User is already a participant
        """
        User = get_user_model()

        try:
            with cls.atomic():
                # Membership changes on one chat run one at a time
                chat = _get_chat(chat_id, for_update=True)

                if not chat.is_group:
                    raise InvalidOperationError(
                        "Cannot add participants to a private chat",
                        error_code="NOT_GROUP",
                    )

                _require_participant(chat, added_by)

                user = User.objects.filter(id=user_id, is_active=True).first()
                if user is None:
                    raise NotFoundError(
                        "User not found",
                        error_code="USER_NOT_FOUND",
                        details={"user_id": str(user_id)},
                    )

                if Participant.objects.filter(chat=chat, user=user).exists():
                    raise ConflictError(
                        "User is already a participant in this chat",
                        error_code="ALREADY_PARTICIPANT",
                    )

                participant = Participant.objects.create(chat=chat, user=user)
                Chat.objects.filter(id=chat.id).update(
                    participant_count=F("participant_count") + 1
                )
                system_message = MessageService.create_system_message(
                    chat, f"{user.display_name} joined"
                )
                cls.after_commit(lambda: events.notify_chat_added(user.id, chat.id))
        except IntegrityError as exc:
            raise ConflictError(
                "User is already a participant in this chat",
                error_code="ALREADY_PARTICIPANT",
            ) from exc

        cls.get_logger().info(
            f"Added user {user.id} to chat {chat.id} by user {added_by.id} "
            f"(system message {system_message.id})"
        )
        return participant

    @classmethod
    def remove_participant(cls, chat_id, user: User) -> bool:
        """
        Remove the requesting user from a group chat.

        When the last participant leaves, the chat and all its messages are
        deleted. Otherwise a "<name> left" system message is recorded.

        Returns:
            True if the chat was deleted because nobody remained

        Raises:
            NotFoundError: Chat does not exist
            ForbiddenError: User is not a participant
            InvalidOperationError: Chat is private
        """
        with cls.atomic():
            # Concurrent leaves count the remaining members one at a time
            chat = _get_chat(chat_id, for_update=True)
            _require_participant(chat, user)

            if not chat.is_group:
                raise InvalidOperationError(
                    "Private chats cannot be left; delete the chat instead",
                    error_code="NOT_GROUP",
                )

            chat_pk = chat.id
            Participant.objects.filter(chat=chat, user=user).delete()
            remaining = Participant.objects.filter(chat=chat).count()

            if remaining == 0:
                chat.delete()
            else:
                Chat.objects.filter(id=chat.id).update(participant_count=remaining)
                MessageService.create_system_message(chat, f"{user.display_name} left")

            cls.after_commit(lambda: events.broadcast_participant_left(chat_pk, user.id))

        if remaining == 0:
            cls.get_logger().info(f"User {user.id} left chat {chat_pk}; chat deleted")
            return True

        cls.get_logger().info(f"User {user.id} left chat {chat_pk} ({remaining} remain)")
        return False


class MessageService(BaseService):
    """
    Service for the append-only message log.

    Methods:
        append: Persist a user message and broadcast it
        list_messages: Messages newest-first, marking them read for the requester
        mark_read: Mark other users' messages in a chat as read
        unread_count: Messages in a chat the user has not read
        recent_messages: Last N messages in chronological order
        create_system_message: Record a membership event (internal)
    """

    @classmethod
    def append(
        cls,
        chat_id,
        sender: User,
        content: str,
        temp_id: str | None = None,
    ) -> Message:
        """
        Append a message to a chat.

        A non-empty temp_id is stored as the message's client_message_id.
        Sending again with the same temp_id (for example over HTTP after the
        socket dropped before the ack) returns the stored message without a
        second row or a second broadcast.

        Args:
            chat_id: Target chat
            sender: Author (must be a participant)
            content: Message text (stripped; must be non-empty)
            temp_id: Client-side optimistic id

        Returns:
            The persisted Message (read=False)

        Raises:
            ValidationError: Non-text, empty or over-long content, or a bad temp_id
            NotFoundError: Chat does not exist
            ForbiddenError: Sender is not a participant
        """
        if content is not None and not isinstance(content, str):
            raise ValidationError(
                "Message content must be text",
                error_code="INVALID_CONTENT",
            )
        content = (content or "").strip()
        if not content:
            raise ValidationError(
                "Message content cannot be empty",
                error_code="EMPTY_CONTENT",
            )
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message content exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
                details={"max_length": MESSAGE_CONFIG.MAX_CONTENT_LENGTH},
            )
        if temp_id is not None and (
            not isinstance(temp_id, str)
            or len(temp_id) > MESSAGE_CONFIG.MAX_CLIENT_MESSAGE_ID_LENGTH
        ):
            raise ValidationError(
                "temp_id must be a string of at most "
                f"{MESSAGE_CONFIG.MAX_CLIENT_MESSAGE_ID_LENGTH} characters",
                error_code="INVALID_TEMP_ID",
            )
        temp_id = temp_id or None

        chat = _get_chat(chat_id)
        _require_participant(chat, sender)

        if temp_id:
            existing = cls._find_resend(chat, sender, temp_id)
            if existing is not None:
                return existing

        try:
            with cls.atomic():
                message = Message.objects.create(
                    chat=chat,
                    sender=sender,
                    message_type=MessageType.TEXT,
                    content=content,
                    client_message_id=temp_id,
                )
                Chat.objects.filter(id=chat.id).update(
                    last_message_at=message.created_at,
                    updated_at=message.created_at,
                )
                cls.after_commit(lambda: events.broadcast_new_message(message, temp_id))
        except IntegrityError:
            # Lost a race with a concurrent send of the same temp_id
            existing = cls._find_resend(chat, sender, temp_id) if temp_id else None
            if existing is None:
                raise
            return existing

        cls.get_logger().debug(f"Message {message.id} appended to chat {chat.id} by {sender.id}")
        return message

    @classmethod
    def _find_resend(cls, chat: Chat, sender: User, temp_id: str) -> Message | None:
        existing = (
            Message.objects.select_related("sender")
            .filter(chat=chat, sender=sender, client_message_id=temp_id)
            .first()
        )
        if existing is not None:
            cls.get_logger().info(
                f"Resend of {temp_id} in chat {chat.id} matched message {existing.id}"
            )
        return existing

    @classmethod
    def list_messages(cls, chat_id, requester: User) -> QuerySet[Message]:
        """
        Return a chat's messages newest-first for pagination.

        Side effect: marks every message not authored by the requester as
        read. Callers present pages in chronological order.

        Raises:
            NotFoundError: Chat does not exist
            ForbiddenError: Requester is not a participant
        """
        chat = _get_chat(chat_id)
        _require_participant(chat, requester)

        cls._mark_read(chat, requester)

        return (
            Message.objects.filter(chat=chat)
            .select_related("sender")
            .order_by("-created_at", "-id")
        )

    @classmethod
    def mark_read(cls, chat_id, reader: User) -> int:
        """
        Mark messages authored by others as read.

        Idempotent: already-read messages are untouched, and read is never
        reset to False.

        Returns:
            Number of messages that changed from unread to read

        Raises:
            NotFoundError: Chat does not exist
            ForbiddenError: Reader is not a participant
        """
        chat = _get_chat(chat_id)
        _require_participant(chat, reader)
        return cls._mark_read(chat, reader)

    @classmethod
    def _mark_read(cls, chat: Chat, reader: User) -> int:
        with cls.atomic():
            updated = (
                Message.objects.filter(chat=chat, read=False)
                .exclude(sender=reader)
                .update(read=True)
            )
            if updated:
                cls.after_commit(
                    lambda: events.broadcast_messages_read(chat.id, reader.id, updated)
                )

        if updated:
            cls.get_logger().debug(f"User {reader.id} read {updated} messages in chat {chat.id}")
        return updated

    @classmethod
    def unread_count(cls, chat: Chat, user: User) -> int:
        return Message.objects.filter(chat=chat, read=False).exclude(sender=user).count()

    @classmethod
    def recent_messages(
        cls,
        chat: Chat,
        limit: int = MESSAGE_CONFIG.DETAIL_RECENT_MESSAGES,
    ) -> list[Message]:
        """Last `limit` messages of a chat, oldest first."""
        newest = list(
            Message.objects.filter(chat=chat)
            .select_related("sender")
            .order_by("-created_at", "-id")[:limit]
        )
        newest.reverse()
        return newest

    @classmethod
    def create_system_message(cls, chat: Chat, content: str) -> Message:
        """
        Record a membership event in the chat's log.

        Must be called inside the caller's transaction; the broadcast is
        deferred until it commits.
        """
        message = Message.objects.create(
            chat=chat,
            sender=None,
            message_type=MessageType.SYSTEM,
            content=content,
        )
        Chat.objects.filter(id=chat.id).update(last_message_at=message.created_at)
        cls.after_commit(lambda: events.broadcast_new_message(message))
        return message


class PresenceService(BaseService):
    """
    Cache-backed presence tracking with durable last-seen.

    Online state is a per-user connection counter in the Django cache
    (django-redis in deployment). A user is online while the counter is
    positive, so several tabs or devices keep them online until the last
    one disconnects. Counters expire after PRESENCE_TTL_SECONDS without a
    heartbeat, which covers workers that die without running disconnect.

    Last-seen is written to User.last_seen on final disconnect and on
    heartbeats, so it survives cache loss and restarts.

    Usage:
        entry = PresenceService.connect(user)      # from consumer.connect
        entry = PresenceService.disconnect(user)   # from consumer.disconnect
        PresenceService.get_presence(user.id)
        # {"user_id": "...", "is_online": True, "last_seen": "..."}
    """

    @staticmethod
    def _connections_key(user_id) -> str:
        return f"{PRESENCE_CONFIG.KEY_PREFIX_USER_CONNECTIONS}:{user_id}"

    @classmethod
    def _entry(cls, user_id, is_online: bool, last_seen) -> dict[str, Any]:
        return {
            "user_id": str(user_id),
            "is_online": is_online,
            "last_seen": last_seen.isoformat() if last_seen else None,
        }

    @classmethod
    def connect(cls, user: User) -> dict[str, Any]:
        """
        Register one realtime connection for user.

        Broadcasts user_status_change to everyone who shares a chat with
        the user when this is the user's first live connection.
        """
        key = cls._connections_key(user.id)
        ttl = PRESENCE_CONFIG.PRESENCE_TTL_SECONDS

        cache.add(key, 0, timeout=ttl)
        try:
            connections = cache.incr(key)
        except ValueError:
            # Expired between add and incr
            cache.set(key, 1, timeout=ttl)
            connections = 1
        cache.touch(key, ttl)

        entry = cls._entry(user.id, True, user.last_seen)
        if connections == 1:
            events.broadcast_user_status(ChatService.co_participant_ids(user.id), entry)
            cls.get_logger().info(f"User {user.id} is online")
        return entry

    @classmethod
    def disconnect(cls, user: User) -> dict[str, Any]:
        """
        Release one realtime connection for user.

        When the last connection closes, last_seen is persisted and
        user_status_change is broadcast.
        """
        key = cls._connections_key(user.id)
        try:
            connections = cache.decr(key)
        except ValueError:
            connections = 0

        if connections > 0:
            return cls._entry(user.id, True, user.last_seen)

        cache.delete(key)
        now = timezone.now()
        get_user_model().objects.filter(id=user.id).update(last_seen=now)
        user.last_seen = now

        entry = cls._entry(user.id, False, now)
        events.broadcast_user_status(ChatService.co_participant_ids(user.id), entry)
        cls.get_logger().info(f"User {user.id} is offline")
        return entry

    @classmethod
    def heartbeat(cls, user: User) -> dict[str, Any]:
        """Keep the connection counter alive and refresh durable last-seen."""
        key = cls._connections_key(user.id)
        if not cache.touch(key, PRESENCE_CONFIG.PRESENCE_TTL_SECONDS):
            cache.set(key, 1, timeout=PRESENCE_CONFIG.PRESENCE_TTL_SECONDS)

        now = timezone.now()
        get_user_model().objects.filter(id=user.id).update(last_seen=now)
        user.last_seen = now
        return cls._entry(user.id, True, now)

    @classmethod
    def is_online(cls, user_id) -> bool:
        return (cache.get(cls._connections_key(user_id)) or 0) > 0

    @classmethod
    def get_presence(cls, user_id) -> dict[str, Any]:
        """
        Presence entry for one user.

        Raises:
            NotFoundError: User does not exist
        """
        row = get_user_model().objects.filter(id=user_id).values("last_seen").first()
        if row is None:
            raise NotFoundError(
                "User not found",
                error_code="USER_NOT_FOUND",
                details={"user_id": str(user_id)},
            )
        return cls._entry(user_id, cls.is_online(user_id), row["last_seen"])

    @classmethod
    def get_bulk_presence(cls, user_ids: Iterable) -> dict[str, dict[str, Any]]:
        """Presence entries keyed by user id string; unknown ids are skipped."""
        user_ids = [str(uid) for uid in user_ids]
        if not user_ids:
            return {}

        counts = cache.get_many([cls._connections_key(uid) for uid in user_ids])
        last_seen_by_id = {
            str(uid): seen
            for uid, seen in get_user_model()
            .objects.filter(id__in=user_ids)
            .values_list("id", "last_seen")
        }
        return {
            uid: cls._entry(
                uid,
                (counts.get(cls._connections_key(uid)) or 0) > 0,
                last_seen,
            )
            for uid, last_seen in last_seen_by_id.items()
        }
