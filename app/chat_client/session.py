"""
Client-side chat session state.

ChatSessionManager keeps the local view of a user's chats and reconciles it
with the server. Outgoing messages follow:

    compose -> OptimisticMessage(pending) -> ConfirmedMessage
                                          -> OptimisticMessage(failed)

Delivery goes over the realtime channel first. A TransportError there
triggers exactly one attempt over the HTTP API with the same temp_id.
Reconciliation is always by temp_id, never by content. The server stores
the temp_id with the message, so a resend over HTTP after the socket
already delivered it returns the same message.

Incoming messages arrive for every chat the user belongs to: through the
room for the active chat and as user-level notices for the rest, which
count as unread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from chat.constants import MESSAGE_CONFIG
from core.exceptions import (
    BaseApplicationError,
    NotFoundError,
    TransportError,
    ValidationError,
)

from chat_client.api import ChatAPIClient
from chat_client.channel import RECONNECTED, RealtimeChannel, Subscription
from chat_client.messages import (
    ConfirmedMessage,
    Message,
    MessageStatus,
    OptimisticMessage,
    is_temp_id,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[str, BaseApplicationError], None]


def _log_notifier(text: str, error: BaseApplicationError) -> None:
    logger.warning(f"{text}: {error}")


@dataclass
class ChatState:
    """Local copy of one chat."""

    id: int
    name: str
    display_name: str
    is_group: bool
    participant_count: int
    participants: dict[str, dict[str, Any]] = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)
    unread_count: int = 0
    last_message_at: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChatState:
        participants = {str(p["id"]): dict(p) for p in payload.get("participants", [])}
        chat = cls(
            id=int(payload["id"]),
            name=payload.get("name", ""),
            display_name=payload.get("display_name", ""),
            is_group=bool(payload.get("is_group")),
            participant_count=payload.get("participant_count", len(participants)),
            participants=participants,
            unread_count=payload.get("unread_count", 0),
            last_message_at=payload.get("last_message_at"),
        )
        for message in payload.get("messages", []):
            chat.messages.append(ConfirmedMessage.from_payload(message))
        return chat

    def update_summary(self, other: ChatState) -> None:
        self.name = other.name
        self.display_name = other.display_name
        self.participant_count = other.participant_count
        self.participants = other.participants
        self.unread_count = other.unread_count
        self.last_message_at = other.last_message_at

    def index_of(self, key) -> int | None:
        for index, message in enumerate(self.messages):
            if message.key == key:
                return index
        return None

    def has_member(self, user_id) -> bool:
        return str(user_id) in self.participants

    def confirmed_for(self, temp_id: str) -> ConfirmedMessage | None:
        for message in self.messages:
            if isinstance(message, ConfirmedMessage) and message.client_message_id == temp_id:
                return message
        return None


class ChatSessionManager:
    """
    Aggregate of local chat state for one signed-in user.

    Args:
        user_id: The signed-in user's id
        api: HTTP client (fallback path and queries)
        channel: Realtime channel (live path and events)
        notifier: Called with (text, error) when a user-visible action fails
    """

    def __init__(
        self,
        user_id,
        api: ChatAPIClient,
        channel: RealtimeChannel,
        notifier: Notifier | None = None,
    ):
        self.user_id = str(user_id)
        self.api = api
        self.channel = channel
        self.notifier = notifier or _log_notifier

        self.chats: dict[int, ChatState] = {}
        self.active_chat_id: int | None = None
        self._session_handles: list[Subscription] = []

    @property
    def active_chat(self) -> ChatState | None:
        if self.active_chat_id is None:
            return None
        return self.chats.get(self.active_chat_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect the channel, register session-wide handlers and load chats."""
        self._session_handles = [
            self.channel.subscribe("new_message", self._on_new_message),
            self.channel.subscribe("messages_read", self._on_messages_read),
            self.channel.subscribe("user_status_change", self._on_user_status_change),
            self.channel.subscribe("chat_added", self._on_chat_added),
            self.channel.subscribe(RECONNECTED, self._on_reconnected),
        ]
        try:
            await self.channel.connect()
        except TransportError as exc:
            # Sends still work over HTTP
            logger.warning(f"Starting without realtime channel: {exc}")
        await self.load_chats()

    async def close(self) -> None:
        await self.deselect_chat()
        for handle in self._session_handles:
            handle.unsubscribe()
        self._session_handles = []
        await self.channel.close()
        self.api.close()

    async def load_chats(self) -> list[ChatState]:
        """Fetch every page of the chat list, keeping loaded messages."""
        page = 1
        ordered: list[ChatState] = []
        while True:
            payload = await asyncio.to_thread(self.api.list_chats, page)
            for item in payload.get("chats", []):
                ordered.append(self._store_chat(item))
            if not payload.get("pagination", {}).get("has_next"):
                break
            page += 1

        seen = {chat.id for chat in ordered}
        for chat_id in list(self.chats):
            if chat_id not in seen and chat_id != self.active_chat_id:
                del self.chats[chat_id]
        return ordered

    def _store_chat(self, payload: dict[str, Any]) -> ChatState:
        incoming = ChatState.from_payload(payload)
        existing = self.chats.get(incoming.id)
        if existing is None:
            self.chats[incoming.id] = incoming
            return incoming
        existing.update_summary(incoming)
        for message in incoming.messages:
            self._apply_confirmed(existing, message)
        return existing

    # =========================================================================
    # Active chat
    # =========================================================================

    async def select_chat(self, chat_id: int) -> ChatState:
        """
        Make a chat active: join its room, fetch history and mark it read.

        History arrives newest-first and is stored oldest-first.
        """
        if self.active_chat_id is not None and self.active_chat_id != chat_id:
            await self.deselect_chat()

        if chat_id not in self.chats:
            self._store_chat(await asyncio.to_thread(self.api.get_chat, chat_id))
        chat = self.chats[chat_id]

        if self.active_chat_id != chat_id:
            self.active_chat_id = chat_id
            try:
                await self.channel.join_chat(chat_id)
            except TransportError as exc:
                # Room is re-joined on reconnect
                logger.info(f"Join of chat {chat_id} deferred: {exc}")

        # Listing marks the other participants' messages read
        payload = await asyncio.to_thread(
            self.api.list_messages, chat_id, 1, MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
        )
        for item in reversed(payload.get("messages", [])):
            self._apply_confirmed(chat, ConfirmedMessage.from_payload(item))
        chat.messages.sort(key=_chronological)
        chat.unread_count = 0
        return chat

    async def deselect_chat(self) -> None:
        """Leave the active chat's room. Its messages still arrive as notices."""
        chat_id, self.active_chat_id = self.active_chat_id, None
        if chat_id is not None:
            try:
                await self.channel.leave_chat(chat_id)
            except TransportError:
                logger.debug(f"Leave of room {chat_id} skipped, socket is down")

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_message(self, content: str, chat_id: int | None = None) -> Message:
        """
        Send a message to a chat (the active chat by default).

        Returns the confirmed message, or the optimistic entry flagged failed
        after both delivery paths failed (the notifier has been called).

        Raises:
            ValidationError: Blank or oversized content, or no chat selected
            NotFoundError: Chat not in local state
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty", error_code="EMPTY_CONTENT")
        if len(text) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )

        chat = self._chat_for_send(chat_id)
        entry = OptimisticMessage.compose(chat.id, self.user_id, text)
        chat.messages.append(entry)
        return await self._deliver(chat, entry)

    async def retry_failed(self, temp_id: str) -> Message:
        chat, index = self._find_failed(temp_id)
        entry = chat.messages[index].as_pending()
        chat.messages[index] = entry
        return await self._deliver(chat, entry)

    def discard_failed(self, temp_id: str) -> None:
        chat, index = self._find_failed(temp_id)
        del chat.messages[index]

    async def _deliver(self, chat: ChatState, entry: OptimisticMessage) -> Message:
        try:
            try:
                payload = await self.channel.send_message(chat.id, entry.content, entry.temp_id)
            except TransportError as exc:
                logger.info(f"Live send of {entry.temp_id} failed ({exc}), using HTTP")
                payload = await asyncio.to_thread(
                    self.api.send_message, chat.id, entry.content, entry.temp_id
                )
        except BaseApplicationError as exc:
            index = chat.index_of(entry.temp_id)
            if index is None:
                # An echo confirmed the message before the ack was lost
                delivered = chat.confirmed_for(entry.temp_id)
                if delivered is not None:
                    return delivered
            failed = entry.as_failed()
            if index is not None:
                chat.messages[index] = failed
            self.notifier("Message could not be sent", exc)
            return failed

        return self._apply_confirmed(chat, ConfirmedMessage.from_payload(payload), entry.temp_id)

    def _chat_for_send(self, chat_id: int | None) -> ChatState:
        chat_id = self.active_chat_id if chat_id is None else chat_id
        if chat_id is None:
            raise ValidationError("No chat selected", error_code="NO_ACTIVE_CHAT")
        chat = self.chats.get(chat_id)
        if chat is None:
            raise NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND")
        return chat

    def _find_failed(self, temp_id: str) -> tuple[ChatState, int]:
        for chat in self.chats.values():
            index = chat.index_of(temp_id)
            if index is not None and chat.messages[index].status is MessageStatus.FAILED:
                return chat, index
        raise NotFoundError("No failed message with that id", error_code="MESSAGE_NOT_FOUND")

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _apply_confirmed(
        self,
        chat: ChatState,
        message: ConfirmedMessage,
        temp_id: str | None = None,
    ) -> ConfirmedMessage:
        """
        Merge a canonical message into local state.

        Replaces the optimistic entry carrying temp_id (or the temp id the
        server stored with the message) in place, otherwise appends unless a
        message with the same id is already present.
        """
        temp_id = temp_id or message.client_message_id
        optimistic_index = chat.index_of(temp_id) if is_temp_id(temp_id) else None
        existing_index = chat.index_of(message.id)

        if existing_index is not None:
            if optimistic_index is not None:
                del chat.messages[optimistic_index]
                existing_index = chat.index_of(message.id)
            chat.messages[existing_index] = message
        elif optimistic_index is not None:
            chat.messages[optimistic_index] = message
        else:
            chat.messages.append(message)

        if message.created_at is not None:
            chat.last_message_at = message.created_at.isoformat()
        return message

    # =========================================================================
    # Channel Events
    # =========================================================================

    async def _on_new_message(self, event: dict[str, Any]) -> None:
        message = ConfirmedMessage.from_payload(event["message"])
        chat = self.chats.get(message.chat_id)
        if chat is None:
            return

        self._apply_confirmed(chat, message, event.get("temp_id"))

        from_other = message.sender_id is not None and message.sender_id != self.user_id
        if from_other and message.chat_id == self.active_chat_id:
            try:
                await self.channel.mark_read(message.chat_id)
            except TransportError:
                logger.debug(f"Read mark for chat {message.chat_id} deferred to reconnect")
        elif from_other:
            chat.unread_count += 1

    def _on_messages_read(self, event: dict[str, Any]) -> None:
        if str(event.get("reader_id")) == self.user_id:
            return
        chat = self.chats.get(int(event["chat_id"]))
        if chat is None:
            return
        for index, message in enumerate(chat.messages):
            if (
                isinstance(message, ConfirmedMessage)
                and message.sender_id == self.user_id
                and not message.read
            ):
                chat.messages[index] = replace(message, read=True)

    def _on_user_status_change(self, event: dict[str, Any]) -> None:
        user_id = str(event.get("user_id"))
        for chat in self.chats.values():
            participant = chat.participants.get(user_id)
            if participant is not None:
                participant["is_online"] = event.get("is_online", False)
                participant["last_seen"] = event.get("last_seen")

    async def _on_chat_added(self, event: dict[str, Any]) -> None:
        if int(event["chat_id"]) not in self.chats:
            await self.load_chats()

    async def _on_reconnected(self, event: dict[str, Any]) -> None:
        if self.active_chat_id is not None:
            await self.channel.mark_read(self.active_chat_id)

    # =========================================================================
    # Chats & participants
    # =========================================================================

    async def create_private_chat(self, user_id) -> ChatState:
        """Open the private chat with a user, reusing a local one if present."""
        for chat in self.chats.values():
            if not chat.is_group and chat.has_member(user_id):
                return chat
        payload, _ = await asyncio.to_thread(self.api.create_chat, [user_id])
        return self._store_chat(payload)

    async def create_group_chat(self, name: str, participant_ids: list) -> ChatState:
        payload, _ = await asyncio.to_thread(
            self.api.create_chat, participant_ids, name, True
        )
        return self._store_chat(payload)

    async def add_participant(self, chat_id: int, user_id) -> dict[str, Any]:
        participant = await asyncio.to_thread(self.api.add_participant, chat_id, user_id)
        chat = self.chats.get(chat_id)
        if chat is not None and not chat.has_member(participant["id"]):
            chat.participants[str(participant["id"])] = participant
            chat.participant_count += 1
        return participant

    async def leave_chat(self, chat_id: int) -> bool:
        """Leave a group chat and drop it locally. Returns True if it was deleted."""
        chat_deleted = await asyncio.to_thread(self.api.leave_chat, chat_id)
        if self.active_chat_id == chat_id:
            await self.deselect_chat()
        self.chats.pop(chat_id, None)
        return chat_deleted

    async def delete_chat(self, chat_id: int) -> None:
        """Delete a private chat for both users and drop it locally."""
        await asyncio.to_thread(self.api.delete_chat, chat_id)
        if self.active_chat_id == chat_id:
            await self.deselect_chat()
        self.chats.pop(chat_id, None)


def _chronological(message: Message):
    # Optimistic entries have no server time yet; they stay after confirmed ones
    if isinstance(message, ConfirmedMessage):
        return (0, message.created_at.timestamp() if message.created_at else 0.0, message.id)
    return (1, message.created_at.timestamp(), 0)
