"""
WebSocket consumers for the chat application.

Consumers:
    ChatConsumer: One authenticated socket per client, multiplexing chat rooms

Authentication:
    chat.middleware.JWTAuthMiddleware attaches the user to self.scope["user"].
    Unauthenticated sockets are closed with 4001 before accept.

Channel Groups:
    chat_<chat_id>  joined on join_chat after a membership check
    user_<user_id>  joined on connect; membership, presence and message notices
                    for chats whose room this socket has not joined

Message Types (from client):
    - join_chat      {"chat_id"}                       -> joined_chat
    - leave_chat     {"chat_id"}                       -> left_chat
    - send_message   {"chat_id", "content", "temp_id"} -> message_ack
    - mark_read      {"chat_id"}                       -> read_ack
    - heartbeat      {}                                -> heartbeat_ack

Message Types (to client):
    - new_message         {"message", "temp_id"} (from the room, or from the user
                          group for chats whose room this socket has not joined)
    - messages_read       {"chat_id", "reader_id", "count"}
    - user_status_change  {"user_id", "is_online", "last_seen"}
    - chat_added          {"chat_id"}
    - error               {"error_code", "message", "status", ["temp_id"], ["chat_id"]}
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from core.exceptions import BaseApplicationError, ValidationError

from chat import events
from chat.constants import REALTIME_CONFIG
from chat.services import ChatService, MessageService, PresenceService

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time chat functionality.

    Handles:
        - Connection authentication and presence registration
        - Joining/leaving chat rooms on the same socket
        - Sending messages with acknowledgement keyed by temp_id
        - Read receipts

    Attributes:
        user: Authenticated user (after connect)
        joined_chats: Chat ids whose room this socket is in
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user = None
        self.joined_chats: set[int] = set()
        self.user_group_name: str | None = None

    async def connect(self):
        user = self.scope.get("user")

        if not user or isinstance(user, AnonymousUser) or not user.is_authenticated:
            logger.warning("Rejected unauthenticated websocket connection")
            await self.close(code=REALTIME_CONFIG.CLOSE_UNAUTHENTICATED)
            return

        self.user = user
        self.user_group_name = events.user_group_name(user.id)
        await self.channel_layer.group_add(self.user_group_name, self.channel_name)

        subprotocol = "jwt" if "jwt" in self.scope.get("subprotocols", []) else None
        await self.accept(subprotocol=subprotocol)

        await database_sync_to_async(PresenceService.connect)(user)
        logger.info(f"User {user.id} connected")

    async def disconnect(self, close_code):
        if self.user is None:
            return

        for chat_id in list(self.joined_chats):
            await self.channel_layer.group_discard(
                events.chat_group_name(chat_id), self.channel_name
            )
        self.joined_chats.clear()

        if self.user_group_name:
            await self.channel_layer.group_discard(self.user_group_name, self.channel_name)

        await database_sync_to_async(PresenceService.disconnect)(self.user)
        logger.info(f"User {self.user.id} disconnected ({close_code})")

    async def receive_json(self, content, **kwargs):
        """
        Dispatch a client event to its handler.

        Application errors raised by handlers are reported to the client
        as an error event; the socket stays open.
        """
        if not isinstance(content, dict):
            await self._send_error(ValidationError("Event must be a JSON object"))
            return

        event_type = content.get("type")
        handler = self.client_handlers.get(event_type)
        if handler is None:
            await self._send_error(
                ValidationError(f"Unknown event type: {event_type}", error_code="UNKNOWN_EVENT")
            )
            return

        try:
            await handler(self, content)
        except BaseApplicationError as exc:
            logger.info(f"User {self.user.id} {event_type} rejected: {exc}")
            await self._send_error(
                exc,
                temp_id=content.get("temp_id"),
                chat_id=content.get("chat_id"),
            )

    # =========================================================================
    # Client Events
    # =========================================================================

    async def _handle_join_chat(self, content):
        chat_id = self._chat_id(content)
        if chat_id not in self.joined_chats:
            # Raises NotFoundError / ForbiddenError
            await database_sync_to_async(ChatService.get_chat)(chat_id, self.user)
            await self.channel_layer.group_add(
                events.chat_group_name(chat_id), self.channel_name
            )
            self.joined_chats.add(chat_id)
            logger.debug(f"User {self.user.id} joined room {chat_id}")

        await self.send_json({"type": "joined_chat", "chat_id": chat_id})

    async def _handle_leave_chat(self, content):
        chat_id = self._chat_id(content)
        await self._leave_room(chat_id)
        await self.send_json({"type": "left_chat", "chat_id": chat_id})

    async def _handle_send_message(self, content):
        chat_id = self._chat_id(content)
        temp_id = content.get("temp_id")
        message = await self._append(chat_id, content.get("content", ""), temp_id)
        await self.send_json(
            {
                "type": "message_ack",
                "temp_id": temp_id,
                "message": message,
            }
        )

    async def _handle_mark_read(self, content):
        chat_id = self._chat_id(content)
        count = await database_sync_to_async(MessageService.mark_read)(chat_id, self.user)
        await self.send_json({"type": "read_ack", "chat_id": chat_id, "count": count})

    async def _handle_heartbeat(self, content):
        await database_sync_to_async(PresenceService.heartbeat)(self.user)
        await self.send_json({"type": "heartbeat_ack"})

    client_handlers = {
        "join_chat": _handle_join_chat,
        "leave_chat": _handle_leave_chat,
        "send_message": _handle_send_message,
        "mark_read": _handle_mark_read,
        "heartbeat": _handle_heartbeat,
    }

    # =========================================================================
    # Channel Layer Events
    # =========================================================================

    async def chat_message(self, event):
        await self.send_json(
            {
                "type": "new_message",
                "message": event["message"],
                "temp_id": event.get("temp_id"),
            }
        )

    async def chat_notice(self, event):
        # Sockets in the room already got chat_message
        if int(event["message"]["chat_id"]) in self.joined_chats:
            return
        await self.chat_message(event)

    async def chat_messages_read(self, event):
        await self.send_json(
            {
                "type": "messages_read",
                "chat_id": event["chat_id"],
                "reader_id": event["reader_id"],
                "count": event.get("count", 0),
            }
        )

    async def chat_participant_left(self, event):
        await self._leave_room(int(event["chat_id"]))

    async def chat_added(self, event):
        await self.send_json({"type": "chat_added", "chat_id": event["chat_id"]})

    async def user_status(self, event):
        await self.send_json({"type": "user_status_change", **event["presence"]})

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _chat_id(content) -> int:
        try:
            return int(content.get("chat_id"))
        except (TypeError, ValueError) as exc:
            raise ValidationError("chat_id is required", error_code="INVALID_CHAT_ID") from exc

    async def _leave_room(self, chat_id):
        if chat_id in self.joined_chats:
            await self.channel_layer.group_discard(
                events.chat_group_name(chat_id), self.channel_name
            )
            self.joined_chats.discard(chat_id)

    async def _send_error(self, exc: BaseApplicationError, **extra):
        payload = {
            "type": "error",
            "error_code": exc.error_code,
            "message": exc.message,
            "status": exc.http_status,
        }
        payload.update({key: value for key, value in extra.items() if value is not None})
        await self.send_json(payload)

    @database_sync_to_async
    def _append(self, chat_id, content, temp_id):
        message = MessageService.append(chat_id, self.user, content, temp_id=temp_id)
        return events.serialize_message(message)
