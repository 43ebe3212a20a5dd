"""
Channel layer fan-out for chat events.

Services call these helpers (inside transaction.on_commit) so that messages
written over HTTP and over the websocket reach room members the same way.
The consumer's handler names follow Channels' convention: an event with
"type": "chat.message" is delivered to ChatConsumer.chat_message.

Groups:
    chat_<chat_id>   every socket that joined the chat's room
    user_<user_id>   every socket of one user (presence, membership and
                     message notices for chats the socket has not joined)

Usage:
    from chat import events

    transaction.on_commit(lambda: events.broadcast_new_message(message, temp_id))
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from rest_framework.utils.encoders import JSONEncoder

from chat.constants import REALTIME_CONFIG

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from chat.models import Message

logger = logging.getLogger(__name__)


def chat_group_name(chat_id) -> str:
    return f"{REALTIME_CONFIG.CHAT_GROUP_PREFIX}_{chat_id}"


def user_group_name(user_id) -> str:
    return f"{REALTIME_CONFIG.USER_GROUP_PREFIX}_{user_id}"


def to_wire(data: Any) -> Any:
    """
    Make serializer output safe for the channel layer.

    channels_redis packs events with msgpack, which cannot encode UUIDs,
    datetimes or Decimals; DRF's JSON encoder knows all of them.
    """
    return json.loads(json.dumps(data, cls=JSONEncoder))


def serialize_message(message: Message) -> dict[str, Any]:
    """Serialize a message into the payload used by new_message and message_ack."""
    from chat.serializers import MessageSerializer

    return to_wire(MessageSerializer(message).data)


def _group_send(group: str, event: dict[str, Any]) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning(f"No channel layer configured; dropping {event['type']} for {group}")
        return
    try:
        async_to_sync(channel_layer.group_send)(group, event)
    except Exception:
        # Rows are already committed; a lost broadcast is recovered by the
        # client's next fetch
        logger.exception(f"Failed to broadcast {event['type']} to {group}")


# =============================================================================
# Room Events
# =============================================================================


def broadcast_new_message(message: Message, temp_id: str | None = None) -> None:
    """
    Deliver a persisted message to its chat room and to every member.

    Sockets in the room get "chat.message". Every member's user group also
    gets a "chat.notice" copy, which the consumer forwards only when the
    socket has not joined the room, so chats that are not open on a device
    still update their unread counts.
    """
    from chat.services import ChatService

    payload = serialize_message(message)
    _group_send(
        chat_group_name(message.chat_id),
        {"type": "chat.message", "message": payload, "temp_id": temp_id},
    )
    notice = {"type": "chat.notice", "message": payload, "temp_id": temp_id}
    for user_id in ChatService.member_ids(message.chat_id):
        _group_send(user_group_name(user_id), notice)
    logger.debug(f"Broadcast message {message.id} to chat {message.chat_id}")


def broadcast_messages_read(chat_id, reader_id, count: int) -> None:
    """Tell a chat room that reader_id has read the chat's messages."""
    _group_send(
        chat_group_name(chat_id),
        {
            "type": "chat.messages_read",
            "chat_id": chat_id,
            "reader_id": str(reader_id),
            "count": count,
        },
    )


def broadcast_participant_left(chat_id, user_id) -> None:
    """Ask the leaver's sockets to drop the chat's room."""
    _group_send(
        user_group_name(user_id),
        {"type": "chat.participant_left", "chat_id": chat_id, "user_id": str(user_id)},
    )


def notify_chat_added(user_id, chat_id) -> None:
    """Tell a user's sockets they now belong to chat_id."""
    _group_send(
        user_group_name(user_id),
        {"type": "chat.added", "chat_id": chat_id},
    )


def broadcast_user_status(user_ids: Iterable, entry: dict[str, Any]) -> None:
    """Send a presence entry to each user who shares a chat with its subject."""
    event = {"type": "user.status", "presence": to_wire(entry)}
    for user_id in user_ids:
        _group_send(user_group_name(user_id), event)
