"""
Client-side message variants.

A message in local chat state is either:
    OptimisticMessage: rendered before the server confirmed it, keyed by temp_id
    ConfirmedMessage: canonical message from the server, keyed by id

Temp ids are "tmp-<uuid hex>" strings. Server ids are integers, so the two
key spaces never collide.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

TEMP_ID_PREFIX = "tmp-"


class MessageStatus(str, Enum):
    PENDING = "pending"
    FAILED = "failed"
    CONFIRMED = "confirmed"


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    # DRF renders UTC as "...Z"; fromisoformat accepts it from 3.11
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class OptimisticMessage:
    """A message the local user sent that the server has not confirmed yet."""

    temp_id: str
    chat_id: int
    sender_id: str
    content: str
    created_at: datetime
    status: MessageStatus = MessageStatus.PENDING

    @property
    def key(self) -> str:
        return self.temp_id

    @property
    def is_failed(self) -> bool:
        return self.status is MessageStatus.FAILED

    def as_failed(self) -> OptimisticMessage:
        return replace(self, status=MessageStatus.FAILED)

    def as_pending(self) -> OptimisticMessage:
        return replace(self, status=MessageStatus.PENDING)

    @classmethod
    def compose(cls, chat_id: int, sender_id: str, content: str) -> OptimisticMessage:
        return cls(
            temp_id=new_temp_id(),
            chat_id=chat_id,
            sender_id=str(sender_id),
            content=content,
            created_at=datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class ConfirmedMessage:
    """A message as stored by the server."""

    id: int
    chat_id: int
    sender_id: str | None
    sender_name: str
    content: str
    message_type: str
    read: bool
    created_at: datetime | None
    client_message_id: str | None = None

    status = MessageStatus.CONFIRMED

    @property
    def key(self) -> int:
        return self.id

    @property
    def is_system(self) -> bool:
        return self.message_type == "system"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ConfirmedMessage:
        """Build from a MessageSerializer payload (REST or websocket)."""
        sender = payload.get("sender") or {}
        sender_id = payload.get("sender_id")
        return cls(
            id=int(payload["id"]),
            chat_id=int(payload["chat_id"]),
            sender_id=str(sender_id) if sender_id is not None else None,
            sender_name=sender.get("name", ""),
            content=payload.get("content", ""),
            message_type=payload.get("message_type", "text"),
            read=bool(payload.get("read", False)),
            created_at=_parse_datetime(payload.get("created_at")),
            client_message_id=payload.get("client_message_id"),
        )


Message = OptimisticMessage | ConfirmedMessage
