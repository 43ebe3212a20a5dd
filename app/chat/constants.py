"""
Constants and configuration for the chat module.

This module centralizes configuration values for:
- Message operations (content limits, pagination)
- Presence tracking (cache keys, TTLs, heartbeat)
- Realtime channel (close codes, group names, client retry policy)

Import example:
    from chat.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_CONTENT_LENGTH: Final[int] = 5000  # Characters
    MAX_CLIENT_MESSAGE_ID_LENGTH: Final[int] = 64
    MAX_GROUP_NAME_LENGTH: Final[int] = 100

    # Pagination (GET /chats/<id>/messages/?page=&limit=)
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    # Messages embedded in chat detail responses
    DETAIL_RECENT_MESSAGES: Final[int] = 50


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking."""

    # Connection counters expire if no heartbeat arrives (crashed workers)
    PRESENCE_TTL_SECONDS: Final[int] = 90

    KEY_PREFIX_USER_CONNECTIONS: Final[str] = "presence:user"

    # How often clients should send heartbeat
    HEARTBEAT_INTERVAL_SECONDS: Final[int] = 30


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Configuration shared by the websocket consumer and the chat client."""

    # Close codes
    CLOSE_UNAUTHENTICATED: Final[int] = 4001
    CLOSE_FORBIDDEN: Final[int] = 4003

    # Channel layer group prefixes
    CHAT_GROUP_PREFIX: Final[str] = "chat"
    USER_GROUP_PREFIX: Final[str] = "user"

    # Client reconnection policy
    MAX_RECONNECT_ATTEMPTS: Final[int] = 5
    RECONNECT_DELAY_SECONDS: Final[float] = 1.0
    RECONNECT_BACKOFF_FACTOR: Final[float] = 2.0

    # Client waits this long for message_ack before falling back to HTTP
    ACK_TIMEOUT_SECONDS: Final[float] = 5.0
