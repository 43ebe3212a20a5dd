"""
Realtime websocket channel for the chat client.

One RealtimeChannel owns one socket to ws/chat/ and multiplexes every chat
room over it. Callers subscribe to server event types and get back a
Subscription handle they release explicitly.

Besides server events, two local event types are emitted:
    reconnected   after a dropped socket was re-opened and rooms re-joined
    disconnected  after reconnection attempts were exhausted
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chat.constants import PRESENCE_CONFIG, REALTIME_CONFIG
from core.exceptions import TransportError, error_from_payload

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Any]

RECONNECTED = "reconnected"
DISCONNECTED = "disconnected"


class Subscription:
    """Handle for one registered callback. Call unsubscribe() to release it."""

    def __init__(self, channel: RealtimeChannel, event_type: str, callback: EventCallback):
        self._channel = channel
        self.event_type = event_type
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._channel._remove_subscription(self)


class RealtimeChannel:
    """
    Authenticated websocket connection with rooms, acks and reconnection.

    Args:
        url: Websocket endpoint, e.g. wss://host/ws/chat/
        token: JWT access token, sent as ?token=
        connector: Coroutine function opening the socket (websockets.connect)
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        max_reconnect_attempts: int = REALTIME_CONFIG.MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = REALTIME_CONFIG.RECONNECT_DELAY_SECONDS,
        backoff_factor: float = REALTIME_CONFIG.RECONNECT_BACKOFF_FACTOR,
        ack_timeout: float = REALTIME_CONFIG.ACK_TIMEOUT_SECONDS,
        heartbeat_interval: float = PRESENCE_CONFIG.HEARTBEAT_INTERVAL_SECONDS,
        connector: Callable[..., Awaitable[Any]] = websockets.connect,
    ):
        self.url = url
        self._token = token
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.backoff_factor = backoff_factor
        self.ack_timeout = ack_timeout
        self.heartbeat_interval = heartbeat_interval
        self._connector = connector

        self._ws = None
        self._connected = False
        self._closing = False
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._pending_acks: dict[str, asyncio.Future] = {}
        self.rooms: set[int] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Open the socket and start reading. Raises TransportError on failure."""
        if self._connected:
            return
        self._closing = False
        try:
            await self._open()
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise TransportError(
                "Could not connect to the realtime channel",
                error_code="CONNECT_FAILED",
                details={"reason": str(exc)},
            ) from exc
        await self._rejoin_rooms()
        self._reader_task = asyncio.create_task(self._run())
        if self.heartbeat_interval:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def close(self) -> None:
        self._closing = True
        self._connected = False
        for task in (self._heartbeat_task, self._reader_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        for task in (self._heartbeat_task, self._reader_task):
            if task is not None and task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat_task = None
        self._reader_task = None
        self._fail_pending_acks("Realtime channel closed")

    async def _open(self) -> None:
        query = urlencode({"token": self._token})
        self._ws = await self._connector(f"{self.url}?{query}")
        self._connected = True
        logger.info(f"Connected to {self.url}")

    async def _run(self) -> None:
        while True:
            try:
                async for raw in self._ws:
                    await self._handle_raw(raw)
            except ConnectionClosed as exc:
                logger.info(f"Realtime channel closed: {exc}")

            self._connected = False
            self._fail_pending_acks("Realtime channel disconnected")
            if self._closing:
                return
            if not await self._reconnect():
                logger.error(
                    f"Giving up on {self.url} after {self.max_reconnect_attempts} attempts"
                )
                await self._emit({"type": DISCONNECTED})
                return

    async def _reconnect(self) -> bool:
        delay = self.reconnect_delay
        for attempt in range(1, self.max_reconnect_attempts + 1):
            await asyncio.sleep(delay)
            if self._closing:
                return False
            try:
                await self._open()
                await self._rejoin_rooms()
            except (OSError, WebSocketException, asyncio.TimeoutError, TransportError) as exc:
                logger.warning(f"Reconnect attempt {attempt} failed: {exc}")
                delay *= self.backoff_factor
                continue

            await self._emit({"type": RECONNECTED, "attempt": attempt})
            return True
        return False

    async def _rejoin_rooms(self) -> None:
        for chat_id in sorted(self.rooms):
            await self._send({"type": "join_chat", "chat_id": chat_id})

    async def _heartbeat_loop(self) -> None:
        while not self._closing:
            await asyncio.sleep(self.heartbeat_interval)
            if self._connected:
                try:
                    await self.heartbeat()
                except TransportError:
                    logger.debug("Heartbeat skipped, socket is down")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event_type: str, callback: EventCallback) -> Subscription:
        subscription = Subscription(self, event_type, callback)
        self._subscriptions[event_type].append(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        handlers = self._subscriptions.get(subscription.event_type, [])
        if subscription in handlers:
            handlers.remove(subscription)

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscriptions.get(event_type, []))

    async def _handle_raw(self, raw) -> None:
        try:
            event = json.loads(raw)
        except ValueError:
            logger.warning("Dropping non-JSON frame")
            return
        if isinstance(event, dict):
            await self._dispatch(event)

    async def _dispatch(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        temp_id = event.get("temp_id")

        if event_type == "message_ack" and temp_id in self._pending_acks:
            future = self._pending_acks.pop(temp_id)
            if not future.done():
                future.set_result(event["message"])
        elif event_type == "error" and temp_id in self._pending_acks:
            future = self._pending_acks.pop(temp_id)
            if not future.done():
                future.set_exception(error_from_payload(event, event.get("status")))

        await self._emit(event)

    async def _emit(self, event: dict[str, Any]) -> None:
        for subscription in list(self._subscriptions.get(event.get("type"), [])):
            if not subscription.active:
                continue
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Subscriber for {event.get('type')} failed")

    # =========================================================================
    # Client Events
    # =========================================================================

    async def join_chat(self, chat_id: int) -> None:
        """Join a chat room. Rooms are re-joined after reconnect."""
        self.rooms.add(chat_id)
        if self._connected:
            await self._send({"type": "join_chat", "chat_id": chat_id})

    async def leave_chat(self, chat_id: int) -> None:
        """Release a chat room. The socket stays open."""
        self.rooms.discard(chat_id)
        if self._connected:
            await self._send({"type": "leave_chat", "chat_id": chat_id})

    async def send_message(self, chat_id: int, content: str, temp_id: str) -> dict[str, Any]:
        """
        Send a message and wait for its acknowledgement.

        Returns:
            The canonical message payload from message_ack

        Raises:
            TransportError: Not connected, socket closed, or no ack in time
            BaseApplicationError: The server rejected the message
        """
        if not self._connected:
            raise TransportError("Realtime channel is not connected", error_code="NOT_CONNECTED")

        future = asyncio.get_running_loop().create_future()
        self._pending_acks[temp_id] = future
        try:
            await self._send(
                {
                    "type": "send_message",
                    "chat_id": chat_id,
                    "content": content,
                    "temp_id": temp_id,
                }
            )
            return await asyncio.wait_for(future, timeout=self.ack_timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                "No acknowledgement from the realtime channel",
                error_code="ACK_TIMEOUT",
                details={"temp_id": temp_id},
            ) from exc
        finally:
            self._pending_acks.pop(temp_id, None)

    async def mark_read(self, chat_id: int) -> None:
        await self._send({"type": "mark_read", "chat_id": chat_id})

    async def heartbeat(self) -> None:
        await self._send({"type": "heartbeat"})

    async def _send(self, event: dict[str, Any]) -> None:
        if self._ws is None or not self._connected:
            raise TransportError("Realtime channel is not connected", error_code="NOT_CONNECTED")
        try:
            await self._ws.send(json.dumps(event))
        except ConnectionClosed as exc:
            self._connected = False
            raise TransportError(
                "Realtime channel closed while sending", error_code="CONNECTION_CLOSED"
            ) from exc

    def _fail_pending_acks(self, reason: str) -> None:
        for temp_id, future in list(self._pending_acks.items()):
            if not future.done():
                future.set_exception(
                    TransportError(reason, error_code="CONNECTION_CLOSED", details={"temp_id": temp_id})
                )
        self._pending_acks.clear()
