"""HTTP API client for the chat service (request/response fallback path)."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import requests

from core.exceptions import TransportError, error_from_payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


class ChatAPIClient:
    """
    Thin wrapper over the /api/v1/ surface.

    Every call returns the payload of a success envelope. Failure envelopes
    are raised as the matching core.exceptions error; network failures and
    non-JSON responses raise TransportError.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        )

    def close(self) -> None:
        self.session.close()

    # =========================================================================
    # Chats
    # =========================================================================

    def list_chats(self, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """Returns {"chats": [...], "pagination": {...}}."""
        _, payload = self._request("GET", "/chats/", params={"page": page, "limit": limit})
        return payload

    def get_chat(self, chat_id: int) -> dict[str, Any]:
        _, payload = self._request("GET", f"/chats/{chat_id}/")
        return payload["chat"]

    def create_chat(
        self,
        participant_ids: list[str | UUID],
        name: str = "",
        is_group: bool = False,
    ) -> tuple[dict[str, Any], bool]:
        """Create or find a chat. Returns (chat, created)."""
        status_code, payload = self._request(
            "POST",
            "/chats/",
            json={
                "participant_ids": [str(user_id) for user_id in participant_ids],
                "name": name,
                "is_group": is_group,
            },
        )
        return payload["chat"], status_code == 201

    def delete_chat(self, chat_id: int) -> None:
        self._request("DELETE", f"/chats/{chat_id}/")

    def add_participant(self, chat_id: int, user_id: str | UUID) -> dict[str, Any]:
        _, payload = self._request(
            "POST", f"/chats/{chat_id}/participants/", json={"user_id": str(user_id)}
        )
        return payload["participant"]

    def leave_chat(self, chat_id: int) -> bool:
        """Leave a group chat. Returns True when the chat was deleted."""
        _, payload = self._request("DELETE", f"/chats/{chat_id}/leave/")
        return bool(payload.get("chat_deleted"))

    def mark_read(self, chat_id: int) -> int:
        _, payload = self._request("POST", f"/chats/{chat_id}/read/")
        return payload.get("marked_read", 0)

    # =========================================================================
    # Messages
    # =========================================================================

    def send_message(
        self, chat_id: int, content: str, temp_id: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"content": content}
        if temp_id:
            body["temp_id"] = temp_id
        _, payload = self._request("POST", f"/chats/{chat_id}/messages/", json=body)
        return payload["chat_message"]

    def list_messages(self, chat_id: int, page: int = 1, limit: int = 50) -> dict[str, Any]:
        """Newest-first page. Returns {"messages": [...], "pagination": {...}}."""
        _, payload = self._request(
            "GET",
            f"/chats/{chat_id}/messages/",
            params={"page": page, "limit": limit},
        )
        return payload

    # =========================================================================
    # Users & presence
    # =========================================================================

    def search_users(self, search: str = "", role: str | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if search:
            params["search"] = search
        if role:
            params["role"] = role
        _, payload = self._request("GET", "/users/", params=params)
        return payload["users"]

    def get_presence(self, user_id: str | UUID) -> dict[str, Any]:
        _, payload = self._request("GET", f"/presence/{user_id}/")
        return payload["presence"]

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs) -> tuple[int, dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            raise TransportError(
                f"Request to {path} failed",
                error_code="REQUEST_FAILED",
                details={"reason": str(exc)},
            ) from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Invalid response from {path}",
                error_code="INVALID_RESPONSE",
                details={"status": resp.status_code},
            ) from exc

        if not resp.ok or not payload.get("success", False):
            raise error_from_payload(payload, resp.status_code)

        return resp.status_code, payload
