"""
Tests for PresenceService.

Presence is a per-user connection counter in the Django cache (LocMemCache
in tests) plus User.last_seen in the database.

Features tested:
- First connect broadcasts online; extra tabs do not
- Last disconnect persists last_seen and broadcasts offline
- Heartbeats keep the counter alive and refresh last_seen
- Single and bulk presence queries
- GET /api/v1/presence/<user_id>/
"""

import uuid
from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

import pytest
from django.core.cache import cache
from freezegun import freeze_time

from chat.services import PresenceService
from chat.tests.factories import ParticipantFactory
from core.exceptions import NotFoundError


# =============================================================================
# TestPresenceConnect
# =============================================================================


class TestPresenceConnect:
    def test_first_connection_goes_online(
        self, private_chat, group_chat, freelancer, client_user, third_user, outsider
    ):
        """
        Connecting marks the user online for everyone who shares a chat with them.

        Why it matters: Counterparts see the green dot as soon as the user
        opens the app, whichever chat (if any) they have open.
        """
        ParticipantFactory(chat=group_chat, user=third_user)

        with patch("chat.services.events.broadcast_user_status") as broadcast:
            entry = PresenceService.connect(freelancer)

        assert entry["is_online"] is True
        assert entry["user_id"] == str(freelancer.id)
        assert PresenceService.is_online(freelancer.id) is True
        user_ids, sent_entry = broadcast.call_args.args
        # client_user shares two chats but is listed once
        assert sorted(user_ids, key=str) == sorted([client_user.id, third_user.id], key=str)
        assert sent_entry == entry

    def test_second_connection_does_not_rebroadcast(self, freelancer):
        with patch("chat.services.events.broadcast_user_status") as broadcast:
            PresenceService.connect(freelancer)
            PresenceService.connect(freelancer)

        assert broadcast.call_count == 1

    def test_counter_recovers_when_key_vanishes(self, freelancer):
        with patch.object(cache, "incr", side_effect=ValueError("missing")):
            PresenceService.connect(freelancer)

        assert PresenceService.is_online(freelancer.id) is True


# =============================================================================
# TestPresenceDisconnect
# =============================================================================


class TestPresenceDisconnect:
    def test_last_disconnect_goes_offline_and_persists_last_seen(self, private_chat, freelancer):
        """
        The final disconnect records last-seen durably.

        Why it matters: last_seen must survive cache loss and reconnects.
        """
        PresenceService.connect(freelancer)

        with freeze_time("2026-03-01 12:00:00"):
            with patch("chat.services.events.broadcast_user_status") as broadcast:
                entry = PresenceService.disconnect(freelancer)

        freelancer.refresh_from_db()
        assert entry["is_online"] is False
        assert entry["last_seen"] == "2026-03-01T12:00:00+00:00"
        assert freelancer.last_seen == datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)
        assert PresenceService.is_online(freelancer.id) is False
        broadcast.assert_called_once()

    def test_other_tab_keeps_user_online(self, freelancer):
        PresenceService.connect(freelancer)
        PresenceService.connect(freelancer)

        with patch("chat.services.events.broadcast_user_status") as broadcast:
            entry = PresenceService.disconnect(freelancer)

        assert entry["is_online"] is True
        assert PresenceService.is_online(freelancer.id) is True
        broadcast.assert_not_called()

    def test_disconnect_without_counter_goes_offline(self, freelancer):
        entry = PresenceService.disconnect(freelancer)

        assert entry["is_online"] is False
        freelancer.refresh_from_db()
        assert freelancer.last_seen is not None

    def test_last_seen_survives_cache_loss(self, freelancer):
        PresenceService.connect(freelancer)
        PresenceService.disconnect(freelancer)
        cache.clear()

        entry = PresenceService.get_presence(freelancer.id)

        assert entry["is_online"] is False
        assert entry["last_seen"] is not None


# =============================================================================
# TestPresenceHeartbeat
# =============================================================================


class TestPresenceHeartbeat:
    def test_heartbeat_refreshes_last_seen(self, freelancer):
        PresenceService.connect(freelancer)

        with freeze_time("2026-03-01 12:00:30"):
            entry = PresenceService.heartbeat(freelancer)

        freelancer.refresh_from_db()
        assert entry["is_online"] is True
        assert freelancer.last_seen == datetime(2026, 3, 1, 12, 0, 30, tzinfo=dt_timezone.utc)

    def test_heartbeat_restores_expired_counter(self, freelancer):
        PresenceService.heartbeat(freelancer)

        assert PresenceService.is_online(freelancer.id) is True


# =============================================================================
# TestPresenceQueries
# =============================================================================


class TestPresenceQueries:
    def test_get_presence_unknown_user(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            PresenceService.get_presence(uuid.uuid4())

        assert exc_info.value.error_code == "USER_NOT_FOUND"

    def test_bulk_presence(self, freelancer, client_user):
        PresenceService.connect(freelancer)

        entries = PresenceService.get_bulk_presence([freelancer.id, client_user.id, uuid.uuid4()])

        assert set(entries) == {str(freelancer.id), str(client_user.id)}
        assert entries[str(freelancer.id)]["is_online"] is True
        assert entries[str(client_user.id)]["is_online"] is False

    def test_bulk_presence_empty(self, db):
        assert PresenceService.get_bulk_presence([]) == {}


# =============================================================================
# TestUserPresenceView
# =============================================================================


class TestUserPresenceView:
    def test_returns_presence_entry(self, client_client, freelancer):
        PresenceService.connect(freelancer)

        response = client_client.get(f"/api/v1/presence/{freelancer.id}/")

        assert response.status_code == 200
        assert response.data["success"] is True
        assert response.data["presence"]["is_online"] is True
        assert response.data["presence"]["user_id"] == str(freelancer.id)

    def test_unknown_user_is_404(self, client_client):
        response = client_client.get(f"/api/v1/presence/{uuid.uuid4()}/")

        assert response.status_code == 404
        assert response.data["error_code"] == "USER_NOT_FOUND"

    def test_requires_authentication(self, api_client, freelancer):
        response = api_client.get(f"/api/v1/presence/{freelancer.id}/")

        assert response.status_code == 401
