"""
Test configuration and fixtures for chat tests.

This module provides:
- Users for both sides of a marketplace chat (freelancer, client)
- Chat fixtures (private and group)
- API client helpers for authenticated requests
- A fresh in-memory channel layer per test

Usage:
    def test_example(group_chat, freelancer_client):
        response = freelancer_client.get(f'/api/v1/chats/{group_chat.id}/')
        assert response.status_code == 200
"""

import pytest
from channels.layers import channel_layers
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from chat.tests.factories import GroupChatFactory, PrivateChatFactory


@pytest.fixture(autouse=True)
def fresh_channel_layer():
    """Groups registered by one test must not receive another test's events."""
    channel_layers.backends.clear()
    yield
    channel_layers.backends.clear()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def freelancer(db):
    return UserFactory(name="Fiona Freelancer", role=UserRole.FREELANCER)


@pytest.fixture
def client_user(db):
    return UserFactory(name="Carl Client", role=UserRole.CLIENT)


@pytest.fixture
def third_user(db):
    return UserFactory(name="Tina Third")


@pytest.fixture
def outsider(db):
    """A user who is not a participant in any fixture chat."""
    return UserFactory(name="Oscar Outsider")


# =============================================================================
# Chat Fixtures
# =============================================================================


@pytest.fixture
def private_chat(db, freelancer, client_user):
    """Private chat between the freelancer and the client."""
    return PrivateChatFactory(users=(freelancer, client_user))


@pytest.fixture
def group_chat(db, freelancer, client_user):
    """Group chat created by the freelancer with the client as member."""
    return GroupChatFactory(name="Website Redesign", created_by=freelancer, members=[client_user])


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory to create authenticated clients for any user.

    Usage:
        def test_example(authenticated_client_factory, some_user):
            client = authenticated_client_factory(some_user)
            response = client.get('/api/v1/chats/')
    """

    def _make_client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {AccessToken.for_user(user)}")
        return client

    return _make_client


@pytest.fixture
def freelancer_client(authenticated_client_factory, freelancer):
    return authenticated_client_factory(freelancer)


@pytest.fixture
def client_client(authenticated_client_factory, client_user):
    return authenticated_client_factory(client_user)


@pytest.fixture
def outsider_client(authenticated_client_factory, outsider):
    return authenticated_client_factory(outsider)
