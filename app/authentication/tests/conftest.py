"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(user, authenticated_client):
        response = authenticated_client.get('/api/v1/users/me/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.models import UserRole
from authentication.tests.factories import UserFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a basic active freelancer."""
    return UserFactory(name="Ada Lovelace", email="ada@example.com")


@pytest.fixture
def client_user(db):
    """Create a user with the client role."""
    return UserFactory(name="Grace Hopper", email="grace@example.com", role=UserRole.CLIENT)


@pytest.fixture
def inactive_user(db):
    """Create a deactivated user."""
    return UserFactory(name="Alan Turing", email="alan@example.com", is_active=False)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user):
    """API client carrying a bearer token for `user`."""
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {AccessToken.for_user(user)}")
    return client
