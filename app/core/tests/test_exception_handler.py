"""
Tests for the DRF exception handler and the health check.

Verifies:
- Application errors keep their status and code
- DRF exceptions are wrapped in the same envelope
- Unknown exceptions are left for Django (500)
"""

from django.http import Http404
from rest_framework import exceptions as drf_exceptions

from core.exception_handler import api_exception_handler
from core.exceptions import ConflictError, NotFoundError


class TestApiExceptionHandler:
    def test_application_error_uses_own_status(self):
        response = api_exception_handler(
            NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND"), {}
        )

        assert response.status_code == 404
        assert response.data == {
            "success": False,
            "message": "Chat not found",
            "error_code": "CHAT_NOT_FOUND",
        }

    def test_conflict_error_is_409(self):
        response = api_exception_handler(ConflictError("dup"), {})

        assert response.status_code == 409

    def test_drf_validation_error_carries_field_errors(self):
        exc = drf_exceptions.ValidationError({"content": ["This field is required."]})

        response = api_exception_handler(exc, {})

        assert response.status_code == 400
        assert response.data["success"] is False
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert response.data["message"] == "content: This field is required."
        assert response.data["errors"] == {"content": ["This field is required."]}

    def test_not_authenticated_is_wrapped(self):
        response = api_exception_handler(drf_exceptions.NotAuthenticated(), {})

        assert response.status_code == 401
        assert response.data["error_code"] == "AUTHENTICATION_FAILED"

    def test_http404_is_wrapped(self):
        response = api_exception_handler(Http404("nope"), {})

        assert response.status_code == 404
        assert response.data == {
            "success": False,
            "message": "Not found.",
            "error_code": "NOT_FOUND",
        }

    def test_unhandled_exception_returns_none(self):
        assert api_exception_handler(RuntimeError("boom"), {}) is None


class TestHealthCheck:
    def test_reports_components(self, client, db):
        response = client.get("/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["cache"] == "connected"
        assert body["channel_layer"] == "connected"
