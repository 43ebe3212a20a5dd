"""
DRF exception handler producing the project's response envelope.

Every failed API call answers with:
    {"success": false, "message": "...", "error_code": "...", "errors": {...}}

Application errors (core.exceptions) carry their own status and code.
DRF's exceptions (authentication, serializer validation, 404s, throttling)
keep their status and are wrapped into the same shape.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handler.api_exception_handler",
    }
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

DRF_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "AUTHENTICATION_FAILED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMIT_EXCEEDED",
}


def _first_message(detail: Any) -> str:
    """Pick a readable message out of a DRF error detail structure."""
    if isinstance(detail, dict):
        for key, value in detail.items():
            message = _first_message(value)
            if key in ("detail", "non_field_errors"):
                return message
            return f"{key}: {message}"
        return "Invalid request"
    if isinstance(detail, list):
        return _first_message(detail[0]) if detail else "Invalid request"
    return str(detail)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    Convert exceptions raised in API views into the failure envelope.

    Args:
        exc: The raised exception
        context: DRF context (view, request, args, kwargs)

    Returns:
        Response, or None to let Django produce a 500
    """
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.info(
            f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'view'}: "
            f"{exc.error_code} {exc.message}"
        )
        return Response(exc.to_dict(), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    body: dict[str, Any] = {
        "success": False,
        "message": _first_message(detail),
        "error_code": DRF_ERROR_CODES.get(response.status_code, "ERROR"),
    }
    if isinstance(exc, drf_exceptions.ValidationError) and isinstance(detail, dict):
        body["errors"] = detail
    elif isinstance(exc, Http404):
        body["message"] = "Not found."

    response.data = body
    return response
