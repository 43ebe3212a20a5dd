"""
Base exception classes for application-wide error handling.

This module provides the error taxonomy shared by the chat services, the
REST layer, the websocket consumer and the Python chat client:
- Consistent error responses across HTTP and websocket surfaces
- Machine-readable error codes for client handling
- An HTTP status per error class for the DRF exception handler

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input (empty content, bad participant set)
    ├── AuthError - Missing or invalid identity
    ├── ForbiddenError - Identity valid but not permitted (not a participant)
    ├── NotFoundError - Referenced chat or user absent
    ├── ConflictError - Duplicate membership
    ├── InvalidOperationError - Operation not valid for the chat kind
    └── TransportError - Live channel send failed or timed out

Usage:
    from core.exceptions import NotFoundError, ForbiddenError

    # Raise with message only
    raise NotFoundError("Chat not found")

    # Raise with error code for client handling
    raise ForbiddenError("Not a participant", error_code="NOT_PARTICIPANT")

    # Raise with additional details
    raise ValidationError(
        "Private chats need exactly two participants",
        error_code="INVALID_PARTICIPANTS",
        details={"participant_count": 3}
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    This module has no Django imports so that chat_client can share it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        http_status: Status code used when the error crosses the HTTP boundary
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the failure envelope used by every API response.

        Returns:
            Dict with success, message, error_code and optional details keys

        Example:
            {
                "success": False,
                "message": "Chat not found",
                "error_code": "CHAT_NOT_FOUND",
                "details": {"chat_id": 12}
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input is malformed.

    Use for:
    - Empty or whitespace-only message content
    - Participant sets of the wrong size for the chat kind
    - Content over the maximum length
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class AuthError(BaseApplicationError):
    """
    Raised when the caller's identity is missing or invalid.

    The websocket consumer never raises this itself; the connection is
    closed with code 4001 instead. The chat client raises it for 401s.
    """

    default_error_code: str = "AUTHENTICATION_FAILED"
    http_status: int = 401


class ForbiddenError(BaseApplicationError):
    """
    Raised when the identity is valid but not permitted.

    Example:
        if not chat.has_participant(user):
            raise ForbiddenError(
                "You are not a participant in this chat",
                error_code="NOT_PARTICIPANT",
                details={"chat_id": chat.id}
            )
    """

    default_error_code: str = "FORBIDDEN"
    http_status: int = 403


class NotFoundError(BaseApplicationError):
    """
    Raised when a referenced chat or user does not exist.

    Example:
        chat = Chat.objects.filter(id=chat_id).first()
        if not chat:
            raise NotFoundError(
                "Chat not found",
                error_code="CHAT_NOT_FOUND",
                details={"chat_id": chat_id}
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when an operation would duplicate existing state.

    Use for:
    - Adding a user who is already a participant
    - Unique constraint violations on membership rows

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class InvalidOperationError(BaseApplicationError):
    """
    Raised when an operation is not valid for the chat's kind.

    Use for:
    - Adding participants to a private chat
    - Leaving a private chat (private chats are deleted, not left)
    - Deleting a group chat (participants leave instead)
    """

    default_error_code: str = "INVALID_OPERATION"
    http_status: int = 400


class TransportError(BaseApplicationError):
    """
    Raised when the live channel cannot deliver a request.

    Use for:
    - Send attempted while disconnected
    - No acknowledgement within the ack timeout
    - Network failure on the request/response fallback path

    The chat client catches this to trigger its single fallback attempt.
    """

    default_error_code: str = "TRANSPORT_ERROR"
    http_status: int = 502


ERRORS_BY_CODE: dict[str, type[BaseApplicationError]] = {
    cls.default_error_code: cls
    for cls in (
        ValidationError,
        AuthError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        InvalidOperationError,
        TransportError,
    )
}

ERRORS_BY_STATUS: dict[int, type[BaseApplicationError]] = {
    400: ValidationError,
    401: AuthError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def error_from_payload(
    payload: dict[str, Any], status_code: int | None = None
) -> BaseApplicationError:
    """
    Rebuild an application error from a failure envelope.

    Used by the chat client for both HTTP error bodies and websocket
    ``error`` events. Specific error codes (e.g. ``CHAT_NOT_FOUND``) map
    through the status code when they are not a class default.

    Args:
        payload: Envelope with message and error_code keys
        status_code: HTTP status, when the payload came over HTTP

    Returns:
        An instance of the matching BaseApplicationError subclass
    """
    error_code = payload.get("error_code") or ""
    message = payload.get("message") or payload.get("detail") or "Request failed"
    error_cls = ERRORS_BY_CODE.get(error_code)
    if error_cls is None and status_code is not None:
        error_cls = ERRORS_BY_STATUS.get(status_code)
    if error_cls is None:
        error_cls = BaseApplicationError
    return error_cls(message, error_code=error_code or None, details=payload.get("details"))
