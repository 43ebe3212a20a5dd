"""
Core Application - Infrastructure & Base Classes

Shared foundation for the chat service and the Python chat client:

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Services (import from core.services):
    - BaseService: Base class for the service layer (logging, transactions,
      post-commit side effects)

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, AuthError, ForbiddenError, NotFoundError,
      ConflictError, InvalidOperationError, TransportError
    - error_from_payload: Rebuild an error from a failure envelope

API (import from core.exception_handler / core.views):
    - api_exception_handler: DRF handler rendering the failure envelope
    - health_check: Database, cache and channel layer status

Note:
    Django models are NOT imported here to avoid AppRegistryNotReady
    errors; chat_client imports core.exceptions without Django configured.
"""

from .exceptions import (
    AuthError,
    BaseApplicationError,
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    TransportError,
    ValidationError,
    error_from_payload,
)

__all__ = [
    "BaseApplicationError",
    "ValidationError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "InvalidOperationError",
    "TransportError",
    "error_from_payload",
]
