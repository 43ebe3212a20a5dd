"""
Base service layer patterns for business logic encapsulation.

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views and consumers handle transport concerns, models handle data,
    services handle logic and raise core.exceptions on expected failures.

Usage:
    from core.exceptions import NotFoundError
    from core.services import BaseService

    class ChatService(BaseService):
        @classmethod
        def rename(cls, chat_id: int, name: str) -> Chat:
            chat = Chat.objects.filter(id=chat_id).first()
            if chat is None:
                raise NotFoundError("Chat not found")

            with cls.atomic():
                chat.name = name
                chat.save(update_fields=["name", "updated_at"])

            cls.get_logger().info(f"Renamed chat {chat.id}")
            return chat

    # In view (errors are rendered by core.exception_handler)
    chat = ChatService.rename(chat_id, name)
    return Response({"success": True, "chat": ChatSerializer(chat).data})

Related:
    - core.exceptions: Error taxonomy raised by services
    - core.exception_handler: Converts errors into API responses
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management
    - Post-commit side effects (broadcasts)

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services should be stateless
        - Raise core.exceptions for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Returns:
            Logger instance for this service
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Example:
            with cls.atomic():
                chat = Chat.objects.create(is_group=True)
                Participant.objects.create(chat=chat, user=user)
                # If Participant creation fails, Chat is also rolled back
        """
        with transaction.atomic():
            yield

    @classmethod
    def after_commit(cls, func: Callable[[], None]) -> None:
        """
        Run func once the surrounding transaction commits.

        Outside a transaction the callback runs immediately. Used for
        channel layer broadcasts so listeners never see rolled-back rows.
        """
        transaction.on_commit(func)
