"""
Chat application configuration.

This app provides the marketplace chat system with:
- Private (1:1) chats, unique per user pair, and named group chats
- An append-only message log with read tracking
- Presence tracking and websocket fan-out via Django Channels
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
