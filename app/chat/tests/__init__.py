"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Chat, PrivateChatPair, Participant, Message model tests
- test_services.py: ChatService, ParticipantService, MessageService tests
- test_presence.py: PresenceService tests
- test_events.py: Channel layer fan-out helpers
- test_views.py: REST API endpoint tests
- test_consumers.py: WebSocket consumer tests

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
