"""
Chat app for real-time messaging between freelancers and clients.

This app handles:
- Chats (private and group) and their participants
- Message sending, history and read marks
- WebSocket real-time delivery and presence

Related apps:
    - authentication: User model for participants
    - chat_client: Python client for this app's HTTP and websocket surfaces

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ChatService, MessageService

    chat, created = ChatService.create_chat(creator=user, participant_ids=[other.id])
    message = MessageService.append(chat.id, sender=user, content="Hello!")
"""
