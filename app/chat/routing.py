"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - One socket per client; chats are joined as rooms over it

Authentication:
    JWT access token as query parameter (?token=<jwt>) or as the
    "jwt, <token>" subprotocol. See chat.middleware.JWTAuthMiddleware.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path("ws/chat/", consumers.ChatConsumer.as_asgi()),
]
