"""
URL configuration for chat API.

URL Structure:
    Chats:
        /chats/                        GET, POST
        /chats/{id}/                   GET, DELETE
        /chats/{id}/participants/      POST
        /chats/{id}/leave/             DELETE
        /chats/{id}/read/              POST

    Messages:
        /chats/{id}/messages/          GET (?page=&limit=), POST

    Presence:
        /presence/{user_id}/           GET

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import ChatViewSet, MessageViewSet, UserPresenceView

router = DefaultRouter()
router.register(r"chats", ChatViewSet, basename="chat")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    path(
        "chats/<int:chat_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="chat-message-list",
    ),
    path("presence/<uuid:user_id>/", UserPresenceView.as_view(), name="presence-user"),
]
