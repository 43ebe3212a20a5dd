"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system. They are the
request/response path the chat client falls back to when the websocket is
unavailable, so every operation here has the same effects (including room
broadcasts) as its websocket counterpart.

URL Structure:
    /api/v1/chats/                        GET, POST
    /api/v1/chats/{id}/                   GET, DELETE
    /api/v1/chats/{id}/participants/      POST
    /api/v1/chats/{id}/leave/             DELETE
    /api/v1/chats/{id}/read/              POST
    /api/v1/chats/{id}/messages/          GET, POST
    /api/v1/presence/{user_id}/           GET

Responses:
    Success: {"success": true, "message": "...", "<payload key>": ...}
    Failure: rendered by core.exception_handler from core.exceptions

Design Decisions:
    - Views only validate input and shape output; services enforce
      membership and raise core.exceptions
    - Creating an existing private chat answers 200 with the existing chat
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.pagination import ChatPagination, MessagePagination
from chat.serializers import (
    ChatCreateSerializer,
    ChatDetailSerializer,
    ChatListSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ParticipantCreateSerializer,
    ParticipantSerializer,
)
from chat.services import (
    ChatService,
    MessageService,
    ParticipantService,
    PresenceService,
)


def _presence_for(chats) -> dict:
    """Bulk presence for every participant of the given chats."""
    user_ids = {p.user_id for chat in chats for p in chat.participants.all()}
    return PresenceService.get_bulk_presence(user_ids)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chats",
        summary="List chats",
        tags=["Chat"],
        responses={200: ChatListSerializer(many=True)},
    ),
    create=extend_schema(
        operation_id="create_chat",
        summary="Create chat",
        description=(
            "Create a group chat, or find-or-create the private chat with one "
            "other user. The caller is always included."
        ),
        tags=["Chat"],
        request=ChatCreateSerializer,
        responses={200: ChatDetailSerializer, 201: ChatDetailSerializer},
    ),
    retrieve=extend_schema(
        operation_id="get_chat",
        summary="Get chat",
        description="Chat with participants and recent messages. Marks the chat read.",
        tags=["Chat"],
        responses={200: ChatDetailSerializer},
    ),
    destroy=extend_schema(
        operation_id="delete_chat",
        summary="Delete private chat",
        tags=["Chat"],
        responses={200: OpenApiTypes.OBJECT},
    ),
)
class ChatViewSet(viewsets.GenericViewSet):
    """
    ViewSet for chat operations.

    list:
        The caller's chats, most recently active first, with unread counts.

    create:
        Private: returns the existing chat for the pair if there is one.
        Group: creates a new chat with every listed participant.

    retrieve:
        Chat details; marks other users' messages as read.

    destroy:
        Delete a private chat. Group chats are left instead.

    participants:
        Add a user to a group chat.

    leave:
        Leave a group chat; the chat is deleted when nobody remains.

    read:
        Mark the chat's messages from other users as read.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = ChatPagination
    serializer_class = ChatListSerializer
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        return ChatService.list_chats(self.request.user)

    def list(self, request):
        page = self.paginate_queryset(self.get_queryset())
        context = self.get_serializer_context()
        context["presence"] = _presence_for(page)
        serializer = ChatListSerializer(page, many=True, context=context)
        return self.get_paginated_response(serializer.data)

    def create(self, request):
        serializer = ChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        chat, created = ChatService.create_chat(
            creator=request.user,
            participant_ids=data["participant_ids"],
            name=data.get("name", ""),
            is_group=data.get("is_group", False),
        )

        output = ChatDetailSerializer(chat, context=self._detail_context(chat))
        return Response(
            {
                "success": True,
                "message": "Chat created" if created else "Chat already exists",
                "chat": output.data,
            },
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def retrieve(self, request, pk=None):
        chat = ChatService.get_chat(pk, request.user)
        MessageService.mark_read(chat.id, request.user)

        output = ChatDetailSerializer(chat, context=self._detail_context(chat))
        return Response({"success": True, "chat": output.data})

    def destroy(self, request, pk=None):
        ChatService.delete_private_chat(pk, request.user)
        return Response({"success": True, "message": "Chat deleted"})

    @extend_schema(
        operation_id="add_chat_participant",
        summary="Add participant",
        tags=["Chat"],
        request=ParticipantCreateSerializer,
        responses={201: ParticipantSerializer},
    )
    @action(detail=True, methods=["post"])
    def participants(self, request, pk=None):
        serializer = ParticipantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        participant = ParticipantService.add_participant(
            chat_id=pk,
            user_id=serializer.validated_data["user_id"],
            added_by=request.user,
        )
        return Response(
            {
                "success": True,
                "message": "Participant added",
                "participant": ParticipantSerializer(participant).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="leave_chat",
        summary="Leave chat",
        tags=["Chat"],
        request=None,
        responses={200: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=["delete"])
    def leave(self, request, pk=None):
        chat_deleted = ParticipantService.remove_participant(pk, request.user)
        return Response(
            {
                "success": True,
                "message": "You left the chat",
                "chat_deleted": chat_deleted,
            }
        )

    @extend_schema(
        operation_id="mark_chat_read",
        summary="Mark chat as read",
        tags=["Chat"],
        request=None,
        responses={200: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        updated = MessageService.mark_read(pk, request.user)
        return Response({"success": True, "marked_read": updated})

    def _detail_context(self, chat) -> dict:
        context = self.get_serializer_context()
        context["presence"] = _presence_for([chat])
        return context


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chat_messages",
        summary="List messages",
        description=(
            "Messages newest first, paginated with page/limit. "
            "Marks other users' messages in the chat as read."
        ),
        tags=["Chat - Messages"],
        parameters=[
            OpenApiParameter("page", int),
            OpenApiParameter("limit", int),
        ],
        responses={200: MessageSerializer(many=True)},
    ),
    create=extend_schema(
        operation_id="send_chat_message",
        summary="Send message",
        tags=["Chat - Messages"],
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    ViewSet for messages within a chat.

    list:
        Newest-first pages of the chat's messages.

    create:
        Append a message. Accepts the client's temp_id so the broadcast to
        the room can be reconciled with the sender's optimistic entry.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = MessagePagination
    serializer_class = MessageSerializer

    def list(self, request, chat_pk=None):
        queryset = MessageService.list_messages(chat_pk, request.user)
        page = self.paginate_queryset(queryset)
        serializer = MessageSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def create(self, request, chat_pk=None):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        temp_id = serializer.validated_data.get("temp_id") or None

        message = MessageService.append(
            chat_id=chat_pk,
            sender=request.user,
            content=serializer.validated_data["content"],
            temp_id=temp_id,
        )
        return Response(
            {
                "success": True,
                "message": "Message sent",
                "chat_message": MessageSerializer(message).data,
                "temp_id": temp_id,
            },
            status=status.HTTP_201_CREATED,
        )


class UserPresenceView(APIView):
    """Presence entry for one user."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_user_presence",
        summary="Get user presence",
        tags=["Chat - Presence"],
        responses={200: OpenApiTypes.OBJECT},
    )
    def get(self, request, user_id):
        return Response({"success": True, "presence": PresenceService.get_presence(user_id)})
