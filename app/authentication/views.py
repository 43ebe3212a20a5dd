"""
API views for users.

Endpoints:
    GET /api/v1/users/        - Directory search used to pick chat participants
    GET /api/v1/users/me/     - The authenticated user

Tokens are issued by the marketplace's auth service; these views only read.
"""

from django.db.models import Q
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.models import User
from authentication.serializers import UserSerializer, UserSummarySerializer

DIRECTORY_LIMIT = 50


class UserDirectoryView(ListAPIView):
    """
    List active users other than the caller, optionally filtered.

    Query params:
        search: Case-insensitive match on name or email
        role: freelancer | client
    """

    permission_classes = [IsAuthenticated]
    serializer_class = UserSummarySerializer

    @extend_schema(
        summary="Search users",
        tags=["Users"],
        parameters=[
            OpenApiParameter("search", str, description="Name or email fragment"),
            OpenApiParameter("role", str, description="freelancer or client"),
        ],
        responses={200: UserSummarySerializer(many=True)},
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        queryset = User.objects.filter(is_active=True).exclude(id=self.request.user.id)

        search = self.request.query_params.get("search", "").strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(email__icontains=search))

        role = self.request.query_params.get("role")
        if role:
            queryset = queryset.filter(role=role)

        return queryset.order_by("name", "email")

    def list(self, request, *args, **kwargs):
        users = self.get_queryset()[:DIRECTORY_LIMIT]
        serializer = self.get_serializer(users, many=True)
        return Response({"success": True, "users": serializer.data})


class CurrentUserView(APIView):
    """Return the authenticated user's own record."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Current user",
        tags=["Users"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        return Response({"success": True, "user": UserSerializer(request.user).data})
