"""
Serializers for the User model.

Related files:
    - models.py: User model
    - chat/serializers.py: Embeds UserSummarySerializer in messages and participants
"""

from rest_framework import serializers

from authentication.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user as shown next to messages and in member lists."""

    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "avatar_url", "role"]
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own record.

    Includes email and last_seen, which are not exposed in summaries.
    """

    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "email", "name", "avatar_url", "role", "last_seen", "date_joined"]
        read_only_fields = fields
