"""
User model for the marketplace chat.

Token issuance, registration and login live outside this service; this model
only carries what chat needs to identify and render a participant.

Models:
    User: Email-identified user with display name, avatar, marketplace role
          and the durable last-seen timestamp written by presence tracking

Related files:
    - managers.py: UserManager for email-based user creation
    - chat/services.py: PresenceService writes last_seen
"""

import uuid

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """Marketplace role of a user."""

    FREELANCER = "freelancer", "Freelancer"
    CLIENT = "client", "Client"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        id: UUID primary key (exposed to clients as the user id)
        email: Primary identifier, unique, used for login
        name: Display name shown to other participants
        avatar_url: Avatar reference rendered next to messages
        role: Freelancer or client
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        last_seen: Last time the user was seen connected (durable presence)

    Usage:
        user = User.objects.create_user(
            email='user@example.com',
            password='securepassword',
            name='Ada Lovelace',
        )
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name shown in chats",
    )
    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Avatar image reference",
    )
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.FREELANCER,
        help_text="Marketplace role",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the user's last realtime connection closed or sent a heartbeat",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def display_name(self) -> str:
        """Name shown to other participants, falling back to the email local part."""
        return self.name or self.email.split("@")[0]

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.display_name
