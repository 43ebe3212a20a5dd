"""
Authentication application.

This app owns the User model that chat participants are drawn from and the
small user directory the chat UI needs to pick participants. Tokens are
issued by the marketplace's auth service; this service only validates
simplejwt access tokens (REST and websocket).

Key components:
    - User model: Email-identified user with display name, avatar and role
    - UserDirectoryView: Searchable list of other active users
    - CurrentUserView: The authenticated user's own record

Usage:
    from authentication.models import User, UserRole
"""
