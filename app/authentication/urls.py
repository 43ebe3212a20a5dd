"""
URL configuration for the authentication app.

URL structure:
    /api/v1/users/       - User directory (participant selection)
    /api/v1/users/me/    - Authenticated user
"""

from django.urls import path

from authentication.views import CurrentUserView, UserDirectoryView

app_name = "authentication"

urlpatterns = [
    path("", UserDirectoryView.as_view(), name="user-directory"),
    path("me/", CurrentUserView.as_view(), name="current-user"),
]
