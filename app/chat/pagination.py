"""
Pagination classes for chat API.

- MessagePagination: page/limit pagination over a chat's messages, newest first
- ChatPagination: page/limit pagination over the caller's chats

Both render the project envelope:
    {"success": true, "<items_key>": [...], "pagination": {...}}

Design Decisions:
    - Page 1 holds the newest messages so a client opening a chat needs one
      request; clients reverse each page to show it chronologically
    - Page numbers rather than cursors, matching the page/limit query the
      marketplace frontend already sends
"""

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from chat.constants import MESSAGE_CONFIG


class EnvelopePagination(PageNumberPagination):
    """PageNumberPagination with `limit` as the page size parameter."""

    page_query_param = "page"
    page_size_query_param = "limit"
    items_key = "results"

    def get_paginated_response(self, data):
        return Response(
            {
                "success": True,
                self.items_key: data,
                "pagination": {
                    "page": self.page.number,
                    "limit": self.get_page_size(self.request),
                    "total": self.page.paginator.count,
                    "total_pages": self.page.paginator.num_pages,
                    "has_next": self.page.has_next(),
                },
            }
        )

    def get_paginated_response_schema(self, schema):
        return {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                self.items_key: schema,
                "pagination": {
                    "type": "object",
                    "properties": {
                        "page": {"type": "integer"},
                        "limit": {"type": "integer"},
                        "total": {"type": "integer"},
                        "total_pages": {"type": "integer"},
                        "has_next": {"type": "boolean"},
                    },
                },
            },
        }


class MessagePagination(EnvelopePagination):
    """
    Pagination for message lists.

    Default: 50 messages per page
    Maximum: 100 messages per page
    """

    page_size = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.MAX_PAGE_SIZE
    items_key = "messages"


class ChatPagination(EnvelopePagination):
    """Pagination for chat lists (20 per page, up to 50)."""

    page_size = 20
    max_page_size = 50
    items_key = "chats"
