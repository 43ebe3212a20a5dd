"""
Factory Boy factories for chat models.

Provides test data for:
- Chat: Group chats (with participants) and private chats (with pair row)
- Participant: User membership in a chat
- Message: Text and system messages

Usage:
    from chat.tests.factories import (
        GroupChatFactory,
        MessageFactory,
        PrivateChatFactory,
    )

    # Group chat with the creator and two more members
    chat = GroupChatFactory(members=[alice, bob])

    # Private chat between two users
    chat = PrivateChatFactory(users=(alice, bob))

    # A message in a chat
    message = MessageFactory(chat=chat, sender=alice)
"""

import factory

from authentication.tests.factories import UserFactory
from chat.models import Chat, Message, MessageType, Participant, PrivateChatPair


class ChatFactory(factory.django.DjangoModelFactory):
    """Bare chat row without participants."""

    class Meta:
        model = Chat

    name = factory.Sequence(lambda n: f"Project Team {n}")
    is_group = True
    created_by = factory.SubFactory(UserFactory)
    participant_count = 0
    last_message_at = None


class ParticipantFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Participant

    chat = factory.SubFactory(ChatFactory)
    user = factory.SubFactory(UserFactory)


class GroupChatFactory(ChatFactory):
    """
    Group chat with its creator as a participant.

    Examples:
        # Creator only
        chat = GroupChatFactory()

        # Creator plus members
        chat = GroupChatFactory(created_by=owner, members=[alice, bob])
    """

    class Meta:
        model = Chat
        skip_postgeneration_save = True

    @factory.post_generation
    def members(self, create, extracted, **kwargs):
        if not create:
            return
        users = [self.created_by, *(extracted or [])]
        for user in users:
            Participant.objects.create(chat=self, user=user)
        self.participant_count = len(users)
        self.save(update_fields=["participant_count"])


class PrivateChatFactory(ChatFactory):
    """
    Private chat between two users, with the canonical pair row.

    Examples:
        chat = PrivateChatFactory(users=(alice, bob))
    """

    class Meta:
        model = Chat
        skip_postgeneration_save = True

    name = ""
    is_group = False
    created_by = None
    participant_count = 2

    @factory.post_generation
    def users(self, create, extracted, **kwargs):
        if not create:
            return
        first, second = extracted or (UserFactory(), UserFactory())
        lower, higher = PrivateChatPair.canonical(first.id, second.id)
        PrivateChatPair.objects.create(chat=self, user_lower_id=lower, user_higher_id=higher)
        Participant.objects.create(chat=self, user=first)
        Participant.objects.create(chat=self, user=second)


class MessageFactory(factory.django.DjangoModelFactory):
    """
    Text message from a participant.

    Examples:
        message = MessageFactory(chat=chat, sender=alice)
        notice = MessageFactory(chat=chat, sender=None, message_type=MessageType.SYSTEM)
    """

    class Meta:
        model = Message

    chat = factory.SubFactory(GroupChatFactory)
    sender = factory.LazyAttribute(lambda obj: obj.chat.created_by)
    message_type = MessageType.TEXT
    content = factory.Sequence(lambda n: f"Message number {n}")
    read = False
