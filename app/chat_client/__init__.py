"""
Python client for the marketplace chat service.

Modules:
    messages: Optimistic and confirmed message variants, temp ids
    api: ChatAPIClient, the request/response surface (requests)
    channel: RealtimeChannel, the websocket surface (websockets)
    session: ChatSessionManager, local chat state tying both together

Usage:
    api = ChatAPIClient("https://chat.example.com/api/v1", token)
    channel = RealtimeChannel("wss://chat.example.com/ws/chat/", token)
    session = ChatSessionManager(user_id, api, channel, notifier=show_toast)

    await session.start()
    await session.select_chat(chat_id)
    await session.send_message("Hello!")
"""
