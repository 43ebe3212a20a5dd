"""
Tests for the Python chat client.

- test_messages.py: Optimistic and confirmed message variants
- test_api.py: HTTP client envelopes and error mapping
- test_channel.py: Realtime channel acks, subscriptions and reconnection
- test_session.py: Session state, delivery fallback and reconciliation

These tests use fakes for the socket and the HTTP session; no server runs.
"""
