"""Tests for core infrastructure: errors, exception handler and health check."""
