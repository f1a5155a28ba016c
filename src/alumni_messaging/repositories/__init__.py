"""Conversation, message and user directory storage."""
