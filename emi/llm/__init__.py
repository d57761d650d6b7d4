"""
Streaming chat integration for the EMI companion.

This package provides:
- Conversation and partial-reply models
- Transport and conversation error types
- An incremental event-stream decoder (emi.llm.streaming)
- The streaming chat client (emi.llm.client)
"""

from __future__ import annotations

from .exceptions import ChatError, ConversationError, TransportError
from .models import ConversationMessage, PartialReply, Role

__all__ = [
    "ChatError",
    "ConversationError",
    "ConversationMessage",
    "PartialReply",
    "Role",
    "TransportError",
]
