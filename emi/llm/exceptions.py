"""
Error types for chat streaming.

Only transport failures and caller mistakes are raised. Problems with
individual stream frames are absorbed by the decoder and never surface here.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base error for the chat companion."""


class TransportError(ChatError):
    """The endpoint could not be reached or did not return a usable stream."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ConversationError(ChatError, ValueError):
    """The conversation cannot be sent as it stands."""
    pass
