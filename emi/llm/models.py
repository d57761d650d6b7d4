"""
Core chat models shared by the streaming client, the session and the relay.

- Conversation messages exchanged with the completion endpoint
- Partial reply snapshots emitted while a reply streams in
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

Role = Literal["user", "assistant"]


class ConversationMessage(BaseModel):
    """One turn of the conversation as sent to the completion endpoint."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class PartialReply:
    """Cumulative assistant text after one content frame."""
    text: str
    delta: str
    index: int

    def to_message(self) -> ConversationMessage:
        """Finalize this snapshot into an assistant message."""
        return ConversationMessage(role="assistant", content=self.text)
