"""
Chat session for the EMI companion.

Keeps the transcript of one conversation with the assistant:
- Opens with a greeting chosen from the patient's emotional state
- Streams each reply and reports partial text as it grows
- Commits the reply to the transcript once the stream ends
- Leaves the transcript without an assistant turn when the exchange fails
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from emi.llm.client import StreamingChatClient
from emi.llm.exceptions import TransportError
from emi.llm.models import ConversationMessage, PartialReply
from emi.logging_utils import ChatErrorHandler, Notice, log_operation

logger = logging.getLogger(__name__)

HIGH_ANXIETY = "high-anxiety"


class ChatSession:
    """One conversation between a patient and the assistant."""

    def __init__(
        self,
        client: StreamingChatClient,
        session_config: dict[str, Any],
        emotional_state: str | None = None,
    ):
        self.client = client
        self.emotional_state = emotional_state
        self.notice: Notice | None = None
        self.pending_reply: str | None = None
        self._busy = False

        greetings = session_config["greetings"]
        greeting = (
            greetings[HIGH_ANXIETY]
            if emotional_state == HIGH_ANXIETY
            else greetings["default"]
        )
        self._messages: list[ConversationMessage] = [
            ConversationMessage(role="assistant", content=greeting)
        ]

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def transcript(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    @log_operation("chat_session.send")
    async def send(
        self,
        text: str,
        on_update: Callable[[PartialReply], None] | None = None,
    ) -> ConversationMessage | None:
        """
        Send a user message and stream the assistant's reply.

        Blank input, or input while a reply is still streaming, is ignored.
        Returns the committed assistant message, or None when nothing was
        committed.
        """
        if not text.strip() or self._busy:
            logger.debug("Ignoring send: blank input or exchange in flight")
            return None

        self._busy = True
        self.notice = None
        self.pending_reply = ""
        self._messages.append(ConversationMessage(role="user", content=text))

        last: PartialReply | None = None
        try:
            async for snapshot in self.client.stream_reply(list(self._messages)):
                last = snapshot
                self.pending_reply = snapshot.text
                if on_update is not None:
                    on_update(snapshot)
        except TransportError as e:
            logger.warning(
                "Exchange failed; assistant reply not committed: %s", e
            )
            self.notice = ChatErrorHandler.notice_for(e)
            return None
        finally:
            self._busy = False
            self.pending_reply = None

        if last is None:
            logger.info("Assistant reply was empty; nothing committed")
            return None

        reply = last.to_message()
        self._messages.append(reply)
        return reply
