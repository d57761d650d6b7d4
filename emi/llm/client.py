"""
Streaming chat client for the EMI companion.
Sends the conversation to the chat endpoint and streams the reply back.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncGenerator, Mapping, Sequence
from http import HTTPStatus
from typing import Any

import httpx
from pydantic import ValidationError

from emi.logging_utils import ContextualLogger, operation_context

from .exceptions import ConversationError, TransportError
from .models import ConversationMessage, PartialReply
from .streaming.parser import StreamDecoder

# Constants
MAX_ERROR_DETAIL = 200
NO_BODY_STATUSES = (HTTPStatus.NO_CONTENT, HTTPStatus.RESET_CONTENT)


class StreamingChatClient:
    """HTTP client that streams assistant replies from the chat endpoint."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.get("endpoint_url"):
            raise ValueError(
                "Required client configuration parameter 'endpoint_url' not found."
            )

        self.config: dict[str, Any] = config
        self.endpoint_url: str = config["endpoint_url"]
        self.headers: dict[str, str] = {"Accept": "text/event-stream"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"

        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=config.get("connect_timeout", 10.0),
                read=config.get("read_timeout"),
                write=config.get("write_timeout", 10.0),
                pool=config.get("pool_timeout", 10.0),
            ),
        )

    @staticmethod
    def _validate_conversation(
        conversation: Sequence[ConversationMessage | Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        """Check the conversation can be sent and convert it to wire form."""
        if not conversation:
            raise ConversationError("Conversation must contain at least one message")

        try:
            messages = [
                message if isinstance(message, ConversationMessage)
                else ConversationMessage.model_validate(message)
                for message in conversation
            ]
        except ValidationError as e:
            raise ConversationError(f"Invalid conversation message: {e}") from e

        if messages[-1].role != "user":
            raise ConversationError(
                "Conversation must end with a user message, "
                f"got '{messages[-1].role}'"
            )

        return [message.to_wire() for message in messages]

    @staticmethod
    def _error_detail(body: bytes) -> str:
        """Extract a short error description from a failed response body."""
        text = body.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return text[:MAX_ERROR_DETAIL]
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            return data["error"][:MAX_ERROR_DETAIL]
        return text[:MAX_ERROR_DETAIL]

    async def _check_response(self, response: httpx.Response) -> None:
        """Fail fast unless the response carries a streamable body."""
        if not response.is_success:
            body = await response.aread()
            detail = self._error_detail(body)
            raise TransportError(
                f"Chat endpoint error {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        if (
            response.status_code in NO_BODY_STATUSES
            or response.headers.get("content-length") == "0"
        ):
            raise TransportError(
                "Chat endpoint returned no response body",
                status_code=response.status_code,
            )

    async def stream_reply(
        self,
        conversation: Sequence[ConversationMessage | Mapping[str, Any]],
    ) -> AsyncGenerator[PartialReply]:
        """
        Stream the assistant reply to a conversation.

        Yields one snapshot per content fragment, each holding the cumulative
        reply so far. The stream ends at the `[DONE]` sentinel or when the
        endpoint closes the connection. Closing the generator early releases
        the connection.

        Raises:
            ConversationError: The conversation is empty or does not end
                with a user message.
            TransportError: The request failed or the response was unusable.
        """
        messages = self._validate_conversation(conversation)

        exchange_id = uuid.uuid4().hex[:12]
        log = ContextualLogger({"exchange_id": exchange_id})
        decoder = StreamDecoder(log=log)

        async with operation_context(
            "stream_reply",
            context={"exchange_id": exchange_id, "message_count": len(messages)},
        ):
            try:
                async with self.client.stream(
                    "POST",
                    self.endpoint_url,
                    json={"messages": messages},
                    headers=self.headers,
                ) as response:
                    await self._check_response(response)

                    async for chunk in response.aiter_bytes():
                        for snapshot in decoder.feed(chunk):
                            yield snapshot
                        # Leaving the block closes the response instead of draining it
                        if decoder.finished:
                            break

            except httpx.HTTPError as e:
                raise TransportError(f"Could not reach chat endpoint: {e!s}") from e

            finally:
                decoder.close()

            log.info(
                "Reply stream finished",
                reply_length=len(decoder.reply),
                sentinel=decoder.finished,
                **decoder.get_stats(),
            )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> StreamingChatClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
