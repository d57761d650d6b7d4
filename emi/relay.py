"""
FastAPI relay between the chat client and the completion gateway.

Receives the patient's conversation, prepends the EMI system prompt and
forwards it to an OpenAI-compatible gateway with streaming enabled. The
gateway's event stream is passed back to the caller untouched; gateway
failures become small JSON error bodies.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from emi.config import Configuration
from emi.llm.models import ConversationMessage

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

# Gateway statuses passed through to the caller with their own message
GATEWAY_ERRORS = {
    429: "Rate limit exceeded. Please try again later.",
    402: "Credits exhausted. Please top up your account.",
}
GENERIC_GATEWAY_ERROR = "AI service error"


class RelayRequest(BaseModel):
    """Body accepted by the chat relay."""
    messages: list[ConversationMessage]


def build_gateway_payload(
    relay_config: dict[str, Any], messages: list[ConversationMessage]
) -> dict[str, Any]:
    """Build the streaming completion request sent to the gateway."""
    return {
        "model": relay_config["model"],
        "messages": [
            {"role": "system", "content": relay_config["system_prompt"]},
            *(message.to_wire() for message in messages),
        ],
        "stream": True,
    }


def create_app(
    configuration: Configuration,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the relay application."""
    relay_config = configuration.get_relay_config()
    completions_url = relay_config["gateway_url"].rstrip("/") + "/chat/completions"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = http_client or httpx.AsyncClient(timeout=relay_config["timeout"])
        app.state.http_client = client
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()

    app = FastAPI(title="EMI chat relay", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "ok"})

    @app.options(relay_config["path"])
    async def chat_preflight():
        return Response(status_code=200)

    @app.post(relay_config["path"])
    async def chat(request: Request):
        """
        Relay a conversation to the gateway and stream the reply back.
        """
        client: httpx.AsyncClient = request.app.state.http_client

        try:
            body = RelayRequest.model_validate(await request.json())

            api_key = configuration.gateway_api_key
            if not api_key:
                raise RuntimeError(
                    f"{configuration.gateway_api_key_env} is not configured"
                )

            logger.info(
                "Relaying chat request with %d messages", len(body.messages)
            )

            upstream = await client.send(
                client.build_request(
                    "POST",
                    completions_url,
                    json=build_gateway_payload(relay_config, body.messages),
                    headers={"Authorization": f"Bearer {api_key}"},
                ),
                stream=True,
            )
        except Exception as e:
            logger.error("Chat relay error: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

        if not upstream.is_success:
            try:
                error_text = (await upstream.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError as e:
                logger.error(
                    "AI gateway error: %s (body unreadable: %s)",
                    upstream.status_code, e,
                )
                return JSONResponse({"error": GENERIC_GATEWAY_ERROR}, status_code=500)
            finally:
                await upstream.aclose()

            if upstream.status_code in GATEWAY_ERRORS:
                return JSONResponse(
                    {"error": GATEWAY_ERRORS[upstream.status_code]},
                    status_code=upstream.status_code,
                )

            logger.error(
                "AI gateway error: %s %s", upstream.status_code, error_text
            )
            return JSONResponse({"error": GENERIC_GATEWAY_ERROR}, status_code=500)

        # Decoded bytes: the gateway's Content-Encoding is not forwarded
        return StreamingResponse(
            upstream.aiter_bytes(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            background=BackgroundTask(upstream.aclose),
        )

    return app
