#!/usr/bin/env python3
"""
Tests for the command-line entry point.
"""

from unittest.mock import patch

import pytest

from emi.config import Configuration
from emi.llm.exceptions import TransportError
from emi.llm.models import PartialReply
from emi.main import build_parser, chat, main


class ScriptedClient:
    """Async context manager standing in for StreamingChatClient."""

    deltas = ["Let's ", "breathe."]
    error = None

    def __init__(self, config, api_key=None):
        self.config = config
        self.api_key = api_key

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def stream_reply(self, conversation):
        text = ""
        for index, delta in enumerate(self.deltas):
            text += delta
            yield PartialReply(text=text, delta=delta, index=index)
        if self.error is not None:
            raise self.error


class TestParser:
    """Test argument parsing."""

    def test_chat_state(self):
        args = build_parser().parse_args(["chat", "--state", "high-anxiety"])
        assert args.command == "chat"
        assert args.state == "high-anxiety"

    def test_relay_overrides(self):
        args = build_parser().parse_args(["relay", "--host", "0.0.0.0", "--port", "9000"])
        assert args.host == "0.0.0.0"
        assert args.port == 9000

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRelayCommand:
    """Test the relay command wiring."""

    def test_relay_uses_config_and_overrides(self):
        with patch("emi.main.uvicorn.run") as run, \
                patch("emi.main.configure_logging"):
            main(["relay", "--port", "9999"])

        run.assert_called_once()
        kwargs = run.call_args.kwargs
        assert kwargs["port"] == 9999
        assert kwargs["host"] == Configuration().get_relay_config()["host"]


class TestChatCommand:
    """Test the interactive chat loop."""

    @pytest.mark.asyncio
    async def test_prints_greeting_and_reply(self, capsys):
        with patch("emi.main.StreamingChatClient", ScriptedClient), \
                patch("builtins.input", side_effect=["I feel anxious", "   ", "/quit"]):
            await chat(Configuration(), "high-anxiety")

        output = capsys.readouterr().out
        greeting = Configuration().get_session_config()["greetings"]["high-anxiety"]
        assert f"EMI: {greeting}" in output
        assert "EMI: Let's breathe." in output

    @pytest.mark.asyncio
    async def test_prints_notice_on_failure(self, capsys):
        class FailingClient(ScriptedClient):
            deltas = []
            error = TransportError("down", status_code=503)

        with patch("emi.main.StreamingChatClient", FailingClient), \
                patch("builtins.input", side_effect=["hello", EOFError()]):
            await chat(Configuration(), None)

        output = capsys.readouterr().out
        assert "[Error] Could not reach the assistant" in output
