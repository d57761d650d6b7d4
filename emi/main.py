"""
Main module for the EMI chat companion.

    emi chat [--state high-anxiety]     Talk to EMI in the terminal
    emi relay [--host H] [--port P]     Serve the chat relay
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

import uvicorn

from emi.chat_session import ChatSession
from emi.config import Configuration
from emi.llm.client import StreamingChatClient
from emi.llm.models import PartialReply
from emi.logging_utils import configure_logging

EXIT_COMMANDS = ("/quit", "/exit")


def _print_delta(snapshot: PartialReply) -> None:
    sys.stdout.write(snapshot.delta)
    sys.stdout.flush()


async def _send_cancellable(session: ChatSession, text: str) -> None:
    """Stream one reply; Ctrl-C abandons the reply instead of the program."""
    task = asyncio.create_task(session.send(text, on_update=_print_delta))

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, task.cancel)
    try:
        with contextlib.suppress(asyncio.CancelledError):
            await task
        if task.cancelled():
            print("\n(reply cancelled)")
    finally:
        if sys.platform != "win32":
            loop.remove_signal_handler(signal.SIGINT)


async def chat(config: Configuration, emotional_state: str | None) -> None:
    """Interactive terminal chat with the assistant."""
    async with StreamingChatClient(
        config.get_client_config(), api_key=config.endpoint_api_key
    ) as client:
        session = ChatSession(client, config.get_session_config(), emotional_state)
        print(f"EMI: {session.transcript[0].content}\n")

        while True:
            try:
                text = input("You: ")
            except (EOFError, KeyboardInterrupt):
                print()
                break

            if text.strip() in EXIT_COMMANDS:
                break
            if not text.strip():
                continue

            sys.stdout.write("EMI: ")
            sys.stdout.flush()
            await _send_cancellable(session, text)

            if session.notice is not None:
                print(f"\n[{session.notice.title}] {session.notice.description}")
            print()


def cmd_chat(args: argparse.Namespace, config: Configuration) -> None:
    asyncio.run(chat(config, args.state))


def cmd_relay(args: argparse.Namespace, config: Configuration) -> None:
    from emi.relay import create_app

    relay_config = config.get_relay_config()
    host = args.host or relay_config["host"]
    port = args.port or relay_config["port"]

    logging.info(f"Serving chat relay on {host}:{port}{relay_config['path']}")
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level=config.get_logging_config().get("level", "info").lower(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="emi", description="EMI emotional support chat companion"
    )
    parser.add_argument("--config", help="Path to an alternative config.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="Talk to EMI in the terminal")
    chat_parser.add_argument(
        "--state",
        default=None,
        help="Emotional state used to pick the greeting (e.g. high-anxiety)",
    )
    chat_parser.set_defaults(func=cmd_chat)

    relay_parser = subparsers.add_parser("relay", help="Serve the chat relay")
    relay_parser.add_argument("--host", default=None)
    relay_parser.add_argument("--port", type=int, default=None)
    relay_parser.set_defaults(func=cmd_relay)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Configuration(args.config)
    configure_logging(config.get_logging_config().get("level", "INFO"))
    args.func(args, config)


if __name__ == "__main__":
    main()
