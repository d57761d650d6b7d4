"""
Incremental event-stream decoder with split-frame recovery and reply accumulation.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncGenerator, AsyncIterable
from typing import Any

from emi.llm.models import PartialReply
from emi.logging_utils import ContextualLogger

from .models import AccumulatorState, FrameType, StreamFrame

# Wire format constants
COMMENT_MARKER = ":"
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
LINE_SEPARATOR = "\n"


class LineDecoder:
    """
    Turns raw byte chunks into complete text lines.

    Multi-byte characters split across chunks are held by the incremental
    decoder until their remaining bytes arrive. Text after the last newline
    stays in the buffer.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""

    def feed(self, chunk: bytes) -> None:
        self.buffer += self._decoder.decode(chunk)

    def next_line(self) -> str | None:
        """Remove and return the first complete line, or None if there is none."""
        newline_index = self.buffer.find(LINE_SEPARATOR)
        if newline_index == -1:
            return None

        line = self.buffer[:newline_index]
        self.buffer = self.buffer[newline_index + 1:]

        if line.endswith("\r"):
            line = line[:-1]
        return line

    def push_back(self, line: str) -> None:
        """Return a line to the front of the buffer to retry it later."""
        self.buffer = line + LINE_SEPARATOR + self.buffer

    def reset(self) -> None:
        self._decoder.reset()
        self.buffer = ""


def classify_line(line: str) -> StreamFrame:
    """Classify one complete line of the stream."""
    if not line.strip():
        return StreamFrame(kind=FrameType.BLANK, line=line)

    if line.startswith(COMMENT_MARKER):
        return StreamFrame(kind=FrameType.COMMENT, line=line)

    if not line.startswith(DATA_PREFIX):
        return StreamFrame(kind=FrameType.UNKNOWN, line=line)

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return StreamFrame(kind=FrameType.DONE, line=line, payload=payload)

    return StreamFrame(kind=FrameType.DATA, line=line, payload=payload)


def parse_payload(payload: str) -> Any | None:
    """Parse a data payload, returning None if it is not (yet) valid JSON."""
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


def extract_delta(data: Any) -> str | None:
    """Pull choices[0].delta.content out of a parsed chunk."""
    if not isinstance(data, dict):
        return None

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None

    choice = choices[0]
    if not isinstance(choice, dict):
        return None

    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None

    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class ReplyAccumulator:
    """Folds content deltas into the growing assistant reply."""

    def __init__(self):
        self.state = AccumulatorState()

    @property
    def text(self) -> str:
        return self.state.content

    def append(self, delta: str) -> PartialReply:
        self.state.content += delta
        snapshot = PartialReply(
            text=self.state.content,
            delta=delta,
            index=self.state.snapshot_count,
        )
        self.state.snapshot_count += 1
        return snapshot

    def reset(self) -> None:
        self.state.clear()


class StreamDecoder:
    """
    Decoder for one streamed reply.

    Owns the line buffer and the reply accumulator for a single exchange.
    Feed it byte chunks in arrival order; each call returns the snapshots
    produced by that chunk. Once the sentinel is seen, `finished` is set and
    further chunks are ignored.
    """

    def __init__(self, log: ContextualLogger | None = None):
        self.lines = LineDecoder()
        self.accumulator = ReplyAccumulator()
        self.finished = False
        self.log = log or ContextualLogger({"component": "stream_decoder"})
        self.stats = {
            'frames': 0,
            'comments': 0,
            'ignored': 0,
            'deferrals': 0,
            'snapshots': 0,
        }

    @property
    def reply(self) -> str:
        return self.accumulator.text

    def feed(self, chunk: bytes) -> list[PartialReply]:
        if self.finished:
            return []

        self.lines.feed(chunk)
        snapshots: list[PartialReply] = []

        while (line := self.lines.next_line()) is not None:
            frame = classify_line(line)
            self.stats['frames'] += 1

            if frame.kind in (FrameType.BLANK, FrameType.COMMENT):
                self.stats['comments'] += 1
                continue

            if frame.kind == FrameType.UNKNOWN:
                self.stats['ignored'] += 1
                continue

            if frame.kind == FrameType.DONE:
                self.log.debug("Stream sentinel received", reply_length=len(self.reply))
                self.finished = True
                break

            data = parse_payload(frame.payload or "")
            if data is None:
                # Payload split by a chunk boundary; wait for more bytes
                self.stats['deferrals'] += 1
                self.log.debug("Deferring incomplete payload", payload_length=len(line))
                self.lines.push_back(line)
                break

            delta = extract_delta(data)
            if delta is None:
                continue

            snapshots.append(self.accumulator.append(delta))
            self.stats['snapshots'] += 1

        return snapshots

    def close(self) -> None:
        """Release buffered text; the accumulated reply is kept."""
        self.lines.reset()

    def get_stats(self) -> dict[str, int]:
        return self.stats.copy()


async def decode_stream(
    chunks: AsyncIterable[bytes],
    decoder: StreamDecoder | None = None,
) -> AsyncGenerator[PartialReply]:
    """Decode an async iterable of byte chunks into reply snapshots."""
    decoder = decoder or StreamDecoder()
    try:
        async for chunk in chunks:
            for snapshot in decoder.feed(chunk):
                yield snapshot
            if decoder.finished:
                return
    finally:
        decoder.close()
