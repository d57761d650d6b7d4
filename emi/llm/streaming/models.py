"""
Streaming-specific dataclasses for the event-stream decoder.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FrameType(Enum):
    """Classification of one line of the event stream."""
    COMMENT = "comment"
    BLANK = "blank"
    DATA = "data"
    DONE = "done"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StreamFrame:
    """One complete line taken from the decode buffer."""
    kind: FrameType
    line: str
    payload: str | None = None


@dataclass
class AccumulatorState:
    """Mutable reply state owned by a single exchange."""
    content: str = ""
    snapshot_count: int = 0

    def clear(self) -> None:
        self.content = ""
        self.snapshot_count = 0
