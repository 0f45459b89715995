"""Incremental SSE frame splitter.

The transport hands over bytes in arbitrary fragments, so a frame (or a
multi-byte UTF-8 character) can be split across deliveries. FrameParser
keeps the undelimited tail buffered and only emits complete frames.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data: "
HEARTBEAT_MARKER = "event: ping"


@dataclass(frozen=True)
class Frame:
    """One delimited SSE unit: a heartbeat or a JSON data payload."""

    kind: str  # "heartbeat" or "data"
    payload: str = ""

    @property
    def is_heartbeat(self) -> bool:
        return self.kind == "heartbeat"


def classify_frame(raw: str) -> Frame | None:
    """Classify a raw frame string. Returns None for frames to discard."""
    text = raw.strip()
    if not text:
        return None
    if text == HEARTBEAT_MARKER:
        return Frame(kind="heartbeat")
    if text.startswith(DATA_PREFIX):
        return Frame(kind="data", payload=text[len(DATA_PREFIX):])
    logger.debug("Discarding unrecognized frame: %.80r", text)
    return None


class FrameParser:
    """Splits a growing byte stream into SSE frames."""

    def __init__(self) -> None:
        # Incomplete trailing UTF-8 sequences stay inside the decoder;
        # bytes that can never decode become U+FFFD right away.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet emitted as a frame."""
        undecoded, _ = self._decoder.getstate()
        return len(self._buffer.encode("utf-8")) + len(undecoded)

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""

    def feed(self, data: bytes, complete: bool = False) -> list[Frame]:
        """Append bytes and return every frame that is now fully delimited.

        With complete=True the trailing undelimited piece is flushed as a
        final frame and the buffer is emptied.
        """
        chunk = self._decoder.decode(data, final=complete)
        if "\ufffd" in chunk:
            logger.debug("Replaced undecodable bytes in stream")
        text = (self._buffer + chunk).replace("\r\n", "\n")
        if not text:
            return []

        pieces = text.split(FRAME_DELIMITER)
        if complete:
            self._buffer = ""
            self._decoder.reset()
        else:
            self._buffer = pieces.pop()

        frames = []
        for piece in pieces:
            frame = classify_frame(piece)
            if frame is not None:
                frames.append(frame)
        return frames
