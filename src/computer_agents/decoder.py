"""Incremental decoder for `text/event-stream` message responses.

The server sends newline-delimited frames; only lines that start with
``data: `` carry a payload, which is a JSON object with a ``type``
discriminator. Everything else (comments, blank keep-alive lines, ``event:``
fields) is ignored.
"""

from __future__ import annotations

import codecs
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from pydantic import ValidationError

from .errors import ApiProtocolError
from .models import StreamEvent, parse_event
from .protocol import SSE_DATA_PREFIX
from .transport import StreamHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Frame:
    """Payload text of one `data:` line."""

    payload: str


class SSEDecoder:
    """Reassemble complete `data:` lines from arbitrarily split byte chunks.

    A line is only emitted once its terminating newline has arrived; any
    trailing partial line stays buffered until the next `feed()`.
    """

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[Frame]:
        """Append a chunk and return the frames it completed."""
        self._buffer += self._text.decode(chunk)
        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        frames: list[Frame] = []
        for line in lines:
            line = line.removesuffix("\r")
            if line.startswith(SSE_DATA_PREFIX):
                frames.append(Frame(line[len(SSE_DATA_PREFIX) :]))
        return frames

    def flush(self) -> str:
        """Return and clear the unterminated remainder at end of stream."""
        remainder = self._buffer + self._text.decode(b"", final=True)
        self._buffer = ""
        return remainder


def decode_frame(frame: Frame) -> StreamEvent | None:
    """Parse a frame into an event; payloads without a `type` return None.

    A known type whose fields do not fit its model is kept as a plain
    `StreamEvent` so it still reaches the event log and observers.
    """
    text = frame.payload.strip()
    if not text:
        return None

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse SSE data: {text[:200]!r}")
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        logger.warning(f"SSE data has no event type: {text[:200]!r}")
        return None

    try:
        return parse_event(payload)
    except ValidationError as exc:
        logger.warning(
            f"Invalid {payload['type']!r} event, keeping it untyped: "
            f"{exc.error_count()} error(s)"
        )
    return StreamEvent.model_validate(payload)


async def iter_frames(handle: StreamHandle) -> AsyncIterator[Frame]:
    """Yield frames from a stream handle until the source closes.

    The handle is released on every exit path: end of stream, decode
    failure, deadline expiry, or the consumer closing the iterator.
    """
    decoder = SSEDecoder()
    try:
        if not handle.is_success:
            raise ApiProtocolError(
                f"stream failed with HTTP {handle.status_code} before any event",
                status=handle.status_code,
            )

        while True:
            chunk = await handle.read_chunk()
            if chunk is None:
                break
            for frame in decoder.feed(chunk):
                yield frame

        remainder = decoder.flush()
        if remainder.strip():
            logger.debug(f"Discarding unterminated line at end of stream: {remainder[:200]!r}")
    finally:
        await handle.aclose()
        logger.debug("Stream released")


async def iter_events(handle: StreamHandle) -> AsyncIterator[StreamEvent]:
    """Yield typed events from a stream handle in wire order."""
    async with contextlib.aclosing(iter_frames(handle)) as frames:
        async for frame in frames:
            event = decode_frame(frame)
            if event is not None:
                yield event
