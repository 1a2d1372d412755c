"""Frame decoding and event parsing for the chat event stream."""

from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Callable

from .event_parser import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    ThinkingEvent,
    parse_line,
)
from .frame_decoder import LineDecoder


async def iter_stream_events(
    fragments: AsyncIterable[bytes | str],
    *,
    on_line: Callable[[str], None] | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield typed events from a fragmented byte (or text) stream, in arrival order.

    ``on_line`` sees every complete line before it is parsed, keep-alives and
    unrecognised events included.
    """

    decoder = LineDecoder()
    try:
        async for fragment in fragments:
            for line in decoder.feed(fragment):
                if on_line is not None:
                    on_line(line)
                event = parse_line(line)
                if event is not None:
                    yield event
    finally:
        decoder.close()


__all__ = [
    "ChunkEvent",
    "DoneEvent",
    "ErrorEvent",
    "LineDecoder",
    "StreamEvent",
    "ThinkingEvent",
    "iter_stream_events",
    "parse_line",
]
