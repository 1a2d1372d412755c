"""Newline framing for server-pushed event streams."""

from __future__ import annotations

import codecs
import logging

__all__ = ["LineDecoder"]

LOGGER = logging.getLogger(__name__)


class LineDecoder:
    """Reassemble complete protocol lines from arbitrarily fragmented reads.

    Fragments may be ``bytes`` (decoded incrementally as UTF-8, so a
    multi-byte character split across two reads survives) or ``str``. Each
    call to :meth:`feed` returns the lines completed by that fragment and
    keeps the unterminated tail for the next call.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, fragment: bytes | str) -> list[str]:
        if self._closed:
            raise RuntimeError("LineDecoder is closed")
        if not fragment:
            return []
        if isinstance(fragment, (bytes, bytearray)):
            text = self._decoder.decode(bytes(fragment))
        else:
            text = fragment
        if not text:
            return []

        self._buffer += text
        if "\n" not in text:
            return []

        *complete, self._buffer = self._buffer.split("\n")
        return [line[:-1] if line.endswith("\r") else line for line in complete]

    def close(self) -> None:
        """End the stream; an unterminated tail is dropped, never parsed."""

        if self._closed:
            return
        self._closed = True
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if tail:
            LOGGER.debug("Discarding %d unterminated character(s) at end of stream", len(tail))
