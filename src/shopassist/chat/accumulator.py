"""Incremental assembly of the streamed assistant reply."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .message_model import ChatMessage, DoneMeta

__all__ = ["MessageAccumulator", "DEFAULT_THINKING_TEXT"]

LOGGER = logging.getLogger(__name__)

DEFAULT_THINKING_TEXT = "Thinking…"


class MessageAccumulator:
    """Owns the transcript and folds stream events into it.

    At most one message is streaming at a time: chunks extend the trailing
    streaming assistant message, and settling clears the flag for good.
    """

    def __init__(self, messages: Iterable[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = list(messages or [])
        self._thinking_text: str | None = None

    # ------------------------------------------------------------------
    # Transcript access
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def thinking_text(self) -> str | None:
        """Transient indicator text while the agent works, else ``None``."""
        return self._thinking_text

    @property
    def streaming_message(self) -> ChatMessage | None:
        last = self._last()
        if last is not None and last.role == "assistant" and last.streaming:
            return last
        return None

    def last_assistant_message(self) -> ChatMessage | None:
        for message in reversed(self._messages):
            if message.role == "assistant":
                return message
        return None

    # ------------------------------------------------------------------
    # Transcript mutation
    # ------------------------------------------------------------------

    def append_user(self, content: str) -> ChatMessage:
        message = ChatMessage(role="user", content=content)
        self._messages.append(message)
        return message

    def append_error(self, text: str) -> ChatMessage:
        message = ChatMessage(role="assistant", content=text, error=True)
        self._messages.append(message)
        return message

    def replace(self, messages: Sequence[ChatMessage]) -> None:
        """Swap in a whole transcript (thread switch or history restore)."""

        self._messages = list(messages)
        self._thinking_text = None

    def clear(self) -> None:
        self._messages = []
        self._thinking_text = None

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------

    def on_chunk(self, text: str) -> ChatMessage:
        self._thinking_text = None
        target = self.streaming_message
        if target is not None:
            target.content += text
            return target
        message = ChatMessage(role="assistant", content=text, streaming=True)
        self._messages.append(message)
        return message

    def on_thinking(self, text: str) -> None:
        self._thinking_text = text or DEFAULT_THINKING_TEXT

    def on_done(self, product_ids: Iterable[str], meta: DoneMeta | None = None) -> ChatMessage:
        self._thinking_text = None
        ids = list(product_ids)
        resolved_meta = meta or DoneMeta()
        last = self._last()
        if last is not None and last.role == "assistant":
            last.streaming = False
            last.product_ids = ids
            last.meta = resolved_meta
            return last
        # A done with no prior chunk still surfaces product/order references.
        message = ChatMessage(role="assistant", content="", product_ids=ids, meta=resolved_meta)
        self._messages.append(message)
        return message

    def finalize(self) -> None:
        """Settle any message still marked as streaming."""

        self._thinking_text = None
        for message in self._messages:
            if message.streaming:
                message.streaming = False
                LOGGER.debug("Finalized interrupted assistant message (%d chars)", len(message.content))

    def _last(self) -> ChatMessage | None:
        return self._messages[-1] if self._messages else None
