"""Typed events decoded from ``data:`` lines of the chat stream."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union

from ..chat.message_model import DoneMeta

__all__ = [
    "DATA_PREFIX",
    "END_MARKER",
    "ChunkEvent",
    "ThinkingEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "parse_line",
    "parse_payload",
]

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"
END_MARKER = "[DONE]"


@dataclass(frozen=True, slots=True)
class ChunkEvent:
    """Fragment of the assistant's final answer."""

    kind: ClassVar[str] = "chunk"
    text: str


@dataclass(frozen=True, slots=True)
class ThinkingEvent:
    """Advisory progress text; never part of the transcript."""

    kind: ClassVar[str] = "thinking"
    text: str


@dataclass(frozen=True, slots=True)
class DoneEvent:
    """Terminal event of a turn."""

    kind: ClassVar[str] = "done"
    product_ids: tuple[str, ...] = ()
    thread_id: str | None = None
    meta: DoneMeta = field(default_factory=DoneMeta)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Error reported by the agent after streaming began."""

    kind: ClassVar[str] = "error"
    message: str


StreamEvent = Union[ChunkEvent, ThinkingEvent, DoneEvent, ErrorEvent]


def parse_line(line: str) -> StreamEvent | None:
    """Decode one complete protocol line.

    Returns ``None`` for comments, keep-alives, non-data fields, the end
    marker, malformed JSON and any event kind outside the allow-list.
    """

    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX):].strip()
    if not raw or raw == END_MARKER:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.debug("Dropping malformed stream line (%d chars)", len(raw))
        return None
    if not isinstance(payload, Mapping):
        LOGGER.debug("Dropping non-object stream payload: %s", type(payload).__name__)
        return None
    return parse_payload(payload)


def parse_payload(payload: Mapping[str, Any]) -> StreamEvent | None:
    event_type = payload.get("type")

    if event_type == "chunk":
        content = payload.get("content")
        return ChunkEvent(text=content) if isinstance(content, str) else None
    if event_type == "thinking":
        content = payload.get("content")
        return ThinkingEvent(text=content) if isinstance(content, str) else None
    if event_type == "done":
        product_ids = payload.get("productIds")
        if not isinstance(product_ids, list):
            product_ids = []
        thread_id = payload.get("thread_id") or payload.get("threadId")
        return DoneEvent(
            product_ids=tuple(str(item) for item in product_ids if item is not None),
            thread_id=str(thread_id) if thread_id else None,
            meta=DoneMeta.from_payload(payload),
        )
    if event_type == "error":
        message = payload.get("message")
        return ErrorEvent(message=str(message)) if message else None

    # tool_call, tool_result and anything added later stay on the server side.
    return None
