"""Shared test helpers and in-memory collaborators.

Import from here instead of redefining fakes in individual test files.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from shopassist.chat.message_model import Address, ChatMessage, HistoryPage, Thread
from shopassist.session.events import Event, EventBus

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_thread(thread_id: str, minutes_ago: int | None, title: str | None = None) -> Thread:
    stamp = None if minutes_ago is None else NOW - timedelta(minutes=minutes_ago)
    return Thread(thread_id=thread_id, title=title or thread_id.upper(), last_message_at=stamp)


class FakeCommerceClient:
    """Scriptable stand-in for :class:`CommerceClient`.

    Each ``stream_chat`` call consumes the next entry of ``scripts``. Script
    items are yielded as events, raised when they are exceptions, and
    awaited when they are :class:`asyncio.Event` gates. Plain strings stand
    for raw lines that carry no event (keep-alives, unknown events).

    ``list_gate`` holds ``list_threads`` open until it is set.
    """

    def __init__(self) -> None:
        self.scripts: list[list[Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.histories: dict[str | None, HistoryPage] = {}
        self.history_calls: list[tuple[str | None, int | None]] = []
        self.history_error: Exception | None = None
        self.threads: list[Thread] = []
        self.list_error: Exception | None = None
        self.addresses: list[Address] = []
        self.address_error: Exception | None = None
        self.renamed: list[tuple[str, str]] = []
        self.rename_error: Exception | None = None
        self.deleted: list[str] = []
        self.delete_error: Exception | None = None
        self.list_gate: asyncio.Event | None = None

    async def stream_chat(
        self,
        message: str,
        *,
        thread_id: str | None = None,
        new_chat: bool = False,
        on_line: Callable[[str], None] | None = None,
    ):
        self.stream_calls.append({"message": message, "thread_id": thread_id, "new_chat": new_chat})
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if on_line is not None:
                on_line(item if isinstance(item, str) else f"data: {type(item).__name__}")
            if isinstance(item, str):
                continue
            yield item

    async def fetch_history(self, thread_id: str | None = None, *, limit: int | None = None) -> HistoryPage:
        self.history_calls.append((thread_id, limit))
        if self.history_error is not None:
            raise self.history_error
        page = self.histories.get(thread_id)
        if page is None:
            return HistoryPage(messages=[], thread_id=thread_id)
        return HistoryPage(messages=list(page.messages), thread_id=page.thread_id)

    async def list_threads(self) -> list[Thread]:
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.list_error is not None:
            raise self.list_error
        return list(self.threads)

    async def rename_thread(self, thread_id: str, title: str) -> None:
        if self.rename_error is not None:
            raise self.rename_error
        self.renamed.append((thread_id, title))

    async def delete_thread(self, thread_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(thread_id)
        self.threads = [thread for thread in self.threads if thread.thread_id != thread_id]

    async def list_addresses(self) -> list[Address]:
        if self.address_error is not None:
            raise self.address_error
        return list(self.addresses)


class EventRecorder:
    """Collects published events of the given types, in order."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self._record)

    def _record(self, event: Event) -> None:
        self.events.append(event)

    def of(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


async def wait_until(predicate: Callable[[], bool], *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def history(*pairs: tuple[str, str]) -> list[ChatMessage]:
    return [ChatMessage(role=role, content=content) for role, content in pairs]  # type: ignore[arg-type]
