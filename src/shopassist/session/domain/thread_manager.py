"""Thread manager domain service.

Tracks which server thread the session is talking to and keeps a short,
most-recent-first roster of the user's threads.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ...chat.accumulator import MessageAccumulator
from ...chat.message_model import HistoryPage, Thread
from ...services.settings import Settings
from ..events import EventBus, ThreadChanged, ThreadsRefreshed

if TYPE_CHECKING:  # pragma: no cover
    from ...api.client import CommerceClient

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ThreadManager:
    """Domain manager for the thread lifecycle.

    The server assigns thread ids: after :meth:`start_new` the manager is
    *pending assignment* until the first completed turn reports one.

    Events Emitted:
        - ThreadChanged: When the active thread changes
        - ThreadsRefreshed: After the roster is reloaded
    """

    def __init__(
        self,
        client: CommerceClient,
        accumulator: MessageAccumulator,
        event_bus: EventBus,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the thread manager.

        Args:
            client: Collaborator exposing history and thread endpoints.
            accumulator: Transcript owner whose messages are replaced on switch.
            event_bus: The event bus for publishing events.
            settings: Limits for history size, roster size and titles.
        """
        self._client = client
        self._accumulator = accumulator
        self._bus = event_bus
        self._settings = settings or Settings()
        self._active_thread_id: str | None = None
        self._pending_assignment = False
        self._roster: list[Thread] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active_thread_id(self) -> str | None:
        return self._active_thread_id

    @property
    def pending_assignment(self) -> bool:
        """True after :meth:`start_new` until the server assigns an id."""
        return self._pending_assignment

    @property
    def roster(self) -> tuple[Thread, ...]:
        return tuple(self._roster)

    def request_options(self) -> tuple[str | None, bool]:
        """Return ``(thread_id, new_chat)`` for the next outgoing message."""
        if self._pending_assignment:
            return None, True
        return self._active_thread_id, False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_new(self) -> None:
        self._active_thread_id = None
        self._pending_assignment = True
        self._accumulator.clear()
        LOGGER.debug("ThreadManager.start_new: awaiting server thread id")
        self._bus.publish(ThreadChanged(thread_id=None, reason="new"))

    async def restore(self, thread_id: str | None = None) -> HistoryPage:
        """Load the history of ``thread_id`` or of the server's default thread.

        Raises:
            ApiError: If the history request fails; the transcript is untouched.
        """
        return await self._load(thread_id, reason="restore")

    async def switch_to(self, thread_id: str) -> HistoryPage:
        """Replace the transcript with the history of ``thread_id``.

        Raises:
            ValueError: If ``thread_id`` is empty.
            ApiError: If the history request fails; the transcript is untouched.
        """
        if not thread_id:
            raise ValueError("thread_id is required")
        return await self._load(thread_id, reason="switch")

    async def rename(self, thread_id: str, title: str) -> str:
        """Rename ``thread_id`` and return the title actually sent.

        Raises:
            ValueError: If the trimmed title is empty.
        """
        cleaned = str(title).strip()[: self._settings.max_title_chars]
        if not cleaned:
            raise ValueError("Thread title must not be blank")
        await self._client.rename_thread(thread_id, cleaned)
        for thread in self._roster:
            if thread.thread_id == thread_id:
                thread.title = cleaned
        await self.refresh_roster()
        return cleaned

    async def delete(self, thread_id: str) -> None:
        """Delete ``thread_id``, falling back to another thread if it was active.

        When the fallback thread cannot be loaded the session starts a new
        chat instead of staying on the deleted thread.
        """

        await self._client.delete_thread(thread_id)
        was_active = thread_id == self._active_thread_id
        self._roster = [thread for thread in self._roster if thread.thread_id != thread_id]
        await self.refresh_roster()
        LOGGER.debug(
            "ThreadManager.delete: thread=%s, was_active=%s, remaining=%d",
            thread_id,
            was_active,
            len(self._roster),
        )
        if not was_active:
            return

        remaining = [thread for thread in self._roster if thread.thread_id != thread_id]
        if remaining:
            try:
                await self.switch_to(remaining[0].thread_id)
                return
            except Exception as exc:
                # The deleted id must never be sent again.
                LOGGER.warning(
                    "ThreadManager.delete: fallback to %s failed: %s",
                    remaining[0].thread_id,
                    exc,
                )
        self.start_new()

    def note_turn_completed(self, thread_id: str | None) -> None:
        """Adopt the thread id reported by a completed turn."""

        if not thread_id:
            return
        if thread_id == self._active_thread_id and not self._pending_assignment:
            return
        self._active_thread_id = thread_id
        self._pending_assignment = False
        LOGGER.debug("ThreadManager: server assigned thread %s", thread_id)
        self._bus.publish(ThreadChanged(thread_id=thread_id, reason="assigned"))

    async def refresh_roster(self) -> tuple[Thread, ...]:
        """Reload the roster; a failed listing degrades to an empty roster."""

        try:
            threads = await self._client.list_threads()
        except Exception as exc:
            LOGGER.warning("ThreadManager.refresh_roster: failed: %s", exc)
            threads = []
        ordered = sorted(threads, key=lambda thread: thread.last_message_at or _EPOCH, reverse=True)
        self._roster = ordered[: max(1, self._settings.thread_roster_limit)]
        self._bus.publish(ThreadsRefreshed(thread_ids=[thread.thread_id for thread in self._roster]))
        return self.roster

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _load(self, thread_id: str | None, *, reason: str) -> HistoryPage:
        page = await self._client.fetch_history(
            thread_id, limit=self._settings.clamped_history_limit()
        )
        # Swap only after the fetch resolves so a failure leaves the old thread intact.
        self._accumulator.replace(page.messages)
        self._active_thread_id = page.thread_id or thread_id
        self._pending_assignment = False
        LOGGER.debug(
            "ThreadManager.%s: thread=%s, messages=%d",
            reason,
            self._active_thread_id,
            len(page.messages),
        )
        self._bus.publish(ThreadChanged(thread_id=self._active_thread_id, reason=reason))
        return page


__all__ = ["ThreadManager"]
