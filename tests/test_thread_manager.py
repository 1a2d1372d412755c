"""Tests for ThreadManager domain manager."""

from __future__ import annotations

import pytest

from helpers import EventRecorder, FakeCommerceClient, history, make_thread
from shopassist.api.errors import ApiError
from shopassist.chat.accumulator import MessageAccumulator
from shopassist.chat.message_model import HistoryPage
from shopassist.services.settings import Settings
from shopassist.session.domain.thread_manager import ThreadManager
from shopassist.session.events import EventBus, ThreadChanged, ThreadsRefreshed


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def accumulator() -> MessageAccumulator:
    return MessageAccumulator()


@pytest.fixture
def manager(fake_client: FakeCommerceClient, accumulator: MessageAccumulator, event_bus: EventBus) -> ThreadManager:
    return ThreadManager(fake_client, accumulator, event_bus, Settings())


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    return EventRecorder(event_bus, ThreadChanged, ThreadsRefreshed)


# =============================================================================
# Thread Identity
# =============================================================================


class TestThreadIdentity:
    def test_initial_request_uses_server_default(self, manager: ThreadManager) -> None:
        assert manager.active_thread_id is None
        assert manager.request_options() == (None, False)

    def test_start_new_clears_transcript(
        self, manager: ThreadManager, accumulator: MessageAccumulator, recorder: EventRecorder
    ) -> None:
        accumulator.replace(history(("user", "hi"), ("assistant", "hello")))

        manager.start_new()

        assert accumulator.messages == ()
        assert manager.pending_assignment is True
        assert manager.request_options() == (None, True)
        assert recorder.of(ThreadChanged)[-1] == ThreadChanged(thread_id=None, reason="new")

    def test_completed_turn_assigns_thread(self, manager: ThreadManager, recorder: EventRecorder) -> None:
        manager.start_new()

        manager.note_turn_completed("t9")

        assert manager.active_thread_id == "t9"
        assert manager.pending_assignment is False
        assert manager.request_options() == ("t9", False)
        assert recorder.of(ThreadChanged)[-1] == ThreadChanged(thread_id="t9", reason="assigned")

    def test_completed_turn_without_thread_keeps_state(self, manager: ThreadManager) -> None:
        manager.start_new()
        manager.note_turn_completed(None)
        assert manager.request_options() == (None, True)


# =============================================================================
# Restore & Switch
# =============================================================================


class TestRestoreAndSwitch:
    @pytest.mark.asyncio
    async def test_restore_loads_default_thread(
        self, manager: ThreadManager, fake_client: FakeCommerceClient, accumulator: MessageAccumulator
    ) -> None:
        fake_client.histories[None] = HistoryPage(messages=history(("user", "hi")), thread_id="t1")

        await manager.restore()

        assert manager.active_thread_id == "t1"
        assert [m.content for m in accumulator.messages] == ["hi"]
        assert fake_client.history_calls == [(None, 50)]

    @pytest.mark.asyncio
    async def test_switch_replaces_transcript(
        self,
        manager: ThreadManager,
        fake_client: FakeCommerceClient,
        accumulator: MessageAccumulator,
        recorder: EventRecorder,
    ) -> None:
        accumulator.replace(history(("user", "old")))
        fake_client.histories["t2"] = HistoryPage(
            messages=history(("user", "new"), ("assistant", "reply")), thread_id="t2"
        )

        await manager.switch_to("t2")

        assert [m.content for m in accumulator.messages] == ["new", "reply"]
        assert manager.active_thread_id == "t2"
        assert recorder.of(ThreadChanged)[-1].reason == "switch"

    @pytest.mark.asyncio
    async def test_failed_switch_keeps_transcript(
        self, manager: ThreadManager, fake_client: FakeCommerceClient, accumulator: MessageAccumulator
    ) -> None:
        fake_client.histories[None] = HistoryPage(messages=history(("user", "old")), thread_id="t1")
        await manager.restore()
        fake_client.history_error = ApiError("Not found", status=404)

        with pytest.raises(ApiError):
            await manager.switch_to("t2")

        assert [m.content for m in accumulator.messages] == ["old"]
        assert manager.active_thread_id == "t1"

    @pytest.mark.asyncio
    async def test_switch_requires_thread_id(self, manager: ThreadManager) -> None:
        with pytest.raises(ValueError):
            await manager.switch_to("")

    @pytest.mark.asyncio
    async def test_switch_after_new_chat_clears_pending(
        self, manager: ThreadManager, fake_client: FakeCommerceClient
    ) -> None:
        manager.start_new()
        fake_client.histories["t3"] = HistoryPage(messages=[], thread_id="t3")

        await manager.switch_to("t3")

        assert manager.request_options() == ("t3", False)


# =============================================================================
# Roster
# =============================================================================


class TestRoster:
    @pytest.mark.asyncio
    async def test_roster_is_recent_first_and_capped(
        self, manager: ThreadManager, fake_client: FakeCommerceClient, recorder: EventRecorder
    ) -> None:
        fake_client.threads = [
            make_thread("old", 300),
            make_thread("never", None),
            make_thread("newest", 1),
            make_thread("middle", 30),
            make_thread("recent", 5),
        ]

        roster = await manager.refresh_roster()

        assert [thread.thread_id for thread in roster] == ["newest", "recent", "middle"]
        assert recorder.of(ThreadsRefreshed)[-1].thread_ids == ["newest", "recent", "middle"]

    @pytest.mark.asyncio
    async def test_failed_listing_degrades_to_empty(
        self, manager: ThreadManager, fake_client: FakeCommerceClient
    ) -> None:
        fake_client.threads = [make_thread("t1", 1)]
        await manager.refresh_roster()
        fake_client.list_error = ApiError("Unavailable", status=503)

        assert await manager.refresh_roster() == ()


# =============================================================================
# Rename & Delete
# =============================================================================


class TestRename:
    @pytest.mark.asyncio
    async def test_rename_trims_title(self, manager: ThreadManager, fake_client: FakeCommerceClient) -> None:
        fake_client.threads = [make_thread("t1", 1)]

        title = await manager.rename("t1", "  Elden Ring deals  ")

        assert title == "Elden Ring deals"
        assert fake_client.renamed == [("t1", "Elden Ring deals")]

    @pytest.mark.asyncio
    async def test_rename_caps_title(self, manager: ThreadManager, fake_client: FakeCommerceClient) -> None:
        title = await manager.rename("t1", "y" * 140)
        assert title == "y" * 100

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, manager: ThreadManager, fake_client: FakeCommerceClient) -> None:
        with pytest.raises(ValueError):
            await manager.rename("t1", "   ")
        assert fake_client.renamed == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_deleting_active_thread_switches_to_most_recent(
        self, manager: ThreadManager, fake_client: FakeCommerceClient, accumulator: MessageAccumulator
    ) -> None:
        fake_client.threads = [make_thread("t1", 1), make_thread("t2", 10), make_thread("t3", 5)]
        fake_client.histories["t1"] = HistoryPage(messages=history(("user", "one")), thread_id="t1")
        fake_client.histories["t3"] = HistoryPage(messages=history(("user", "three")), thread_id="t3")
        await manager.switch_to("t1")

        await manager.delete("t1")

        assert fake_client.deleted == ["t1"]
        assert manager.active_thread_id == "t3"
        assert [m.content for m in accumulator.messages] == ["three"]
        assert [thread.thread_id for thread in manager.roster] == ["t3", "t2"]

    @pytest.mark.asyncio
    async def test_deleting_last_thread_starts_new_chat(
        self, manager: ThreadManager, fake_client: FakeCommerceClient, accumulator: MessageAccumulator
    ) -> None:
        fake_client.threads = [make_thread("t1", 1)]
        fake_client.histories["t1"] = HistoryPage(messages=history(("user", "one")), thread_id="t1")
        await manager.switch_to("t1")

        await manager.delete("t1")

        assert manager.active_thread_id is None
        assert manager.pending_assignment is True
        assert accumulator.messages == ()

    @pytest.mark.asyncio
    async def test_deleting_other_thread_keeps_active(
        self, manager: ThreadManager, fake_client: FakeCommerceClient
    ) -> None:
        fake_client.threads = [make_thread("t1", 1), make_thread("t2", 2)]
        fake_client.histories["t1"] = HistoryPage(messages=[], thread_id="t1")
        await manager.switch_to("t1")

        await manager.delete("t2")

        assert manager.active_thread_id == "t1"
        assert [thread.thread_id for thread in manager.roster] == ["t1"]

    @pytest.mark.asyncio
    async def test_failed_fallback_starts_new_chat(
        self,
        manager: ThreadManager,
        fake_client: FakeCommerceClient,
        accumulator: MessageAccumulator,
        recorder: EventRecorder,
    ) -> None:
        fake_client.threads = [make_thread("t1", 1), make_thread("t2", 5)]
        fake_client.histories["t1"] = HistoryPage(messages=history(("user", "one")), thread_id="t1")
        await manager.switch_to("t1")
        fake_client.history_error = ApiError("Unavailable", status=503)

        await manager.delete("t1")

        assert fake_client.deleted == ["t1"]
        assert manager.active_thread_id is None
        assert manager.request_options() == (None, True)
        assert accumulator.messages == ()
        assert recorder.of(ThreadChanged)[-1] == ThreadChanged(thread_id=None, reason="new")
