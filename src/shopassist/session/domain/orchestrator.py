"""Session orchestrator domain service.

Runs one chat turn at a time: dispatches the user message, folds the
streamed reply into the transcript, settles the turn and keeps the thread
roster and buy-flow dialogue in step. All state transitions are published
on the event bus.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from ...api.errors import ApiError
from ...chat.accumulator import MessageAccumulator
from ...chat.message_model import ChatMessage, Thread
from ...services.settings import Settings
from ...stream import ChunkEvent, DoneEvent, ErrorEvent, StreamEvent, ThinkingEvent
from ..events import (
    EventBus,
    PhaseChanged,
    StreamChunkReceived,
    StreamErrorRaised,
    ThinkingChanged,
    TurnCanceled,
    TurnCompleted,
    TurnFailed,
    TurnStarted,
)
from ..models import SessionPhase, TurnState
from .dialogue_controller import DialogueController, FollowUp, QuickActions, QuickReply
from .thread_manager import ThreadManager

if TYPE_CHECKING:  # pragma: no cover
    from ...api.client import CommerceClient

LOGGER = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
HISTORY_ERROR_MESSAGE = "Failed to load chat history"
# Failures a thread operation reports on the banner instead of raising.
REQUEST_ERRORS = (ApiError, httpx.HTTPError)
SUGGESTED_QUESTIONS: tuple[str, ...] = (
    "What games are on sale?",
    "Games like Hades?",
    "Best RPGs under $30",
    "Buy Elden Ring for me",
)


class CartRefresher(Protocol):
    def refresh(self) -> Any:
        ...


@dataclass(slots=True)
class SessionContext:
    """Collaborators handed to a session at construction.

    Attributes:
        client: Chat/thread/address API client.
        bus: Event bus the session publishes on.
        settings: Limits applied to messages, titles and history.
        cart: Optional cart collaborator poked after every settled turn.
    """

    client: CommerceClient
    bus: EventBus = field(default_factory=EventBus)
    settings: Settings = field(default_factory=Settings)
    cart: CartRefresher | None = None


class SessionOrchestrator:
    """Domain manager for one open chat panel.

    Only one request is in flight at a time; :meth:`send` is a no-op unless
    the session is idle.

    Events Emitted:
        - PhaseChanged: On idle/sending/streaming transitions
        - TurnStarted: When a user message is dispatched
        - StreamChunkReceived / ThinkingChanged: While the reply streams
        - StreamErrorRaised: When the agent reports an error mid-stream
        - TurnCompleted: When the turn settles (``done`` or stream close)
        - TurnFailed: On transport failure
        - TurnCanceled: When the turn is aborted
    """

    def __init__(self, context: SessionContext) -> None:
        self._context = context
        self._client = context.client
        self._bus = context.bus
        self._settings = context.settings
        self._accumulator = MessageAccumulator()
        self._threads = ThreadManager(self._client, self._accumulator, self._bus, self._settings)
        self._dialogue = DialogueController(self._bus)
        self._phase = SessionPhase.IDLE
        self._current_turn: TurnState | None = None
        self._task: asyncio.Task[None] | None = None
        self._abort_requested = False
        self._error: str | None = None
        self._background: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._accumulator.messages

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_busy(self) -> bool:
        return self._phase is not SessionPhase.IDLE

    @property
    def current_turn(self) -> TurnState | None:
        return self._current_turn

    @property
    def thinking_text(self) -> str | None:
        return self._accumulator.thinking_text

    @property
    def error(self) -> str | None:
        """Banner text for the latest error, until dismissed or the next send."""
        return self._error

    @property
    def threads(self) -> ThreadManager:
        return self._threads

    @property
    def dialogue(self) -> DialogueController:
        return self._dialogue

    @property
    def active_thread_id(self) -> str | None:
        return self._threads.active_thread_id

    @property
    def roster(self) -> tuple[Thread, ...]:
        return self._threads.roster

    def suggestions(self) -> tuple[str, ...]:
        """Opening questions to offer while the transcript is empty."""
        return SUGGESTED_QUESTIONS if not self.messages else ()

    def dismiss_error(self) -> None:
        self._error = None

    # ------------------------------------------------------------------
    # Panel Lifecycle
    # ------------------------------------------------------------------

    async def open_panel(self) -> None:
        """Load addresses, the active thread's history and the roster."""

        await self._cancel_in_flight()
        self._error = None
        await self._dialogue.refresh_addresses(self._client)
        try:
            await self._threads.restore(self._threads.active_thread_id)
        except Exception as exc:
            LOGGER.warning("SessionOrchestrator.open_panel: history load failed: %s", exc)
            self._error = _error_text(exc, HISTORY_ERROR_MESSAGE)
        self._dialogue.reset(reason="panel_opened")
        self._dialogue.observe(self.messages)
        await self._threads.refresh_roster()

    async def close_panel(self) -> None:
        """Release the read loop so nothing mutates state after the view closes."""

        await self._cancel_in_flight()

    def abort(self) -> bool:
        """Cancel the in-flight turn, if any. Returns True if one was running."""

        task = self._task
        if task is None or task.done():
            LOGGER.debug("SessionOrchestrator.abort: no turn running")
            return False
        self._abort_requested = True
        task.cancel()
        return True

    # ------------------------------------------------------------------
    # Turn Lifecycle
    # ------------------------------------------------------------------

    async def send(self, text: str, *, display_content: str | None = None) -> TurnState | None:
        """Send a user message and run the turn to settlement.

        Args:
            text: Message for the agent; trimmed and capped in length.
            display_content: Transcript text shown instead of ``text``.

        Returns:
            The settled TurnState, or None when the message was empty or
            another turn is still in flight.
        """
        prompt = (text or "").strip()[: self._settings.max_message_chars]
        if not prompt:
            return None
        if self._phase is not SessionPhase.IDLE:
            LOGGER.debug("SessionOrchestrator.send: ignored while %s", self._phase.value)
            return None

        turn = TurnState(
            turn_id=f"turn-{uuid.uuid4().hex[:8]}",
            prompt=prompt,
            display=display_content or prompt,
        )
        self._current_turn = turn
        self._error = None
        self._abort_requested = False
        self._accumulator.append_user(turn.display)
        self._dialogue.observe(self.messages)
        self._set_phase(SessionPhase.SENDING)

        LOGGER.debug(
            "SessionOrchestrator.send: turn_id=%s, prompt_length=%d",
            turn.turn_id,
            len(prompt),
        )
        self._bus.publish(TurnStarted(turn_id=turn.turn_id, prompt=prompt, display=turn.display))

        task = asyncio.ensure_future(self._run_turn(turn))
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            if turn.is_running:
                # Canceled before the read loop got to run.
                self._finish_canceled(turn)
            if not (self._abort_requested and task.cancelled()):
                raise
        finally:
            if self._task is task:
                self._task = None
        return turn

    async def confirm_selection(self) -> TurnState | None:
        """Send the composed address/payment follow-up.

        Returns None without touching the selection while a turn is in flight.

        Raises:
            ValueError: If either slot is still empty.
        """
        if self.is_busy:
            # Keep the selection for when the current turn settles.
            LOGGER.debug("SessionOrchestrator.confirm_selection: ignored while %s", self._phase.value)
            return None
        follow_up: FollowUp = self._dialogue.confirm()
        return await self.send(follow_up.text, display_content=follow_up.display)

    async def send_quick_reply(self, reply: QuickReply) -> TurnState | None:
        return await self.send(reply.text)

    def quick_actions(self) -> QuickActions | None:
        """Current buy-flow affordance for the latest assistant message."""

        self._dialogue.observe(self.messages)
        return self._dialogue.quick_actions(self.messages, busy=self.is_busy)

    # ------------------------------------------------------------------
    # Thread Operations
    # ------------------------------------------------------------------

    async def start_new_chat(self) -> None:
        await self._cancel_in_flight()
        self._error = None
        self._threads.start_new()
        self._dialogue.reset(reason="new_chat")
        self._dialogue.observe(self.messages)

    async def switch_thread(self, thread_id: str) -> bool:
        """Show ``thread_id``; returns False (with a banner) if its history failed to load."""

        await self._cancel_in_flight()
        try:
            await self._threads.switch_to(thread_id)
        except REQUEST_ERRORS as exc:
            LOGGER.warning("SessionOrchestrator.switch_thread: failed: %s", exc)
            self._error = _error_text(exc, HISTORY_ERROR_MESSAGE)
            return False
        self._error = None
        self._dialogue.reset(reason="thread_switched")
        self._dialogue.observe(self.messages)
        return True

    async def rename_thread(self, thread_id: str, title: str) -> str | None:
        try:
            return await self._threads.rename(thread_id, title)
        except REQUEST_ERRORS as exc:
            LOGGER.warning("SessionOrchestrator.rename_thread: failed: %s", exc)
            self._error = _error_text(exc, GENERIC_ERROR_MESSAGE)
            return None

    async def delete_thread(self, thread_id: str) -> bool:
        if thread_id == self._threads.active_thread_id:
            await self._cancel_in_flight()
        try:
            await self._threads.delete(thread_id)
        except REQUEST_ERRORS as exc:
            LOGGER.warning("SessionOrchestrator.delete_thread: failed: %s", exc)
            self._error = _error_text(exc, GENERIC_ERROR_MESSAGE)
            return False
        self._dialogue.reset(reason="thread_deleted")
        self._dialogue.observe(self.messages)
        return True

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _run_turn(self, turn: TurnState) -> None:
        thread_id, new_chat = self._threads.request_options()
        settled = False
        try:
            stream = self._client.stream_chat(
                turn.prompt,
                thread_id=thread_id,
                new_chat=new_chat,
                on_line=self._on_stream_line,
            )
            async with contextlib.aclosing(stream) as events:
                async for event in events:
                    turn.event_count += 1
                    if self._dispatch(turn, event):
                        settled = True
                        # At most one done per request; nothing after it is rendered.
                        break
            if not settled:
                LOGGER.debug("SessionOrchestrator: stream closed without done, turn_id=%s", turn.turn_id)
                self._settle(turn, DoneEvent(), synthesized=True)
        except asyncio.CancelledError:
            self._finish_canceled(turn)
            raise
        except Exception as exc:
            self._fail(turn, exc)

        # The session stays busy until the roster reflects the settled turn.
        try:
            if turn.is_successful:
                await self._threads.refresh_roster()
        finally:
            self._set_phase(SessionPhase.IDLE)
            self._dialogue.observe(self.messages)

    def _on_stream_line(self, line: str) -> None:
        """Any complete line, including keep-alives, means the reply is streaming."""

        if self._phase is SessionPhase.SENDING:
            self._set_phase(SessionPhase.STREAMING)

    def _dispatch(self, turn: TurnState, event: StreamEvent) -> bool:
        """Apply one event; returns True when it settled the turn."""

        if isinstance(event, ChunkEvent):
            had_indicator = self._accumulator.thinking_text is not None
            self._accumulator.on_chunk(event.text)
            if had_indicator:
                self._bus.publish(ThinkingChanged(turn_id=turn.turn_id, text=None))
            self._bus.publish(StreamChunkReceived(turn_id=turn.turn_id, content=event.text))
        elif isinstance(event, ThinkingEvent):
            self._accumulator.on_thinking(event.text)
            self._bus.publish(ThinkingChanged(turn_id=turn.turn_id, text=self._accumulator.thinking_text))
        elif isinstance(event, DoneEvent):
            self._settle(turn, event)
            return True
        elif isinstance(event, ErrorEvent):
            # Partial content already streamed stays in the transcript.
            self._error = event.message
            turn.stream_errors.append(event.message)
            LOGGER.info("SessionOrchestrator: stream error, turn_id=%s: %s", turn.turn_id, event.message)
            self._bus.publish(StreamErrorRaised(turn_id=turn.turn_id, message=event.message))
        return False

    def _settle(self, turn: TurnState, event: DoneEvent, *, synthesized: bool = False) -> None:
        product_ids = list(event.product_ids)
        self._accumulator.on_done(product_ids, event.meta)
        self._threads.note_turn_completed(event.thread_id)
        turn.mark_completed(product_ids, event.thread_id, synthesized=synthesized)
        self._notify_cart()

        LOGGER.debug(
            "SessionOrchestrator: turn completed, turn_id=%s, products=%d, synthesized=%s",
            turn.turn_id,
            len(product_ids),
            synthesized,
        )
        self._bus.publish(TurnCompleted(
            turn_id=turn.turn_id,
            product_ids=product_ids,
            thread_id=event.thread_id,
            synthesized=synthesized,
            meta=event.meta.to_dict() if event.meta.has_references else {},
        ))

    def _fail(self, turn: TurnState, exc: Exception) -> None:
        message = _error_text(exc, GENERIC_ERROR_MESSAGE)
        if isinstance(exc, ApiError):
            LOGGER.warning("SessionOrchestrator: turn failed, turn_id=%s, error=%s", turn.turn_id, message)
        else:
            LOGGER.warning("SessionOrchestrator: turn failed, turn_id=%s", turn.turn_id, exc_info=exc)
        self._accumulator.finalize()
        self._accumulator.append_error(message)
        self._error = message
        turn.mark_failed(message)
        self._bus.publish(TurnFailed(turn_id=turn.turn_id, error=message))

    def _finish_canceled(self, turn: TurnState) -> None:
        self._accumulator.finalize()
        turn.mark_canceled()
        LOGGER.debug("SessionOrchestrator: turn canceled, turn_id=%s", turn.turn_id)
        self._bus.publish(TurnCanceled(turn_id=turn.turn_id))
        self._set_phase(SessionPhase.IDLE)
        self._dialogue.observe(self.messages)

    def _notify_cart(self) -> None:
        cart = self._context.cart
        if cart is None:
            return
        try:
            result = cart.refresh()
        except Exception:
            LOGGER.debug("Cart refresh failed to start", exc_info=True)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._background.add(future)
            future.add_done_callback(self._on_background_done)

    def _on_background_done(self, future: asyncio.Future[Any]) -> None:
        self._background.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.debug("Background cart refresh failed: %s", exc)

    async def _cancel_in_flight(self) -> None:
        task = self._task
        if not self.abort() or task is None:
            return
        await asyncio.gather(task, return_exceptions=True)

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        self._bus.publish(PhaseChanged(phase=phase.value))


def _error_text(exc: BaseException, fallback: str) -> str:
    text = str(exc).strip()
    return text or fallback


__all__ = [
    "CartRefresher",
    "SUGGESTED_QUESTIONS",
    "SessionContext",
    "SessionOrchestrator",
]
