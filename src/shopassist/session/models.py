"""Session and turn state models.

These dataclasses and enums track one outstanding request from dispatch to
settlement. They are owned by the session orchestrator and echoed through
events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class SessionPhase(Enum):
    """Phase of the session's single request slot.

    Values:
        IDLE: No request in flight; sends are accepted.
        SENDING: Request dispatched, no stream line processed yet.
        STREAMING: At least one stream event processed.
    """

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"


class TurnStatus(Enum):
    """Status of a turn in its lifecycle."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class TurnState:
    """State of one user → assistant exchange.

    Attributes:
        turn_id: Unique identifier for this turn.
        prompt: Text sent to the agent.
        display: Text shown for the user message.
        status: Current status of the turn.
        product_ids: Products referenced once settled.
        thread_id: Thread id reported by the ``done`` event.
        error: Transport error message if the turn failed.
        stream_errors: Messages of mid-stream ``error`` events.
        synthesized_done: True when the stream closed without a ``done``.
        event_count: Number of stream events processed.
    """

    turn_id: str
    prompt: str
    display: str
    status: TurnStatus = TurnStatus.RUNNING
    product_ids: list[str] = field(default_factory=list)
    thread_id: str | None = None
    error: str | None = None
    stream_errors: list[str] = field(default_factory=list)
    synthesized_done: bool = False
    event_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.status == TurnStatus.RUNNING

    @property
    def is_successful(self) -> bool:
        return self.status == TurnStatus.COMPLETED

    def mark_completed(self, product_ids: list[str], thread_id: str | None, *, synthesized: bool = False) -> None:
        self.status = TurnStatus.COMPLETED
        self.product_ids = list(product_ids)
        self.thread_id = thread_id
        self.synthesized_done = synthesized
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = TurnStatus.FAILED
        self.error = error
        self.completed_at = _utcnow()

    def mark_canceled(self) -> None:
        self.status = TurnStatus.CANCELED
        self.completed_at = _utcnow()


__all__ = ["SessionPhase", "TurnStatus", "TurnState"]
