"""Session layer: events, turn state and domain managers."""

from .events import EventBus
from .models import SessionPhase, TurnState, TurnStatus

__all__ = ["EventBus", "SessionPhase", "TurnState", "TurnStatus"]
