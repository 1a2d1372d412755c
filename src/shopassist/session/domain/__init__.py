"""Domain layer for the chat session.

Domain managers own state and business rules and talk to the host only
through the event bus.

Domain Managers:
    - ThreadManager: Active thread and thread roster lifecycle
    - DialogueController: Address/payment slot filling for the buy flow
    - SessionOrchestrator: Turn execution state machine

All domain managers receive their collaborators via constructor injection.
"""

from __future__ import annotations

from .dialogue_controller import DialogueController, PaymentMethod, QuickActionMode
from .orchestrator import SUGGESTED_QUESTIONS, SessionContext, SessionOrchestrator
from .thread_manager import ThreadManager

__all__: list[str] = [
    "DialogueController",
    "PaymentMethod",
    "QuickActionMode",
    "SUGGESTED_QUESTIONS",
    "SessionContext",
    "SessionOrchestrator",
    "ThreadManager",
]
