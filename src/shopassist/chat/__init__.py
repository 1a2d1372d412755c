"""Transcript models and the streaming message accumulator."""

from .accumulator import DEFAULT_THINKING_TEXT, MessageAccumulator
from .message_model import Address, ChatMessage, ChatReply, DoneMeta, HistoryPage, Thread

__all__ = [
    "Address",
    "ChatMessage",
    "ChatReply",
    "DEFAULT_THINKING_TEXT",
    "DoneMeta",
    "HistoryPage",
    "MessageAccumulator",
    "Thread",
]
