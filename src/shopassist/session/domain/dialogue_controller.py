"""Slot-filling dialogue for the conversational buy flow.

The agent asks for a delivery address and a payment method in free text.
This module guesses which of the two it is asking for from surface cues,
offers matching quick actions, and composes the reply once both slots
are chosen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Sequence

from ...chat.message_model import Address, ChatMessage
from ..events import AddressesRefreshed, EventBus, SlotsReset

if TYPE_CHECKING:  # pragma: no cover
    from ...api.client import CommerceClient

LOGGER = logging.getLogger(__name__)

ADDRESS_CUES: tuple[str, ...] = ("address",)
PAYMENT_CUES: tuple[str, ...] = ("payment", "method")
ADD_ADDRESS_ROUTE = "/profile/addresses"
DEFAULT_ADDRESS_REPLY = "Use my default address"
FALLBACK_SELECTION_DISPLAY = "Address and payment selected"


class PaymentMethod(Enum):
    """Payment method tokens understood by the agent."""

    CARD = "mock_card"
    UPI = "mock_upi"
    NETBANKING = "mock_netbanking"

    @property
    def label(self) -> str:
        return _PAYMENT_LABELS[self]

    @classmethod
    def coerce(cls, value: "PaymentMethod | str") -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(f"Unknown payment method: {value!r}") from None


_PAYMENT_LABELS = {
    PaymentMethod.CARD: "Card",
    PaymentMethod.UPI: "UPI",
    PaymentMethod.NETBANKING: "Net Banking",
}


@dataclass(frozen=True, slots=True)
class SlotInference:
    needs_address: bool = False
    needs_payment: bool = False

    @property
    def has_cue(self) -> bool:
        return self.needs_address or self.needs_payment


def infer_outstanding_slots(text: str | None) -> SlotInference:
    """Guess which purchase slots an assistant message is asking for.

    Pure keyword matching: any mention of a cue counts, including messages
    that merely talk about addresses or payments.
    """

    lowered = (text or "").lower()
    return SlotInference(
        needs_address=any(cue in lowered for cue in ADDRESS_CUES),
        needs_payment=any(cue in lowered for cue in PAYMENT_CUES),
    )


@dataclass(slots=True)
class DialogueSlots:
    address_id: str | None = None
    payment_method: PaymentMethod | None = None

    @property
    def complete(self) -> bool:
        return self.address_id is not None and self.payment_method is not None

    def clear(self) -> None:
        self.address_id = None
        self.payment_method = None


class QuickActionMode(Enum):
    JOINT_SELECTION = "joint_selection"
    ADD_ADDRESS = "add_address"
    DEFAULT_ADDRESS = "default_address"
    PAYMENT_METHOD = "payment_method"


@dataclass(frozen=True, slots=True)
class QuickReply:
    """One-tap reply: ``label`` is shown, ``text`` is sent."""

    label: str
    text: str


@dataclass(frozen=True, slots=True)
class QuickActions:
    """Affordance to present under the latest assistant message.

    ``replies`` is filled for the one-tap modes, ``addresses`` and
    ``payment_methods`` for the joint selector, and ``link`` for the
    add-address hand-off.
    """

    mode: QuickActionMode
    inference: SlotInference
    replies: tuple[QuickReply, ...] = ()
    addresses: tuple[Address, ...] = ()
    payment_methods: tuple[PaymentMethod, ...] = ()
    link: QuickReply | None = None


@dataclass(frozen=True, slots=True)
class FollowUp:
    """Composed user turn: ``text`` goes to the agent, ``display`` to the transcript."""

    text: str
    display: str


class DialogueController:
    """Tracks the address/payment slots between assistant turns.

    Slots are cleared whenever the transcript length changes, so a
    selection made for one question can never be replayed into a later,
    unrelated one.
    """

    def __init__(self, event_bus: EventBus, addresses: Sequence[Address] | None = None) -> None:
        self._bus = event_bus
        self._addresses: list[Address] = list(addresses or [])
        self._slots = DialogueSlots()
        self._observed_length: int | None = None

    @property
    def addresses(self) -> tuple[Address, ...]:
        return tuple(self._addresses)

    @property
    def slots(self) -> DialogueSlots:
        return self._slots

    @property
    def can_confirm(self) -> bool:
        return self._slots.complete

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def refresh_addresses(self, client: CommerceClient) -> tuple[Address, ...]:
        """Reload saved addresses; a failed request leaves an empty list."""

        try:
            addresses = await client.list_addresses()
        except Exception as exc:
            LOGGER.warning("DialogueController.refresh_addresses: failed: %s", exc)
            addresses = []
        self._addresses = list(addresses)
        self._bus.publish(AddressesRefreshed(count=len(self._addresses)))
        return self.addresses

    def observe(self, messages: Sequence[ChatMessage]) -> None:
        """Reset the slots if the transcript length changed since the last call."""

        length = len(messages)
        if self._observed_length is not None and self._observed_length != length:
            self.reset(reason="transcript_changed")
        self._observed_length = length

    def reset(self, reason: str = "reset") -> None:
        if self._slots.address_id is None and self._slots.payment_method is None:
            return
        self._slots.clear()
        LOGGER.debug("DialogueController: slots reset (%s)", reason)
        self._bus.publish(SlotsReset(reason=reason))

    def select_address(self, address_id: str) -> Address:
        for address in self._addresses:
            if address.id == address_id:
                self._slots.address_id = address.id
                return address
        raise ValueError(f"Unknown address: {address_id!r}")

    def select_payment(self, method: PaymentMethod | str) -> PaymentMethod:
        resolved = PaymentMethod.coerce(method)
        self._slots.payment_method = resolved
        return resolved

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def quick_actions(self, messages: Sequence[ChatMessage], *, busy: bool = False) -> QuickActions | None:
        """Return the affordance for the latest assistant message, if any."""

        if busy or not messages:
            return None
        last_assistant = next((m for m in reversed(messages) if m.role == "assistant"), None)
        inference = infer_outstanding_slots(last_assistant.content if last_assistant else "")
        if not inference.has_cue:
            return None

        has_addresses = bool(self._addresses)
        if inference.needs_address and inference.needs_payment and has_addresses:
            return QuickActions(
                mode=QuickActionMode.JOINT_SELECTION,
                inference=inference,
                addresses=self.addresses,
                payment_methods=tuple(PaymentMethod),
            )
        if inference.needs_address and not has_addresses:
            return QuickActions(
                mode=QuickActionMode.ADD_ADDRESS,
                inference=inference,
                link=QuickReply(label="Add address first →", text=ADD_ADDRESS_ROUTE),
            )
        if inference.needs_address:
            return QuickActions(
                mode=QuickActionMode.DEFAULT_ADDRESS,
                inference=inference,
                replies=(QuickReply(label="Use default address", text=DEFAULT_ADDRESS_REPLY),),
            )
        return QuickActions(
            mode=QuickActionMode.PAYMENT_METHOD,
            inference=inference,
            replies=tuple(QuickReply(label=method.label, text=method.value) for method in PaymentMethod),
        )

    def display_label(self) -> str | None:
        """Human-readable summary of the current selection, e.g. ``"Home, UPI"``."""

        if not self._slots.complete:
            return None
        address = next((a for a in self._addresses if a.id == self._slots.address_id), None)
        if address is None or self._slots.payment_method is None:
            return None
        return f"{address.display_label}, {self._slots.payment_method.label}"

    def confirm(self) -> FollowUp:
        """Compose the follow-up for the chosen slots and clear them.

        Raises:
            ValueError: If either slot is still empty.
        """
        if not self._slots.complete or self._slots.payment_method is None:
            raise ValueError("Both an address and a payment method must be selected")
        follow_up = FollowUp(
            text=f"{self._slots.address_id}, {self._slots.payment_method.value}",
            display=self.display_label() or FALLBACK_SELECTION_DISPLAY,
        )
        self.reset(reason="confirmed")
        return follow_up


__all__ = [
    "ADD_ADDRESS_ROUTE",
    "DEFAULT_ADDRESS_REPLY",
    "DialogueController",
    "DialogueSlots",
    "FollowUp",
    "PaymentMethod",
    "QuickActionMode",
    "QuickActions",
    "QuickReply",
    "SlotInference",
    "infer_outstanding_slots",
]
