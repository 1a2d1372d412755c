"""Chat transcript, thread, and address data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, Optional

ChatRole = Literal["user", "assistant"]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True, slots=True)
class DoneMeta:
    """Purchase-flow references attached to a settled assistant turn."""

    order_id: str | None = None
    invoice_id: str | None = None
    payment_url: str | None = None
    payment_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DoneMeta":
        return cls(
            order_id=_optional_str(payload.get("orderId")),
            invoice_id=_optional_str(payload.get("invoiceId")),
            payment_url=_optional_str(payload.get("paymentUrl") or payload.get("mockPaymentUrl")),
            payment_id=_optional_str(payload.get("paymentId")),
        )

    @property
    def has_references(self) -> bool:
        return any((self.order_id, self.invoice_id, self.payment_url, self.payment_id))

    def payment_link(self) -> str | None:
        """Return the in-app route that completes payment, if any."""

        if self.payment_url and self.payment_url.startswith("/"):
            return self.payment_url
        if self.payment_url or self.payment_id:
            return f"/pay/{self.payment_id or ''}"
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "invoiceId": self.invoice_id,
            "paymentUrl": self.payment_url,
            "paymentId": self.payment_id,
        }


@dataclass(slots=True)
class ChatMessage:
    """Represents a row inside the conversation transcript."""

    role: ChatRole
    content: str
    streaming: bool = False
    product_ids: list[str] = field(default_factory=list)
    meta: Optional[DoneMeta] = None
    error: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_history(cls, payload: Mapping[str, Any]) -> "ChatMessage":
        """Map a server history row onto a settled transcript message."""

        role: ChatRole = "assistant" if payload.get("role") == "assistant" else "user"
        content = payload.get("content")
        return cls(
            role=role,
            content=content if isinstance(content, str) else "",
            product_ids=_string_list(payload.get("productIds")),
            created_at=_parse_timestamp(payload.get("createdAt")) or _utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "streaming": self.streaming,
            "productIds": list(self.product_ids),
            "created_at": self.created_at.isoformat(),
        }
        if self.meta is not None:
            payload["meta"] = self.meta.to_dict()
        if self.error:
            payload["error"] = True
        return payload


@dataclass(slots=True)
class Thread:
    """Server-tracked conversation, as listed in the thread roster."""

    thread_id: str
    title: str | None = None
    last_message_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Thread | None":
        thread_id = payload.get("threadId") or payload.get("thread_id")
        if not thread_id:
            return None
        title = payload.get("title")
        return cls(
            thread_id=str(thread_id),
            title=title if isinstance(title, str) and title else None,
            last_message_at=_parse_timestamp(payload.get("lastMessageAt")),
        )


@dataclass(frozen=True, slots=True)
class Address:
    """Saved delivery address offered during the buy flow."""

    id: str
    label: str | None = None
    is_default: bool = False
    city: str | None = None
    state: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Address | None":
        address_id = payload.get("_id") or payload.get("id")
        if not address_id:
            return None
        return cls(
            id=str(address_id),
            label=_optional_str(payload.get("label")),
            is_default=bool(payload.get("isDefault")),
            city=_optional_str(payload.get("city")),
            state=_optional_str(payload.get("state")),
        )

    @property
    def display_label(self) -> str:
        return self.label or "Address"

    @property
    def location(self) -> str:
        return ", ".join(part for part in (self.city, self.state) if part)


@dataclass(slots=True)
class HistoryPage:
    """Messages restored for one thread."""

    messages: list[ChatMessage] = field(default_factory=list)
    thread_id: str | None = None


@dataclass(slots=True)
class ChatReply:
    """Complete reply returned by the non-streaming chat endpoint."""

    message: str = ""
    product_ids: list[str] = field(default_factory=list)
    thread_id: str | None = None


__all__ = [
    "ChatRole",
    "DoneMeta",
    "ChatMessage",
    "Thread",
    "Address",
    "HistoryPage",
    "ChatReply",
]
