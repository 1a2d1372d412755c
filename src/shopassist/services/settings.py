"""Session limits and connection settings supplied by the host application."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping

__all__ = [
    "Settings",
    "MAX_HISTORY_LIMIT",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
MAX_HISTORY_LIMIT = 50


@dataclass(slots=True)
class Settings:
    """Runtime configuration for the chat session engine.

    Nothing here is persisted; the host builds one per session, usually via
    :meth:`from_mapping` over whatever configuration it already has.
    """

    base_url: str = "http://localhost:5000"
    access_token: str = ""
    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    history_limit: int = MAX_HISTORY_LIMIT
    thread_roster_limit: int = 3
    max_message_chars: int = 2_000
    max_title_chars: int = 100
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None = None) -> Settings:
        """Build settings from host configuration.

        Unknown keys and ``None`` values are skipped so a host can pass its
        own config section through unchanged.
        """

        return cls().merged(values or {})

    def merged(self, values: Mapping[str, Any]) -> Settings:
        """Return a copy with ``values`` applied; ``default_headers`` are merged."""

        known = {item.name for item in fields(self)}
        accepted: Dict[str, Any] = {
            key: value for key, value in values.items() if key in known and value is not None
        }
        ignored = sorted(str(key) for key in values if key not in known)
        if ignored:
            LOGGER.debug("Ignoring unknown settings keys: %s", ignored)
        headers = accepted.get("default_headers")
        if isinstance(headers, Mapping):
            accepted["default_headers"] = {**self.default_headers, **headers}
        return replace(self, **accepted) if accepted else self

    def clamped_history_limit(self, limit: int | None = None) -> int:
        """Return ``limit`` (or the configured default) clamped to ``1..50``."""

        value = self.history_limit if limit is None else limit
        return max(1, min(MAX_HISTORY_LIMIT, int(value)))


def redact_secret(value: str | None) -> str:
    """Mask a bearer token for log output, keeping only its last four characters."""

    token = (value or "").strip()
    if len(token) <= 8:
        return "***" if token else ""
    return f"***{token[-4:]}"
