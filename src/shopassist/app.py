"""Bootstrap helpers for hosts embedding a shopassist chat session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .api.client import CommerceClient
from .services.cart import CartState
from .services.settings import Settings
from .session.domain.orchestrator import SessionContext, SessionOrchestrator
from .session.events import EventBus
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionRuntime:
    """Container returned by :func:`create_session`."""

    settings: Settings
    client: CommerceClient
    cart: CartState
    bus: EventBus
    session: SessionOrchestrator

    async def aclose(self) -> None:
        """Stop the in-flight turn, then release the HTTP connection pool."""

        await self.session.close_panel()
        await self.client.aclose()


def configure_logging(settings: Settings, *, handler: logging.Handler | None = None) -> None:
    """Apply ``settings.debug_logging`` to the package loggers."""

    logging_utils.configure_logging(settings.debug_logging, handler=handler)


def load_settings(
    settings: Settings | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Return ``settings`` (or defaults) with host ``overrides`` applied."""

    base = settings or Settings()
    return base.merged(overrides) if overrides else base


def create_session(
    settings: Settings | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    bus: EventBus | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    log_handler: logging.Handler | None = None,
) -> SessionRuntime:
    """Wire the API client, cart and orchestrator for one chat panel.

    Args:
        settings: Connection settings and limits; defaults when omitted.
        overrides: Host configuration values applied on top of ``settings``.
        bus: Event bus to publish on; a private one is created when omitted.
        transport: Optional httpx transport, e.g. a mock in tests.
        log_handler: Handler receiving the package's log records.
    """

    active = load_settings(settings, overrides=overrides)
    configure_logging(active, handler=log_handler)
    client = CommerceClient(active, transport=transport)
    cart = CartState(client)
    event_bus = bus or EventBus()
    session = SessionOrchestrator(
        SessionContext(client=client, bus=event_bus, settings=active, cart=cart)
    )
    _LOGGER.debug("Session created for %s", active.base_url)
    return SessionRuntime(settings=active, client=client, cart=cart, bus=event_bus, session=session)


__all__ = ["SessionRuntime", "configure_logging", "create_session", "load_settings"]
