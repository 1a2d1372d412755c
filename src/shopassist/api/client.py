"""Async HTTP client for the storefront chat agent and its collaborators."""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..chat.message_model import Address, ChatMessage, ChatReply, HistoryPage, Thread
from ..services.settings import Settings, redact_secret
from ..stream import StreamEvent, iter_stream_events
from .errors import ApiError, StreamUnavailableError

LOGGER = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
HISTORY_PATH = "/api/chat/history"
THREADS_PATH = "/api/chat/threads"
ADDRESSES_PATH = "/api/addresses"
CART_PATH = "/api/cart"


def unwrap(payload: Any) -> Any:
    """Strip the ``{success, data}`` envelope the backend wraps responses in."""

    if isinstance(payload, Mapping) and payload.get("data") is not None:
        return payload["data"]
    return payload


class CommerceClient:
    """Async client for chat streaming, thread history, addresses and cart.

    Chat sends are never retried. Idempotent reads retry on transport
    timeouts and connection failures.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings, transport)

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def stream_chat(
        self,
        message: str,
        *,
        thread_id: str | None = None,
        new_chat: bool = False,
        on_line: Optional[Callable[[str], None]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send ``message`` and yield the reply's stream events as they arrive.

        Raises:
            ApiError: The server answered with a non-success status before
                streaming began.
            StreamUnavailableError: The response carried no body to stream.
        """

        body: Dict[str, Any] = {"message": message}
        if thread_id:
            body["thread_id"] = thread_id
        if new_chat:
            body["new_chat"] = True
        LOGGER.debug(
            "Opening chat stream (thread=%s, new_chat=%s, %d chars)",
            thread_id,
            new_chat,
            len(message),
        )

        # No read timeout: a stalled stream only ends when the transport closes.
        timeout = httpx.Timeout(self._settings.request_timeout, connect=self._settings.connect_timeout, read=None)
        async with self._client.stream(
            "POST",
            CHAT_PATH,
            params={"stream": "1"},
            json=body,
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            if response.is_error:
                await response.aread()
                raise ApiError.from_response(response.status_code, _decode_json(response), response.reason_phrase)
            if response.status_code == 204:
                raise StreamUnavailableError()
            async for event in iter_stream_events(response.aiter_bytes(), on_line=on_line):
                yield event

    async def send_message(self, message: str, *, thread_id: str | None = None) -> ChatReply:
        """Send ``message`` and return the complete reply without streaming."""

        body: Dict[str, Any] = {"message": message}
        if thread_id:
            body["thread_id"] = thread_id
        payload = unwrap(await self._request("POST", CHAT_PATH, json=body))
        if not isinstance(payload, Mapping):
            return ChatReply()
        product_ids = payload.get("productIds")
        thread = payload.get("thread_id") or payload.get("threadId")
        return ChatReply(
            message=str(payload.get("message") or ""),
            product_ids=[str(item) for item in product_ids] if isinstance(product_ids, list) else [],
            thread_id=str(thread) if thread else None,
        )

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def fetch_history(self, thread_id: str | None = None, *, limit: int | None = None) -> HistoryPage:
        """Return the stored messages for ``thread_id`` (or the server's default thread)."""

        params: Dict[str, str] = {}
        if thread_id:
            params["thread_id"] = thread_id
        if limit is not None:
            params["limit"] = str(self._settings.clamped_history_limit(limit))
        payload = unwrap(await self._get(HISTORY_PATH, params=params or None))
        if not isinstance(payload, Mapping):
            return HistoryPage()
        rows = payload.get("messages")
        messages = [ChatMessage.from_history(row) for row in rows if isinstance(row, Mapping)] if isinstance(rows, list) else []
        resolved = payload.get("thread_id") or payload.get("threadId")
        return HistoryPage(messages=messages, thread_id=str(resolved) if resolved else None)

    async def list_threads(self) -> List[Thread]:
        payload = unwrap(await self._get(THREADS_PATH))
        rows = payload.get("threads") if isinstance(payload, Mapping) else None
        if not isinstance(rows, list):
            return []
        threads = [Thread.from_payload(row) for row in rows if isinstance(row, Mapping)]
        return [thread for thread in threads if thread is not None]

    async def rename_thread(self, thread_id: str, title: str) -> Any:
        """Rename ``thread_id``; the title is trimmed and capped before sending."""

        cleaned = str(title).strip()[: self._settings.max_title_chars]
        return unwrap(await self._request("PATCH", f"{THREADS_PATH}/{thread_id}", json={"title": cleaned}))

    async def delete_thread(self, thread_id: str) -> Any:
        return unwrap(await self._request("DELETE", f"{THREADS_PATH}/{thread_id}"))

    # ------------------------------------------------------------------
    # Storefront collaborators
    # ------------------------------------------------------------------

    async def list_addresses(self) -> List[Address]:
        rows = unwrap(await self._get(ADDRESSES_PATH))
        if not isinstance(rows, list):
            return []
        addresses = [Address.from_payload(row) for row in rows if isinstance(row, Mapping)]
        return [address for address in addresses if address is not None]

    async def get_cart(self) -> Any:
        return unwrap(await self._get(CART_PATH))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_client(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None,
    ) -> httpx.AsyncClient:
        headers: Dict[str, str] = dict(settings.default_headers or {})
        if settings.access_token:
            headers["Authorization"] = f"Bearer {settings.access_token}"
        if settings.debug_logging:
            LOGGER.debug(
                "Building HTTP client for %s (token=%s)",
                settings.base_url,
                redact_secret(settings.access_token) or "none",
            )
        return httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout),
            transport=transport,
        )

    async def _get(self, path: str, *, params: Mapping[str, str] | None = None) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return await self._request("GET", path, params=params)
        return None  # pragma: no cover - AsyncRetrying reraises

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        payload = _decode_json(response)
        if response.is_error:
            raise ApiError.from_response(response.status_code, payload, response.reason_phrase)
        return payload

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    httpx.TimeoutException,
                    httpx.NetworkError,
                )
            ),
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client to release pooled connections."""

        close = getattr(self._client, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


__all__ = ["CommerceClient", "unwrap"]
