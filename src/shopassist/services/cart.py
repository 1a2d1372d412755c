"""Client-side view of the shopping cart, refreshed after agent turns."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Mapping, Protocol

LOGGER = logging.getLogger(__name__)


class CartSource(Protocol):
    def get_cart(self) -> Awaitable[Any]:
        ...


class CartState:
    """Holds the last fetched cart.

    A failed refresh drops the cached cart instead of raising, so callers
    can fire-and-forget :meth:`refresh`.
    """

    def __init__(self, source: CartSource) -> None:
        self._source = source
        self._cart: Mapping[str, Any] | None = None

    @property
    def cart(self) -> Mapping[str, Any] | None:
        return self._cart

    async def refresh(self) -> Mapping[str, Any] | None:
        try:
            cart = await self._source.get_cart()
        except Exception as exc:
            LOGGER.debug("Cart refresh failed: %s", exc)
            self._cart = None
            return None
        self._cart = cart if isinstance(cart, Mapping) else None
        return self._cart

    @property
    def total_items(self) -> int:
        return sum(_quantity(item) for item in self._items())

    def quantity_for(self, product_id: str) -> int:
        for item in self._items():
            product = item.get("product")
            item_id = product.get("_id") if isinstance(product, Mapping) else None
            if (item_id or item.get("productId")) == product_id:
                return _quantity(item)
        return 0

    def _items(self) -> list[Mapping[str, Any]]:
        items = (self._cart or {}).get("items")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, Mapping)]


def _quantity(item: Mapping[str, Any]) -> int:
    try:
        return int(item.get("quantity") or 0)
    except (TypeError, ValueError):
        return 0


__all__ = ["CartSource", "CartState"]
