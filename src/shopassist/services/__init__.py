"""Configuration and storefront collaborator services."""

from .cart import CartSource, CartState
from .settings import Settings

__all__ = ["CartSource", "CartState", "Settings"]
