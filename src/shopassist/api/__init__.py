"""HTTP access to the chat agent and storefront collaborators."""

from .client import CommerceClient, unwrap
from .errors import ApiError, StreamUnavailableError

__all__ = ["ApiError", "CommerceClient", "StreamUnavailableError", "unwrap"]
