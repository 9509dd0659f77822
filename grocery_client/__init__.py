"""Client-side pieces of the grocery app: the shared cart and the HTTP API client."""

from .cart import CartLine, CartService, CartStore
from .api import ApiError, GroceryApiClient, NetworkError, RequestTimeoutError

__all__ = [
    "CartLine",
    "CartService",
    "CartStore",
    "ApiError",
    "GroceryApiClient",
    "NetworkError",
    "RequestTimeoutError",
]
