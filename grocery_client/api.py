"""
HTTP client for the grocery orders service.

Requests are bounded by a timeout. Catalog reads remember their last
successful response and serve it when the service cannot be reached; every
other call surfaces the failure to the caller.
"""

import copy
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
from cachetools import LRUCache

from .cart import CartStore
from .config import get_client_settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """The service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any):
        detail = body.get("detail") if isinstance(body, dict) else body
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.body = body


class NetworkError(Exception):
    """The request never got an answer; safe to retry."""
    retryable = True


class RequestTimeoutError(NetworkError):
    pass


class GroceryApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        cache_size: Optional[int] = None,
    ):
        settings = get_client_settings()
        self._client = httpx.Client(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            transport=transport,
        )
        self._cache: LRUCache = LRUCache(maxsize=cache_size or settings.RESPONSE_CACHE_SIZE)
        self.token = token

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        cacheable: bool = False,
    ) -> Any:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        cache_key = (path, tuple(sorted(params.items())))
        try:
            response = self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            return self._fallback(cache_key, cacheable, RequestTimeoutError(f"{method} {path} timed out"), exc)
        except httpx.TransportError as exc:
            return self._fallback(cache_key, cacheable, NetworkError(f"{method} {path} failed: {exc}"), exc)

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise ApiError(response.status_code, body)

        data = response.json() if response.content else None
        if cacheable:
            self._cache[cache_key] = copy.deepcopy(data)
        return data

    def _fallback(self, cache_key, cacheable: bool, error: NetworkError, cause: Exception) -> Any:
        if cacheable and cache_key in self._cache:
            logger.warning(f"{error}; serving cached response for {cache_key[0]}")
            return copy.deepcopy(self._cache[cache_key])
        raise error from cause

    # -- catalog ------------------------------------------------------------

    def list_products(self, category_id: Optional[int] = None, search: Optional[str] = None) -> List[dict]:
        return self._request("GET", "/api/products",
                             params={"category_id": category_id, "search": search}, cacheable=True)

    def get_product(self, product_id: int) -> dict:
        return self._request("GET", f"/api/products/{product_id}", cacheable=True)

    def list_categories(self) -> List[dict]:
        return self._request("GET", "/api/categories", cacheable=True)

    # -- orders -------------------------------------------------------------

    def create_order(
        self,
        user_id: int,
        items: List[dict],
        delivery_address: dict,
        total_amount: Optional[float] = None,
    ) -> dict:
        payload = {"user_id": user_id, "items": items, "delivery_address": delivery_address}
        if total_amount is not None:
            payload["total_amount"] = total_amount
        return self._request("POST", "/api/orders", json=payload)

    def list_user_orders(self, user_id: int, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        return self._request("GET", f"/api/orders/user/{user_id}",
                             params={"status": status, "page": page, "limit": limit})

    def get_order(self, order_id: int) -> dict:
        return self._request("GET", f"/api/orders/{order_id}")

    def list_orders(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        return self._request("GET", "/api/orders", params={"status": status, "page": page, "limit": limit})

    def accept_order(self, order_id: int) -> dict:
        return self._request("POST", f"/api/orders/{order_id}/accept")

    def reject_order(self, order_id: int, reason: str) -> dict:
        return self._request("POST", f"/api/orders/{order_id}/reject", json={"reason": reason})

    def update_order_status(self, order_id: int, status: str, rejection_reason: Optional[str] = None) -> dict:
        payload = {"status": status}
        if rejection_reason is not None:
            payload["rejectionReason"] = rejection_reason
        return self._request("PUT", f"/api/orders/{order_id}/status", json=payload)

    # -- riders -------------------------------------------------------------

    def get_rider_profile(self) -> dict:
        return self._request("GET", "/api/riders/profile")

    def update_rider_profile(self, **changes: Any) -> dict:
        return self._request("PUT", "/api/riders/profile", json=changes)

    def checkout(self, cart: CartStore, user_id: int, delivery_address: dict) -> dict:
        """Place an order for the cart's current contents and empty the cart once it is accepted."""
        lines = cart.get_snapshot()
        if not lines:
            raise ValueError("Cart is empty")
        items = [
            {"product_id": line.product_id, "name": line.name, "quantity": line.quantity,
             "price": float(line.unit_price)}
            for line in lines
        ]
        # Same cent arithmetic as the server, so the totals agree exactly
        total = float(sum((line.line_total for line in lines), Decimal("0.00")))
        order = self.create_order(user_id, items, delivery_address, total_amount=total)
        cart.clear()
        return order
