"""
In-memory shopping cart with synchronous change notification.

Screens share one ``CartService`` instance and subscribe to it; every change
is pushed to all subscribers as a full snapshot, so each subscriber can
re-render from scratch without asking for the cart again.
"""

import copy
import logging
import threading
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_cents(value: Any) -> Decimal:
    """Round a price to the cent, half up, the way the orders service does."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class CartLine(BaseModel):
    product_id: str
    name: str = "Unnamed Product"
    price: float = 0.0
    quantity: int = Field(default=1, ge=1)
    unit: str = "1 pc"
    added_at: datetime = Field(default_factory=datetime.utcnow)
    product: Dict[str, Any] = Field(default_factory=dict)

    @property
    def unit_price(self) -> Decimal:
        return to_cents(self.price)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


CartObserver = Callable[[List[CartLine]], None]


class CartStore(Protocol):
    """What screens may rely on; ``CartService`` is the implementation."""

    def add(self, product: Dict[str, Any], quantity: int = 1) -> List[CartLine]: ...

    def remove(self, product_id: Any) -> List[CartLine]: ...

    def set_quantity(self, product_id: Any, quantity: int) -> List[CartLine]: ...

    def clear(self) -> List[CartLine]: ...

    def subscribe(self, observer: CartObserver) -> Callable[[], None]: ...

    def get_snapshot(self) -> List[CartLine]: ...


class CartService:
    """
    Product id -> line mapping, kept in insertion order.

    Snapshots are deep copies: mutating a snapshot never reaches the cart or
    the other subscribers.
    """

    def __init__(self):
        self._lines: Dict[str, CartLine] = {}
        self._observers: List[CartObserver] = []
        self._lock = threading.RLock()

    @staticmethod
    def _product_id(product: Dict[str, Any]) -> str:
        product_id = product.get("id", product.get("product_id"))
        if product_id is None or product_id == "":
            raise ValueError("Product must have an id")
        return str(product_id)

    def add(self, product: Dict[str, Any], quantity: int = 1) -> List[CartLine]:
        """Add ``quantity`` of ``product``; an existing line grows instead of duplicating."""
        product_id = self._product_id(product)
        quantity = max(1, quantity)
        with self._lock:
            line = self._lines.get(product_id)
            if line is not None:
                line.quantity += quantity
            else:
                self._lines[product_id] = CartLine(
                    product_id=product_id,
                    name=product.get("name") or "Unnamed Product",
                    price=float(product.get("price") or 0),
                    quantity=quantity,
                    unit=product.get("unit") or "1 pc",
                    product=copy.deepcopy(dict(product)),
                )
        return self._changed()

    def set_quantity(self, product_id: Any, quantity: int) -> List[CartLine]:
        if quantity <= 0:
            return self.remove(product_id)
        with self._lock:
            line = self._lines.get(str(product_id))
            if line is not None:
                line.quantity = quantity
        return self._changed()

    def remove(self, product_id: Any) -> List[CartLine]:
        with self._lock:
            self._lines.pop(str(product_id), None)
        return self._changed()

    def clear(self) -> List[CartLine]:
        with self._lock:
            self._lines.clear()
        return self._changed()

    def get_snapshot(self) -> List[CartLine]:
        with self._lock:
            return [line.model_copy(deep=True) for line in self._lines.values()]

    def get_line(self, product_id: Any) -> Optional[CartLine]:
        with self._lock:
            line = self._lines.get(str(product_id))
            return line.model_copy(deep=True) if line is not None else None

    @property
    def item_count(self) -> int:
        with self._lock:
            return sum(line.quantity for line in self._lines.values())

    @property
    def total(self) -> float:
        with self._lock:
            return float(sum((line.line_total for line in self._lines.values()), Decimal("0.00")))

    def subscribe(self, observer: CartObserver) -> Callable[[], None]:
        """Register ``observer``, call it once with the current cart and return an unsubscribe handle."""
        if not callable(observer):
            raise TypeError("observer must be callable")
        with self._lock:
            self._observers.append(observer)
        self._notify_one(observer, self.get_snapshot())

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def close(self) -> None:
        """Drop every observer and line."""
        with self._lock:
            self._observers.clear()
            self._lines.clear()

    def _changed(self) -> List[CartLine]:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            # Each observer gets its own copy
            self._notify_one(observer, self.get_snapshot())
        return self.get_snapshot()

    @staticmethod
    def _notify_one(observer: CartObserver, snapshot: List[CartLine]) -> None:
        try:
            observer(snapshot)
        except Exception:
            logger.error("Error in cart update listener", exc_info=True)
