"""Order status state machine.

``TRANSITIONS`` is the single source of truth for which status may follow
which; accept, reject and every admin-driven advance are checked against it.
"""
from enum import Enum
from .errors import AuthorizationError, InvalidTransitionError


class OrderStatus(str, Enum):
    PENDING_ADMIN_DECISION = "PENDING_ADMIN_DECISION"
    ADMIN_ACCEPTED = "ADMIN_ACCEPTED"
    PREPARING = "PREPARING"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    REJECTED_BY_ADMIN = "REJECTED_BY_ADMIN"
    CANCELLED = "CANCELLED"


INITIAL_STATUS = OrderStatus.PENDING_ADMIN_DECISION
ACCEPTED_STATUS = OrderStatus.ADMIN_ACCEPTED

TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.REJECTED_BY_ADMIN,
    OrderStatus.CANCELLED,
})

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_ADMIN_DECISION: frozenset({
        OrderStatus.ADMIN_ACCEPTED,
        OrderStatus.REJECTED_BY_ADMIN,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ADMIN_ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.READY_FOR_DELIVERY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.REJECTED_BY_ADMIN: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is an edge."""
    if not can_transition(current, target):
        raise InvalidTransitionError(OrderStatus(current).value, OrderStatus(target).value)


# Delivery steps a rider may take on an order handed to them
RIDER_TARGETS = frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED})


def ensure_rider_may(target: OrderStatus) -> None:
    if OrderStatus(target) not in RIDER_TARGETS:
        raise AuthorizationError(f"Riders cannot move orders to {OrderStatus(target).value}")
