import re

import pytest
from sqlalchemy import func, select

from app.application.schemas import OrderCreate, OrderItemCreate
from app.application.service import OrderService
from app.domain.errors import (
    AuthorizationError, InvalidTransitionError, NotFoundError, PersistenceError, ValidationError,
)
from app.domain.lifecycle import OrderStatus
from app.domain.models import Order, OrderItem
from app.infrastructure.db import SessionLocal


@pytest.fixture
def admin_conn(notifier, make_connection, admin_token):
    conn = make_connection("admin-1")
    notifier.connect(conn)
    assert notifier.join_admin_audience(conn, admin_token)
    return conn


@pytest.fixture
def service(db, notifier):
    return OrderService(db, notifier)


@pytest.fixture
def order(service, make_payload):
    return service.create(OrderCreate(**make_payload()))


# Paths that bring a fresh order into each non-pending status
PATHS = {
    OrderStatus.ADMIN_ACCEPTED: ["ADMIN_ACCEPTED"],
    OrderStatus.PREPARING: ["ADMIN_ACCEPTED", "PREPARING"],
    OrderStatus.READY_FOR_DELIVERY: ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY"],
    OrderStatus.OUT_FOR_DELIVERY: ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY", "OUT_FOR_DELIVERY"],
    OrderStatus.DELIVERED: ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY", "OUT_FOR_DELIVERY", "DELIVERED"],
    OrderStatus.REJECTED_BY_ADMIN: ["REJECTED_BY_ADMIN"],
    OrderStatus.CANCELLED: ["CANCELLED"],
}


def drive(service, order_id, path):
    for status in path:
        service.advance(order_id, status, reason="Out of stock")


def count_rows(db, model):
    return db.scalar(select(func.count()).select_from(model))


def test_create_order_scenario(service, make_payload, admin_conn):
    order = service.create(OrderCreate(**make_payload()))

    assert isinstance(order.id, int)
    assert order.status == "PENDING_ADMIN_DECISION"
    assert order.total_amount == 100
    assert order.rejection_reason is None
    assert re.fullmatch(r"ORD-\d{8}-\d{6}", order.order_number)
    assert len(order.items) == 1
    assert order.items[0].product_id == "P1"
    assert order.items[0].total == 100

    new_orders = admin_conn.of("new_order")
    assert len(new_orders) == 1
    assert new_orders[0]["id"] == order.id
    assert new_orders[0]["items"][0]["total"] == 100


def test_order_numbers_are_unique(service, make_payload):
    numbers = {service.create(OrderCreate(**make_payload())).order_number for _ in range(5)}
    assert len(numbers) == 5


def test_total_is_computed_when_omitted(service, make_payload):
    payload = make_payload(total_amount=None, items=[
        {"product_id": "P1", "quantity": 2, "price": 50},
        {"product_id": 7, "quantity": 3, "price": 1.5},
    ])
    order = service.create(OrderCreate(**payload))
    assert order.total_amount == 104.5
    assert [item.product_id for item in order.items] == ["P1", "7"]


def test_create_rejects_empty_items(service, make_payload, db):
    with pytest.raises(ValidationError) as excinfo:
        service.create(OrderCreate(**make_payload(items=[])))
    assert excinfo.value.errors[0]["field"] == "items"
    assert count_rows(db, Order) == 0


def test_create_rejects_blank_address_fields(service, make_payload):
    payload = make_payload()
    payload["delivery_address"]["street"] = "   "
    with pytest.raises(ValidationError) as excinfo:
        service.create(OrderCreate(**payload))
    assert {"field": "delivery_address.street", "message": "Field is required"} in excinfo.value.errors


def test_create_rejects_mismatched_total(service, make_payload):
    with pytest.raises(ValidationError) as excinfo:
        service.create(OrderCreate(**make_payload(total_amount=90)))
    assert excinfo.value.errors[0]["field"] == "total_amount"


def test_failed_item_insert_rolls_back_whole_order(service, make_payload, db, admin_conn):
    good = OrderItemCreate(product_id="P1", quantity=1, price=10)
    # Bypasses schema validation so the database constraint is what fails
    bad = OrderItemCreate.model_construct(product_id="P2", name=None, quantity=0, price=10)
    data = OrderCreate(**make_payload(total_amount=None, items=[]))
    data.items = [good, bad]

    before = (count_rows(db, Order), count_rows(db, OrderItem))
    with pytest.raises(PersistenceError):
        service.create(data)

    assert (count_rows(db, Order), count_rows(db, OrderItem)) == before
    assert admin_conn.of("new_order") == []


def test_accept_moves_to_admin_accepted_and_notifies(service, order, notifier, make_connection, admin_conn):
    tracker = make_connection("tracker")
    notifier.connect(tracker)
    notifier.subscribe(tracker, order.id)

    accepted = service.accept(order.id, actor="admin@example.com")

    assert accepted.status == "ADMIN_ACCEPTED"
    [update] = tracker.of("order_status_update")
    assert update["orderId"] == order.id
    assert update["status"] == "ADMIN_ACCEPTED"
    assert update["previousStatus"] == "PENDING_ADMIN_DECISION"
    assert update["updatedBy"] == "admin@example.com"
    [admin_update] = admin_conn.of("order_updated")
    assert admin_update["status"] == "ADMIN_ACCEPTED"


def test_double_accept_fails_second_time(service, order, db):
    service.accept(order.id)
    with pytest.raises(InvalidTransitionError) as excinfo:
        service.accept(order.id)

    assert excinfo.value.current == "ADMIN_ACCEPTED"
    assert excinfo.value.attempted == "ADMIN_ACCEPTED"
    assert service.get(order.id).status == "ADMIN_ACCEPTED"


@pytest.mark.parametrize("status", list(PATHS))
def test_accept_and_reject_require_pending(service, order, status):
    drive(service, order.id, PATHS[status])
    assert service.get(order.id).status == status.value

    with pytest.raises(InvalidTransitionError):
        service.accept(order.id)
    with pytest.raises(InvalidTransitionError):
        service.reject(order.id, "Too late")

    assert service.get(order.id).status == status.value


def test_reject_sets_reason(service, order, admin_conn):
    rejected = service.reject(order.id, "  Out of stock  ")
    assert rejected.status == "REJECTED_BY_ADMIN"
    assert rejected.rejection_reason == "Out of stock"
    assert admin_conn.of("order_updated")[0]["rejectionReason"] == "Out of stock"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(service, order, reason):
    with pytest.raises(ValidationError):
        service.reject(order.id, reason)
    assert service.get(order.id).status == "PENDING_ADMIN_DECISION"


def test_advance_follows_forward_edges_to_delivered(service, order):
    drive(service, order.id, PATHS[OrderStatus.DELIVERED])
    delivered = service.get(order.id)
    assert delivered.status == "DELIVERED"
    assert delivered.rejection_reason is None


def test_advance_cannot_skip_states(service, order):
    with pytest.raises(InvalidTransitionError) as excinfo:
        service.advance(order.id, "PREPARING")
    assert excinfo.value.current == "PENDING_ADMIN_DECISION"
    assert service.get(order.id).status == "PENDING_ADMIN_DECISION"


def test_advance_cannot_go_backwards(service, order):
    drive(service, order.id, ["ADMIN_ACCEPTED", "PREPARING"])
    with pytest.raises(InvalidTransitionError):
        service.advance(order.id, "ADMIN_ACCEPTED")


@pytest.mark.parametrize("status", [
    OrderStatus.PENDING_ADMIN_DECISION,
    OrderStatus.ADMIN_ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY,
])
def test_cancel_from_any_open_state(service, order, status):
    drive(service, order.id, PATHS.get(status, []))
    assert service.advance(order.id, "CANCELLED").status == "CANCELLED"


def test_advance_rejection_needs_reason(service, order):
    with pytest.raises(ValidationError):
        service.advance(order.id, "REJECTED_BY_ADMIN")
    assert service.advance(order.id, "REJECTED_BY_ADMIN", reason="Closed").rejection_reason == "Closed"


def test_advance_unknown_status(service, order):
    with pytest.raises(ValidationError):
        service.advance(order.id, "SHIPPED")


def test_transition_on_missing_order(service):
    with pytest.raises(NotFoundError):
        service.accept(999)
    with pytest.raises(NotFoundError):
        service.get(999)


def test_losing_a_concurrent_transition(service, order, monkeypatch):
    cas = service.orders.compare_and_set_status

    def racing_cas(order_id, expected, new, rejection_reason=None):
        other = SessionLocal()
        try:
            OrderService(other).reject(order_id, "Store closed")
        finally:
            other.close()
        return cas(order_id, expected, new, rejection_reason)

    monkeypatch.setattr(service.orders, "compare_and_set_status", racing_cas)

    with pytest.raises(InvalidTransitionError) as excinfo:
        service.accept(order.id)

    assert excinfo.value.current == "REJECTED_BY_ADMIN"
    monkeypatch.undo()
    assert service.get(order.id).status == "REJECTED_BY_ADMIN"


def test_notifier_failure_does_not_fail_transition(db, order, monkeypatch, notifier):
    def boom(*args, **kwargs):
        raise RuntimeError("socket layer down")

    monkeypatch.setattr(notifier, "publish_status_update", boom)
    accepted = OrderService(db, notifier).accept(order.id)
    assert accepted.status == "ADMIN_ACCEPTED"


def test_dashboard_stats(service, make_payload):
    first = service.create(OrderCreate(**make_payload()))
    second = service.create(OrderCreate(**make_payload()))
    service.create(OrderCreate(**make_payload()))
    drive(service, first.id, PATHS[OrderStatus.DELIVERED])
    service.reject(second.id, "No rider")

    stats = service.dashboard_stats()
    assert stats.total_orders == 3
    assert stats.pending_orders == 1
    assert stats.completed_orders == 1
    assert stats.rejected_orders == 1
    # Only the delivered order counts; the pending one is not revenue yet
    assert stats.total_revenue == 100


def test_list_page_filters_and_paginates(service, make_payload):
    orders = [service.create(OrderCreate(**make_payload())) for _ in range(3)]
    service.accept(orders[0].id)

    page, pagination = service.list_page(page=1, limit=2)
    assert len(page) == 2
    assert pagination == {"total": 3, "page": 1, "limit": 2, "pages": 2}

    accepted, pagination = service.list_page(status="ADMIN_ACCEPTED")
    assert [o.id for o in accepted] == [orders[0].id]
    assert pagination["total"] == 1

    with pytest.raises(ValidationError):
        service.list_page(status="NOPE")


def test_revenue_ignores_orders_not_yet_delivered(service, make_payload):
    order = service.create(OrderCreate(**make_payload()))
    drive(service, order.id, ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY", "OUT_FOR_DELIVERY"])
    service.create(OrderCreate(**make_payload()))

    assert service.dashboard_stats().total_revenue == 0


def test_sub_cent_prices_round_once_per_line(service, make_payload):
    payload = make_payload(total_amount=None, items=[
        {"product_id": "A", "quantity": 1, "price": 0.005},
        {"product_id": "B", "quantity": 1, "price": 0.005},
    ])
    order = service.create(OrderCreate(**payload))

    assert [item.price for item in order.items] == [0.01, 0.01]
    assert order.total_amount == 0.02
    assert round(sum(item.total for item in order.items), 2) == order.total_amount


def test_line_total_uses_the_rounded_unit_price(service, make_payload):
    payload = make_payload(total_amount=2.03, items=[
        {"product_id": "A", "quantity": 3, "price": 0.335},
        {"product_id": "B", "quantity": 1, "price": 1.01},
    ])
    order = service.create(OrderCreate(**payload))

    assert [item.total for item in order.items] == [1.02, 1.01]
    assert order.total_amount == 2.03


def test_total_mismatch_by_a_cent_is_rejected(service, make_payload):
    payload = make_payload(total_amount=1.01, items=[{"product_id": "A", "quantity": 3, "price": 0.335}])
    with pytest.raises(ValidationError):
        service.create(OrderCreate(**payload))


def test_list_page_by_user(service, make_payload):
    mine = [service.create(OrderCreate(**make_payload(user_id=7))) for _ in range(2)]
    service.create(OrderCreate(**make_payload(user_id=8)))

    orders, pagination = service.list_page(user_id=7)
    assert sorted(o.id for o in orders) == sorted(o.id for o in mine)
    assert pagination["total"] == 2

    service.accept(mine[0].id)
    accepted, _ = service.list_page(status="ADMIN_ACCEPTED", user_id=7)
    assert [o.id for o in accepted] == [mine[0].id]


@pytest.mark.parametrize("status", ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY", "CANCELLED", "REJECTED_BY_ADMIN"])
def test_rider_cannot_take_kitchen_or_admin_steps(service, order, status):
    with pytest.raises(AuthorizationError):
        service.advance(order.id, status, reason="x", by_rider=True)
    assert service.get(order.id).status == "PENDING_ADMIN_DECISION"


def test_rider_delivers(service, order, admin_conn):
    drive(service, order.id, ["ADMIN_ACCEPTED", "PREPARING", "READY_FOR_DELIVERY"])

    service.advance(order.id, "OUT_FOR_DELIVERY", actor="rider@example.com", by_rider=True)
    delivered = service.advance(order.id, "DELIVERED", actor="rider@example.com", by_rider=True)

    assert delivered.status == "DELIVERED"
    assert admin_conn.of("order_updated")[-1]["updatedBy"] == "rider@example.com"


def test_rider_still_follows_the_graph(service, order):
    with pytest.raises(InvalidTransitionError):
        service.advance(order.id, "DELIVERED", by_rider=True)
