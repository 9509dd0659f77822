import pytest

from grocery_client.cart import CartService

MILK = {"id": "P1", "name": "Milk", "price": 27.5, "unit": "500 ml", "brand": {"name": "Amul"}}
BREAD = {"id": 2, "name": "Bread", "price": 40}


@pytest.fixture
def cart():
    service = CartService()
    yield service
    service.close()


def test_add_inserts_then_increments(cart):
    cart.add(MILK)
    cart.add(MILK, quantity=2)
    cart.add(BREAD)

    lines = cart.get_snapshot()
    assert [line.product_id for line in lines] == ["P1", "2"]
    assert lines[0].quantity == 3
    assert lines[0].unit == "500 ml"
    assert lines[1].unit == "1 pc"
    assert cart.item_count == 4
    assert cart.total == 122.5


def test_add_enforces_minimum_quantity(cart):
    cart.add(MILK, quantity=0)
    assert cart.get_line("P1").quantity == 1


def test_add_requires_product_id(cart):
    with pytest.raises(ValueError):
        cart.add({"name": "Mystery"})


@pytest.mark.parametrize("quantity", [0, -1, -10])
def test_set_quantity_at_or_below_zero_removes_line(cart, quantity):
    cart.add(MILK)
    cart.add(BREAD)
    cart.set_quantity("P1", 5)
    cart.set_quantity("P1", quantity)
    assert [line.product_id for line in cart.get_snapshot()] == ["2"]


def test_set_quantity_on_numeric_id(cart):
    cart.add(BREAD)
    cart.set_quantity(2, 4)
    assert cart.get_line("2").quantity == 4


def test_remove_missing_is_noop(cart):
    cart.add(MILK)
    cart.remove("nope")
    assert len(cart.get_snapshot()) == 1


def test_clear(cart):
    cart.add(MILK)
    cart.add(BREAD)
    assert cart.clear() == []
    assert cart.get_snapshot() == []


def test_snapshot_is_isolated(cart):
    cart.add(MILK)
    calls = []
    cart.subscribe(calls.append)
    snapshot = cart.get_snapshot()

    snapshot[0].quantity = 99
    snapshot[0].product["brand"]["name"] = "Other"
    snapshot.append(snapshot[0])

    fresh = cart.get_snapshot()
    assert len(fresh) == 1
    assert fresh[0].quantity == 1
    assert fresh[0].product["brand"]["name"] == "Amul"
    assert len(calls) == 1


def test_each_observer_gets_its_own_copy(cart):
    seen = []

    def vandal(lines):
        for line in lines:
            line.quantity = 0

    cart.subscribe(vandal)
    cart.subscribe(lambda lines: seen.append([line.quantity for line in lines]))
    cart.add(MILK, quantity=3)

    assert seen[-1] == [3]


def test_subscribe_delivers_current_state_immediately(cart):
    cart.add(MILK)
    received = []
    cart.subscribe(received.append)
    assert len(received) == 1
    assert received[0][0].product_id == "P1"


def test_every_change_notifies_full_snapshot(cart):
    received = []
    cart.subscribe(received.append)
    cart.add(MILK)
    cart.add(BREAD)
    cart.set_quantity("P1", 4)
    cart.remove("2")
    cart.clear()

    assert [[(l.product_id, l.quantity) for l in snap] for snap in received] == [
        [],
        [("P1", 1)],
        [("P1", 1), ("2", 1)],
        [("P1", 4), ("2", 1)],
        [("P1", 4)],
        [],
    ]


def test_unsubscribe_stops_notifications(cart):
    received = []
    unsubscribe = cart.subscribe(received.append)
    unsubscribe()
    unsubscribe()
    cart.add(MILK)
    assert len(received) == 1


def test_failing_observer_does_not_starve_others(cart):
    def broken(lines):
        raise RuntimeError("render failed")

    received = []
    cart.subscribe(broken)
    cart.subscribe(received.append)
    cart.add(MILK)

    assert len(received) == 2
    assert received[-1][0].product_id == "P1"


def test_subscribe_rejects_non_callable(cart):
    with pytest.raises(TypeError):
        cart.subscribe("not a function")


def test_independent_instances(cart):
    other = CartService()
    cart.add(MILK)
    assert other.get_snapshot() == []
