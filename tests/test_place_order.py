"""Order placement: atomicity, accrual and cart clearing."""

import threading

import pytest
from sqlalchemy import Delete, func, select
from sqlalchemy.exc import OperationalError

from order_service.config import MAX_ORDER_TOTAL
from order_service.errors import (
    Conflict,
    EmptyBasket,
    InvalidReference,
    InvalidRequest,
    NotFound,
    StorageUnavailable,
)
from order_service.models import Order, OrderItem
from order_service.schemas import BasketItem
from order_service.service import OrderService, points_for


class SerializationFailure(Exception):
    pgcode = "40001"


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar()


def _basket(*entries):
    return [BasketItem(food_id=food_id, quantity=qty, price=price) for food_id, qty, price in entries]


class TestPointsFor:
    def test_floors_fractional_totals(self):
        assert points_for(37.9) == 37

    def test_whole_totals(self):
        assert points_for(42) == 42

    def test_zero(self):
        assert points_for(0) == 0


class TestPlaceOrder:
    def test_returns_id_and_persists_header(self, service, seeded):
        order_id = service.place_order(seeded.alice, 25, _basket((seeded.pizza, 1, 15), (seeded.attieke, 1, 10)))

        order = service.get_order(order_id)
        assert order.user_id == seeded.alice
        assert order.total_price == 25
        assert order.status == "Preparing"
        assert len(order.items) == 2

    def test_accrues_one_point_per_whole_unit(self, service, seeded):
        service.place_order(seeded.alice, 37.9, _basket((seeded.pizza, 2, 15)))

        assert service.get_points(seeded.alice) == 5 + 37

    def test_clears_the_whole_cart(self, service, seeded):
        service.add_to_cart(seeded.alice, seeded.pizza, 1, 15)
        service.add_to_cart(seeded.alice, seeded.attieke, 3, 10)
        service.add_to_cart(seeded.bob, seeded.pizza, 1, 15)

        # The basket need not match the cart contents
        service.place_order(seeded.alice, 15, _basket((seeded.pizza, 1, 15)))

        assert service.get_cart(seeded.alice) == []
        assert len(service.get_cart(seeded.bob)) == 1

    def test_preserves_basket_order(self, service, seeded):
        basket = _basket((seeded.attieke, 2, 10), (seeded.pizza, 1, 15))
        order_id = service.place_order(seeded.alice, 35, basket)

        order = service.get_order(order_id)
        assert [(i.food_id, i.quantity, i.price) for i in order.items] == [
            (seeded.attieke, 2, 10),
            (seeded.pizza, 1, 15),
        ]

    def test_empty_basket_is_accepted_by_default(self, service, seeded):
        order_id = service.place_order(seeded.alice, 12, [])

        assert service.get_order(order_id).items == []
        assert service.get_points(seeded.alice) == 17

    def test_empty_basket_rejected_when_required(self, db, seeded):
        strict = OrderService(db, require_nonempty_basket=True)

        with pytest.raises(EmptyBasket):
            strict.place_order(seeded.alice, 12, [])

        assert _count(db, Order) == 0
        assert strict.get_points(seeded.alice) == 5

    @pytest.mark.parametrize("total", [float("inf"), float("nan"), -1, MAX_ORDER_TOTAL + 1])
    def test_out_of_range_total_is_rejected(self, service, db, seeded, total):
        with pytest.raises(InvalidRequest) as exc_info:
            service.place_order(seeded.alice, total, _basket((seeded.pizza, 1, 15)))

        assert exc_info.value.retryable is False
        assert _count(db, Order) == 0
        assert service.get_points(seeded.alice) == 5

    def test_largest_allowed_total(self, service, seeded):
        service.place_order(seeded.alice, MAX_ORDER_TOTAL, [])

        assert service.get_points(seeded.alice) == 5 + int(MAX_ORDER_TOTAL)

    def test_each_order_gets_a_new_id(self, service, seeded):
        first = service.place_order(seeded.alice, 10, _basket((seeded.attieke, 1, 10)))
        second = service.place_order(seeded.alice, 10, _basket((seeded.attieke, 1, 10)))

        assert first != second
        assert len(service.list_orders(seeded.alice)) == 2


class TestPlaceOrderAtomicity:
    def test_unknown_account_leaves_no_trace(self, service, db, seeded):
        service.add_to_cart(seeded.alice, seeded.attieke, 1, 10)

        with pytest.raises(NotFound):
            service.place_order("ghost-account", 42, _basket((seeded.attieke, 1, 10)))

        assert _count(db, Order) == 0
        assert _count(db, OrderItem) == 0
        assert len(service.get_cart(seeded.alice)) == 1

    def test_unknown_food_item_rolls_everything_back(self, service, db, seeded):
        service.add_to_cart(seeded.alice, seeded.pizza, 1, 15)

        with pytest.raises(InvalidReference):
            service.place_order(seeded.alice, 30, _basket((seeded.pizza, 1, 15), ("no-such-food", 1, 15)))

        assert _count(db, Order) == 0
        assert _count(db, OrderItem) == 0
        assert service.get_points(seeded.alice) == 5
        assert len(service.get_cart(seeded.alice)) == 1

    def test_invalid_reference_is_not_retryable(self, service, seeded):
        with pytest.raises(InvalidReference) as exc_info:
            service.place_order(seeded.alice, 10, _basket(("missing", 1, 10)))

        assert exc_info.value.retryable is False

    @pytest.mark.parametrize(
        "orig, expected",
        [
            (Exception(2013, "Lost connection to MySQL server during query"), StorageUnavailable),
            (SerializationFailure("could not serialize access"), Conflict),
        ],
    )
    def test_failure_while_clearing_cart_rolls_everything_back(
        self, service, db, seeded, monkeypatch, orig, expected
    ):
        service.add_to_cart(seeded.alice, seeded.pizza, 1, 15)
        execute = db.execute

        def failing_execute(statement, *args, **kwargs):
            if isinstance(statement, Delete) and statement.table.name == "cart":
                raise OperationalError("DELETE FROM cart ...", {}, orig)
            return execute(statement, *args, **kwargs)

        monkeypatch.setattr(db, "execute", failing_execute)

        with pytest.raises(expected) as exc_info:
            service.place_order(seeded.alice, 15, _basket((seeded.pizza, 1, 15)))

        assert exc_info.value.retryable is True
        assert _count(db, Order) == 0
        assert _count(db, OrderItem) == 0
        assert service.get_points(seeded.alice) == 5
        assert len(service.get_cart(seeded.alice)) == 1


def test_concurrent_orders_do_not_lose_points(session_factory, seeded):
    barrier = threading.Barrier(2)
    errors = []

    def place(total):
        db = session_factory()
        try:
            barrier.wait()
            OrderService(db).place_order(seeded.bob, total, _basket((seeded.pizza, 1, total)))
        except Exception as exc:  # collected and asserted below
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=place, args=(total,)) for total in (10, 20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    db = session_factory()
    try:
        assert OrderService(db).get_points(seeded.bob) == 30
        assert len(OrderService(db).list_orders(seeded.bob)) == 2
    finally:
        db.close()
