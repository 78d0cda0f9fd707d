"""
Order status machine tests.

Status changes carry the stock coupling: paid deducts once, canceled gives
the deduction back, and the stock_deducted flag keeps repeated or
interleaved requests from deducting twice.
"""

import pytest

from app.extensions import db
from app.models import Order, OrderItem
from app.services import cart_service, checkout_service, order_service
from app.services.errors import (
    InsufficientStockError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
)
from app.services.inventory_service import set_stock
from conftest import stock_of


@pytest.fixture
def placed_order(db_session, buyer, make_product):
    """Checkout of 2 x product (stock 5 -> 3)."""
    product = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, product.id, 2)
    order = checkout_service.materialize(buyer.id)
    return order, product


def _undeducted_order(user_id, product, qty):
    """Order row whose stock has not been taken yet."""
    order = Order(user_id=user_id, status="pending", total_cents=qty * product.price_cents,
                  stock_deducted=False)
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(order_id=order.id, product_id=product.id, qty=qty,
                             price_cents=product.price_cents))
    db.session.commit()
    return order


def test_pending_to_paid_keeps_single_deduction(placed_order):
    order, product = placed_order

    updated = order_service.set_order_status(order.id, "paid")

    assert updated.status == "paid"
    assert updated.stock_deducted is True
    assert stock_of(product.id) == 3


def test_paid_to_canceled_restores_pre_order_stock(placed_order):
    order, product = placed_order
    order_service.set_order_status(order.id, "paid")

    updated = order_service.set_order_status(order.id, "canceled")

    assert updated.status == "canceled"
    assert updated.stock_deducted is False
    assert stock_of(product.id) == 5


def test_cancel_twice_restores_once(placed_order):
    order, product = placed_order

    order_service.set_order_status(order.id, "canceled")
    order_service.set_order_status(order.id, "canceled")

    assert stock_of(product.id) == 5


def test_paid_deducts_when_flag_unset(db_session, buyer, make_product):
    product = make_product(stock=5)
    order = _undeducted_order(buyer.id, product, 2)

    order_service.set_order_status(order.id, "paid")
    order_service.set_order_status(order.id, "paid")

    assert stock_of(product.id) == 3
    assert db.session.get(Order, order.id).stock_deducted is True


def test_paid_with_insufficient_stock_changes_nothing(db_session, buyer, make_product):
    product = make_product(stock=5)
    order = _undeducted_order(buyer.id, product, 4)
    set_stock(product.id, 1)
    db.session.commit()

    with pytest.raises(InsufficientStockError):
        order_service.set_order_status(order.id, "paid")

    db.session.expire_all()
    order = db.session.get(Order, order.id)
    assert order.status == "pending"
    assert order.stock_deducted is False
    assert stock_of(product.id) == 1


def test_canceled_then_paid_deducts_again(placed_order):
    order, product = placed_order
    order_service.set_order_status(order.id, "canceled")

    order_service.set_order_status(order.id, "paid")

    assert stock_of(product.id) == 3


def test_shipped_and_completed_do_not_touch_stock(placed_order):
    order, product = placed_order

    order_service.set_order_status(order.id, "shipped", tracking_no="TRK-1")
    updated = order_service.set_order_status(order.id, "completed")

    assert updated.tracking_no == "TRK-1"
    assert stock_of(product.id) == 3


def test_tracking_no_kept_when_omitted(placed_order):
    order, _product = placed_order
    order_service.set_order_status(order.id, "shipped", tracking_no="TRK-9")

    updated = order_service.set_order_status(order.id, "shipped")

    assert updated.tracking_no == "TRK-9"


def test_unknown_status_rejected(placed_order):
    order, _product = placed_order
    with pytest.raises(InvalidStatusError):
        order_service.set_order_status(order.id, "lost")


def test_missing_order_not_found(db_session):
    with pytest.raises(NotFoundError):
        order_service.set_order_status(424242, "paid")


def test_strict_mode_enforces_graph(app, placed_order):
    order, product = placed_order
    app.config["STRICT_ORDER_TRANSITIONS"] = True
    try:
        with pytest.raises(InvalidTransitionError):
            order_service.set_order_status(order.id, "completed")

        order_service.set_order_status(order.id, "paid")
        order_service.set_order_status(order.id, "shipped")
        with pytest.raises(InvalidTransitionError):
            order_service.set_order_status(order.id, "canceled")
    finally:
        app.config["STRICT_ORDER_TRANSITIONS"] = False

    assert stock_of(product.id) == 3


def test_permissive_mode_allows_any_status(placed_order):
    order, product = placed_order

    order_service.set_order_status(order.id, "completed")
    updated = order_service.set_order_status(order.id, "pending")

    assert updated.status == "pending"
    assert stock_of(product.id) == 3


def test_check_transition_allows_same_status():
    order_service.check_transition("shipped", "shipped")


def test_get_order_scoped_to_owner(placed_order, other_buyer, buyer):
    order, _product = placed_order

    assert order_service.get_order(order.id, user_id=buyer.id).id == order.id
    with pytest.raises(NotFoundError):
        order_service.get_order(order.id, user_id=other_buyer.id)


def test_order_detail_lists_items_and_payment(placed_order):
    order, product = placed_order

    detail = order_service.order_detail(order)

    assert detail["order"]["id"] == order.id
    assert detail["items"][0]["product_id"] == product.id
    assert detail["items"][0]["subtotal_cents"] == 200
    assert detail["payment"] is None


def test_list_orders_filters(placed_order, buyer, other_buyer):
    order, _product = placed_order

    mine = order_service.list_orders(user_id=buyer.id)
    assert [o["id"] for o in mine] == [order.id]
    assert mine[0]["items_count"] == 1
    assert mine[0]["payment_status"] is None

    assert order_service.list_orders(user_id=other_buyer.id) == []
    assert order_service.list_orders(status="paid") == []
    with pytest.raises(InvalidStatusError):
        order_service.list_orders(status="bogus")
