"""
Order materializer tests.

A checkout either yields a priced order with stock deducted and an empty
cart, or leaves orders and stock untouched.
"""

import pytest

from app.extensions import db
from app.models import CartItem, Order, OrderItem, Product
from app.services import cart_service, checkout_service, inventory_service
from app.services.errors import CartInactivePrunedError, EmptyCartError, OutOfStockError
from app.services.inventory_service import set_stock
from conftest import stock_of


def test_checkout_creates_order_and_deducts(db_session, buyer, make_product):
    p = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, p.id, 2)

    order = checkout_service.materialize(buyer.id)

    assert order.status == "pending"
    assert order.total_cents == 200
    assert order.stock_deducted is True
    assert stock_of(p.id) == 3
    assert db.session.query(CartItem).count() == 0

    items = db.session.query(OrderItem).filter_by(order_id=order.id).all()
    assert [(i.product_id, i.qty, i.price_cents) for i in items] == [(p.id, 2, 100)]


def test_checkout_multiple_lines_total(db_session, buyer, make_product):
    a = make_product("Alpha", stock=5, price_cents=1000)
    b = make_product("Bravo", stock=5, price_cents=250)
    cart_service.add_line(buyer.id, a.id, 1)
    cart_service.add_line(buyer.id, b.id, 4)

    order = checkout_service.materialize(buyer.id)

    assert order.total_cents == 2000
    assert stock_of(a.id) == 4
    assert stock_of(b.id) == 1


def test_checkout_stores_shipping_snapshot(db_session, buyer, make_product):
    p = make_product(stock=5)
    cart_service.add_line(buyer.id, p.id, 1)

    order = checkout_service.materialize(buyer.id, {
        "recipient_name": "  Ann Buyer ",
        "ship_phone": "0800000000",
        "ship_zipcode": "",
        "unexpected": "ignored",
    })

    assert order.recipient_name == "Ann Buyer"
    assert order.ship_phone == "0800000000"
    assert order.ship_zipcode is None


def test_checkout_without_cart_is_empty(db_session, buyer):
    with pytest.raises(EmptyCartError):
        checkout_service.materialize(buyer.id)


def test_checkout_with_empty_cart_is_empty(db_session, buyer, make_product):
    p = make_product(stock=5)
    cart_service.add_line(buyer.id, p.id, 1)
    cart_service.remove_line(buyer.id, p.id)

    with pytest.raises(EmptyCartError):
        checkout_service.materialize(buyer.id)
    assert db.session.query(Order).count() == 0


def test_checkout_prunes_inactive_lines_and_fails(db_session, buyer, make_product):
    a = make_product("Alpha", stock=5)
    b = make_product("Bravo", stock=5)
    cart_service.add_line(buyer.id, a.id, 1)
    cart_service.add_line(buyer.id, b.id, 1)
    db.session.get(Product, b.id).is_active = False
    db.session.commit()

    with pytest.raises(CartInactivePrunedError) as exc:
        checkout_service.materialize(buyer.id)

    assert exc.value.details["items"][0]["product_id"] == b.id
    assert db.session.query(Order).count() == 0
    remaining = [i.product_id for i in db.session.query(CartItem).all()]
    assert remaining == [a.id]
    assert stock_of(a.id) == 5


def test_checkout_drops_lines_above_stock(db_session, buyer, make_product):
    a = make_product("Alpha", stock=5)
    b = make_product("Bravo", stock=5)
    cart_service.add_line(buyer.id, a.id, 1)
    cart_service.add_line(buyer.id, b.id, 4)
    set_stock(b.id, 2)
    db.session.commit()

    with pytest.raises(OutOfStockError) as exc:
        checkout_service.materialize(buyer.id)

    assert exc.value.details["items"] == [
        {"product_id": b.id, "reason": "OUT_OF_STOCK", "requested_quantity": 4}
    ]
    assert db.session.query(Order).count() == 0
    assert [i.product_id for i in db.session.query(CartItem).all()] == [a.id]

    # The cleaned cart checks out on retry
    order = checkout_service.materialize(buyer.id)
    assert order.total_cents == 1000
    assert stock_of(b.id) == 2


def test_failed_claim_leaves_no_order_rows(db_session, buyer, make_product, monkeypatch):
    """An order lost to a concurrent buyer rolls back with its items and stock."""
    a = make_product("Alpha", stock=5)
    b = make_product("Bravo", stock=5)
    cart_service.add_line(buyer.id, a.id, 2)
    cart_service.add_line(buyer.id, b.id, 2)

    real_claim = inventory_service.claim_stock

    def claim(product_id, qty):
        if product_id == b.id:
            return False
        return real_claim(product_id, qty)

    monkeypatch.setattr(checkout_service, "claim_stock", claim)

    with pytest.raises(OutOfStockError):
        checkout_service.materialize(buyer.id)

    assert db.session.query(Order).count() == 0
    assert db.session.query(OrderItem).count() == 0
    assert stock_of(a.id) == 5
    assert stock_of(b.id) == 5
    assert db.session.query(CartItem).count() == 2


def test_price_change_after_checkout_keeps_snapshot(db_session, buyer, make_product):
    p = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, p.id, 2)
    order = checkout_service.materialize(buyer.id)

    db.session.get(Product, p.id).price_cents = 999
    db.session.commit()
    db.session.expire_all()

    order = db.session.get(Order, order.id)
    assert order.total_cents == 200
    assert [i.price_cents for i in order.items] == [100]


def test_sold_out_product_can_be_bought_to_zero(db_session, buyer, make_product):
    p = make_product(stock=3)
    cart_service.add_line(buyer.id, p.id, 3)

    checkout_service.materialize(buyer.id)

    assert stock_of(p.id) == 0
