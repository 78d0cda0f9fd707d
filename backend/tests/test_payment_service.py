"""
Payment verification tests.

Review outcomes drive the order's status and, through the shared
deduct/restore routines, its stock deduction.
"""

import pytest

from app.extensions import db
from app.models import Order, OrderItem, Payment
from app.services import cart_service, checkout_service, order_service, payment_service
from app.services.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidStatusError,
    NotFoundError,
)
from app.services.inventory_service import set_stock
from app.validation import ValidationError
from conftest import stock_of


@pytest.fixture
def placed_order(db_session, buyer, make_product):
    product = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, product.id, 2)
    order = checkout_service.materialize(buyer.id)
    return order, product


@pytest.fixture
def uploaded(placed_order, buyer):
    order, product = placed_order
    payment = payment_service.upload_proof(order.id, buyer.id, "/uploads/pay_1.png")
    return payment, order, product


def _order(order_id):
    db.session.expire_all()
    return db.session.get(Order, order_id)


def test_upload_creates_pending_payment(uploaded):
    payment, order, _product = uploaded

    assert payment.status == "pending"
    assert payment.order_id == order.id
    assert payment.proof_ref == "/uploads/pay_1.png"


def test_reupload_replaces_proof_and_resets_status(uploaded, buyer, admin):
    payment, order, _product = uploaded
    payment_service.set_payment_status(payment.id, "rejected", actor_user_id=admin.id)

    again = payment_service.upload_proof(order.id, buyer.id, "/uploads/pay_2.png")

    assert again.id == payment.id
    assert again.status == "pending"
    assert again.proof_ref == "/uploads/pay_2.png"
    assert again.reviewed_at is None
    assert db.session.query(Payment).count() == 1


@pytest.mark.parametrize("stale_lookups", [1, 2])
def test_upload_racing_first_upload_replaces_winner(placed_order, buyer, monkeypatch, stale_lookups):
    """
    A first upload that commits while this one waits is replaced, not duplicated.

    One stale lookup is caught by the re-read under the order lock; two reach
    the insert, which hits uq_payments_order_id and falls back to replacing.
    """
    order, _product = placed_order
    db.session.add(Payment(order_id=order.id, proof_ref="/uploads/first.png", status="verified"))
    db.session.commit()

    real_lookup = payment_service._locked_payment
    calls = []

    def lookup_before_winner_commit(order_id):
        calls.append(order_id)
        if len(calls) <= stale_lookups:
            return None
        return real_lookup(order_id)

    monkeypatch.setattr(payment_service, "_locked_payment", lookup_before_winner_commit)

    payment = payment_service.upload_proof(order.id, buyer.id, "/uploads/second.png")

    assert len(calls) == stale_lookups + 1
    db.session.expire_all()
    rows = db.session.query(Payment).filter_by(order_id=order.id).all()
    assert [r.id for r in rows] == [payment.id]
    assert rows[0].proof_ref == "/uploads/second.png"
    assert rows[0].status == "pending"


def test_upload_for_foreign_order_forbidden(placed_order, other_buyer):
    order, _product = placed_order
    with pytest.raises(ForbiddenError):
        payment_service.upload_proof(order.id, other_buyer.id, "/uploads/x.png")


def test_upload_for_missing_order_not_found(db_session, buyer):
    with pytest.raises(NotFoundError):
        payment_service.upload_proof(424242, buyer.id, "/uploads/x.png")


def test_upload_requires_proof(placed_order, buyer):
    order, _product = placed_order
    with pytest.raises(ValidationError):
        payment_service.upload_proof(order.id, buyer.id, "  ")


def test_verify_marks_order_paid_without_second_deduction(uploaded, admin):
    payment, order, product = uploaded

    reviewed = payment_service.set_payment_status(payment.id, "verified", actor_user_id=admin.id)

    assert reviewed.status == "verified"
    assert reviewed.reviewed_by_user_id == admin.id
    assert reviewed.reviewed_at is not None
    assert _order(order.id).status == "paid"
    assert stock_of(product.id) == 3


def test_verify_then_reject_restores_stock(uploaded, admin):
    payment, order, product = uploaded
    payment_service.set_payment_status(payment.id, "verified", actor_user_id=admin.id)

    payment_service.set_payment_status(payment.id, "rejected", actor_user_id=admin.id)

    order = _order(order.id)
    assert order.status == "pending"
    assert order.stock_deducted is False
    assert stock_of(product.id) == 5


def test_reverify_after_reject_deducts_again(uploaded, admin):
    payment, order, product = uploaded
    payment_service.set_payment_status(payment.id, "verified")
    payment_service.set_payment_status(payment.id, "rejected")

    payment_service.set_payment_status(payment.id, "verified")

    assert _order(order.id).stock_deducted is True
    assert stock_of(product.id) == 3


def test_reject_pending_order_keeps_checkout_deduction(uploaded):
    payment, order, product = uploaded

    payment_service.set_payment_status(payment.id, "rejected")

    order = _order(order.id)
    assert order.status == "pending"
    assert order.stock_deducted is True
    assert stock_of(product.id) == 3


def test_reject_after_shipping_does_not_restock(uploaded):
    payment, order, product = uploaded
    payment_service.set_payment_status(payment.id, "verified")
    order_service.set_order_status(order.id, "shipped")

    payment_service.set_payment_status(payment.id, "rejected")

    order = _order(order.id)
    assert order.status == "shipped"
    assert order.stock_deducted is True
    assert stock_of(product.id) == 3


def test_pending_review_leaves_order_alone(uploaded):
    payment, order, product = uploaded
    order_service.set_order_status(order.id, "shipped")

    payment_service.set_payment_status(payment.id, "pending")

    assert _order(order.id).status == "shipped"
    assert stock_of(product.id) == 3


def test_verify_and_admin_paid_share_one_deduction(db_session, buyer, make_product):
    product = make_product(stock=5, price_cents=100)
    order = Order(user_id=buyer.id, status="pending", total_cents=200, stock_deducted=False)
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(order_id=order.id, product_id=product.id, qty=2, price_cents=100))
    db.session.commit()
    payment = payment_service.upload_proof(order.id, buyer.id, "/uploads/p.png")

    payment_service.set_payment_status(payment.id, "verified")
    order_service.set_order_status(order.id, "paid")

    assert stock_of(product.id) == 3


def test_verify_with_insufficient_stock_changes_nothing(db_session, buyer, make_product):
    product = make_product(stock=5, price_cents=100)
    order = Order(user_id=buyer.id, status="pending", total_cents=400, stock_deducted=False)
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(order_id=order.id, product_id=product.id, qty=4, price_cents=100))
    db.session.commit()
    payment = payment_service.upload_proof(order.id, buyer.id, "/uploads/p.png")
    set_stock(product.id, 1)
    db.session.commit()

    with pytest.raises(InsufficientStockError):
        payment_service.set_payment_status(payment.id, "verified")

    db.session.expire_all()
    assert db.session.get(Payment, payment.id).status == "pending"
    assert _order(order.id).status == "pending"
    assert stock_of(product.id) == 1


def test_unknown_payment_status(uploaded):
    payment, _order_row, _product = uploaded
    with pytest.raises(InvalidStatusError):
        payment_service.set_payment_status(payment.id, "approved")


def test_missing_payment(db_session):
    with pytest.raises(NotFoundError):
        payment_service.set_payment_status(424242, "verified")


def test_list_payments_by_status(uploaded):
    payment, _order_row, _product = uploaded

    assert [p.id for p in payment_service.list_payments()] == [payment.id]
    assert [p.id for p in payment_service.list_payments(status="pending")] == [payment.id]
    assert payment_service.list_payments(status="verified") == []
