# Overview: Service-layer operations for orders; status changes coupled to inventory deduction.

"""
Order Status Machine

States: pending -> paid -> shipped -> completed, plus pending|paid -> canceled.

Stock coupling:
- Moving to paid deducts the order's items unless stock_deducted is set.
- Moving to canceled restores them if stock_deducted is set.
- Both go through deduct_for_order / restore_for_order, which the payment
  review path uses too. The flag check lives only there, so an order never
  carries more than one active deduction whichever path fires first.

Lock order is payment -> order -> products (ascending id), matching
payment_service so the two paths cannot deadlock on the same order.

Transition legality is only enforced when STRICT_ORDER_TRANSITIONS is on;
otherwise any recognised status may be requested and only the stock
coupling is applied.
"""

from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderItem, Payment
from ..models.orders import (
    ORDER_CANCELED,
    ORDER_COMPLETED,
    ORDER_PAID,
    ORDER_PENDING,
    ORDER_SHIPPED,
    ORDER_STATUSES,
)
from .concurrency import lock_for_update, run_in_transaction
from .errors import InvalidStatusError, InvalidTransitionError, NotFoundError
from .inventory_service import DEDUCT, RESTORE, adjust_stock, order_lines


ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PAID, ORDER_CANCELED},
    ORDER_PAID: {ORDER_SHIPPED, ORDER_CANCELED},
    ORDER_SHIPPED: {ORDER_COMPLETED},
    ORDER_COMPLETED: set(),
    ORDER_CANCELED: set(),
}


def validate_order_status(status) -> str:
    if status not in ORDER_STATUSES:
        raise InvalidStatusError(
            f"Invalid order status: {status}",
            details={"allowed": list(ORDER_STATUSES)},
        )
    return status


def _strict_transitions() -> bool:
    return has_app_context() and bool(current_app.config.get("STRICT_ORDER_TRANSITIONS"))


def check_transition(current: str, new: str) -> None:
    """Raise InvalidTransitionError for a move outside the lifecycle graph."""
    if current == new:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot change order status from {current} to {new}",
            details={"from": current, "to": new},
        )


# =============================================================================
# SHARED STOCK COUPLING
# =============================================================================

def deduct_for_order(order: Order) -> bool:
    """
    Deduct stock for a locked order unless it already carries a deduction.

    Returns True when the ledger was called. InsufficientStockError leaves
    the flag untouched and propagates to abort the transaction.
    """
    if order.stock_deducted:
        return False
    adjust_stock(order_lines(order.id), DEDUCT)
    order.stock_deducted = True
    current_app.logger.info("Stock deducted for order %s", order.id)
    return True


def restore_for_order(order: Order) -> bool:
    """Give back a locked order's stock if it is currently deducted."""
    if not order.stock_deducted:
        return False
    adjust_stock(order_lines(order.id), RESTORE)
    order.stock_deducted = False
    current_app.logger.info("Stock restored for order %s", order.id)
    return True


def lock_order_with_payment(order_id: int) -> tuple[Order | None, Payment | None]:
    """Lock the order's payment row (if any), then the order row."""
    payment = lock_for_update(db.session.query(Payment).filter_by(order_id=order_id)).first()
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    return order, payment


# =============================================================================
# STATUS CHANGES
# =============================================================================

def set_order_status(
    order_id: int,
    status: str,
    tracking_no: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """
    Change an order's status and apply its stock side effects atomically.

    tracking_no replaces the stored value only when given.

    Raises:
        InvalidStatusError: unknown status
        NotFoundError: order does not exist
        InvalidTransitionError: strict mode and the move is not in the graph
        InsufficientStockError: deduction on the way to paid was refused
    """
    validate_order_status(status)
    strict = _strict_transitions()

    def _op():
        order, _payment = lock_order_with_payment(order_id)
        if not order:
            raise NotFoundError("Order not found")

        previous = order.status
        if strict:
            check_transition(previous, status)

        if status == ORDER_PAID:
            deduct_for_order(order)
        elif status == ORDER_CANCELED:
            restore_for_order(order)

        order.status = status
        if tracking_no is not None:
            order.tracking_no = str(tracking_no).strip() or None

        db.session.commit()
        current_app.logger.info(
            "Order %s status %s -> %s by user_id=%s", order.id, previous, status, actor_user_id
        )
        return order

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int, user_id: int | None = None) -> Order:
    """Fetch an order; when user_id is given the order must belong to that user."""
    query = db.session.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def order_detail(order: Order) -> dict:
    items = (
        db.session.query(OrderItem)
        .filter(OrderItem.order_id == order.id)
        .order_by(OrderItem.id.asc())
        .all()
    )
    payment = db.session.query(Payment).filter_by(order_id=order.id).first()
    return {
        "order": order.to_dict(),
        "items": [item.to_dict() for item in items],
        "payment": payment.to_dict() if payment else None,
    }


def list_orders(user_id: int | None = None, status: str | None = None) -> list[dict]:
    """Orders newest first with item counts and payment status."""
    if status is not None:
        validate_order_status(status)

    items_count = (
        db.session.query(func.count(OrderItem.id))
        .filter(OrderItem.order_id == Order.id)
        .correlate(Order)
        .scalar_subquery()
    )
    query = (
        db.session.query(Order, items_count, Payment.status)
        .outerjoin(Payment, Payment.order_id == Order.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if status is not None:
        query = query.filter(Order.status == status)

    results = []
    for order, count, payment_status in query.all():
        data = order.to_dict()
        data["items_count"] = int(count or 0)
        data["payment_status"] = payment_status
        results.append(data)
    return results
