# Overview: Service-layer operations for payment; proof uploads and review coupled to order status and stock.

"""
Payment Verification

WHY: Buyers pay by bank transfer and upload a proof; an admin reviews it.
The review outcome drives the order's status and, through the shared
deduct/restore routines in order_service, its stock deduction.

REVIEW OUTCOMES:
- pending:  payment only, order untouched
- verified: order -> paid, stock deducted unless already deducted
- rejected: a paid order holding a deduction gets its stock back and
            returns to pending; otherwise pending/paid orders drop to
            pending. Shipped and completed orders are left alone: the goods
            are already gone, so a late rejection never restocks them.

Lock order is payment -> order -> products, the same as order_service.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, Payment
from ..models.orders import (
    ORDER_PAID,
    ORDER_PENDING,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    PAYMENT_STATUSES,
    PAYMENT_VERIFIED,
)
from app.time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_in_transaction
from .errors import ForbiddenError, InvalidStatusError, NotFoundError
from .order_service import deduct_for_order, restore_for_order


def validate_payment_status(status) -> str:
    if status not in PAYMENT_STATUSES:
        raise InvalidStatusError(
            f"Invalid payment status: {status}",
            details={"allowed": list(PAYMENT_STATUSES)},
        )
    return status


def _apply_review(payment: Payment, order: Order, status: str) -> None:
    payment.status = status

    if status == PAYMENT_VERIFIED:
        if order.status != ORDER_PAID:
            order.status = ORDER_PAID
        deduct_for_order(order)

    elif status == PAYMENT_REJECTED:
        if order.status == ORDER_PAID and order.stock_deducted:
            restore_for_order(order)
            order.status = ORDER_PENDING
        elif order.status in (ORDER_PENDING, ORDER_PAID):
            order.status = ORDER_PENDING


def set_payment_status(payment_id: int, status: str, actor_user_id: int | None = None) -> Payment:
    """
    Record an admin's review of a payment proof.

    Raises:
        InvalidStatusError: unknown status
        NotFoundError: payment or its order does not exist
        InsufficientStockError: verification could not deduct stock; nothing
            is changed, the payment included
    """
    validate_payment_status(status)

    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if not payment:
            raise NotFoundError("Payment not found")

        order = lock_for_update(db.session.query(Order).filter_by(id=payment.order_id)).first()
        if not order:
            raise NotFoundError("Order not found")

        previous = (payment.status, order.status)
        _apply_review(payment, order, status)
        payment.reviewed_at = utcnow()
        payment.reviewed_by_user_id = actor_user_id

        db.session.commit()
        current_app.logger.info(
            "Payment %s reviewed as %s by user_id=%s (payment %s -> %s, order %s %s -> %s)",
            payment.id, status, actor_user_id,
            previous[0], payment.status, order.id, previous[1], order.status,
        )
        return payment

    return run_in_transaction(_op)


def _locked_payment(order_id: int) -> Payment | None:
    return lock_for_update(db.session.query(Payment).filter_by(order_id=order_id)).first()


def _replace_proof(payment: Payment, proof_ref: str) -> None:
    payment.proof_ref = proof_ref
    payment.status = PAYMENT_PENDING
    payment.uploaded_at = utcnow()
    payment.reviewed_at = None
    payment.reviewed_by_user_id = None


def upload_proof(order_id: int, user_id: int, proof_ref: str) -> Payment:
    """
    Create or replace the proof of payment for a buyer's own order.

    Always resets the payment to pending, even if it was reviewed before.
    """
    if not proof_ref or not str(proof_ref).strip():
        raise ValidationError("proof_ref is required")
    proof_ref = str(proof_ref).strip()

    def _op():
        payment = _locked_payment(order_id)
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != user_id:
            raise ForbiddenError("Order belongs to another account")

        # A first upload racing this one may have committed while we waited
        # on the order lock.
        if payment is None:
            payment = _locked_payment(order_id)

        if payment:
            _replace_proof(payment, proof_ref)
        else:
            try:
                with db.session.begin_nested():
                    payment = Payment(
                        order_id=order_id,
                        proof_ref=proof_ref,
                        status=PAYMENT_PENDING,
                        uploaded_at=utcnow(),
                    )
                    db.session.add(payment)
            except IntegrityError:
                # uq_payments_order_id: the other upload won the insert.
                payment = _locked_payment(order_id)
                _replace_proof(payment, proof_ref)

        db.session.commit()
        current_app.logger.info("Payment proof uploaded for order %s", order_id)
        return payment

    return run_in_transaction(_op)
