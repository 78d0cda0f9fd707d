# Overview: Service-layer operations for checkout; converts a cart into an order in one transaction.

"""
Order Materializer

WHY: The cart is mutable and may be stale; the order is an immutable
snapshot. Conversion either produces a fully priced, fully stocked order
with an empty cart, or changes nothing except dropping cart lines that can
no longer be bought.

STEPS (single transaction):
1. Lock the buyer's cart row (serializes that buyer's checkouts).
2. Re-read lines joined with live product rows, products locked by id.
3. Drop invalid lines (archived, or qty above stock). The pruning is
   committed so a retry sees the cleaned cart, then the checkout fails.
4. Insert the order and its items at current prices.
5. Claim stock per line with a conditional UPDATE; losing a race to a
   concurrent order rolls back the order rows too.
6. Clear the cart.
7. Mark the order stock_deducted. Checkout always deducts up front; admin
   and payment paths only deduct when this flag is still unset.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Cart, CartItem, Order, OrderItem, Product
from ..models.orders import ORDER_PENDING, SHIPPING_FIELDS
from .concurrency import lock_for_update, run_in_transaction
from .errors import CartInactivePrunedError, EmptyCartError, OutOfStockError
from .inventory_service import claim_stock


def clean_shipping(shipping: dict | None) -> dict:
    """Keep known shipping fields; blank strings become None."""
    shipping = shipping or {}
    cleaned = {}
    for field in SHIPPING_FIELDS:
        value = shipping.get(field)
        if value is not None:
            value = str(value).strip() or None
        cleaned[field] = value
    return cleaned


def _locked_lines(cart_id: int) -> list[tuple[CartItem, Product]]:
    return lock_for_update(
        db.session.query(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.cart_id == cart_id)
        .order_by(Product.id.asc())
    ).all()


def _reject_invalid_lines(rows: list[tuple[CartItem, Product]]) -> None:
    invalid = []
    for item, product in rows:
        if not product.is_active:
            invalid.append((item, "INACTIVE"))
        elif item.qty > product.stock:
            invalid.append((item, "OUT_OF_STOCK"))

    if not invalid:
        return

    details = {
        "items": [
            {"product_id": item.product_id, "reason": reason, "requested_quantity": item.qty}
            for item, reason in invalid
        ]
    }
    for item, _reason in invalid:
        db.session.delete(item)
    db.session.commit()

    current_app.logger.info("Checkout pruned cart lines: %s", details["items"])

    if any(reason == "INACTIVE" for _item, reason in invalid):
        raise CartInactivePrunedError(details=details)
    raise OutOfStockError(
        "Some cart quantities exceed remaining stock; please review the cart",
        details=details,
    )


def materialize(user_id: int, shipping: dict | None = None) -> Order:
    """
    Convert the user's cart into a pending order with stock deducted.

    Raises:
        EmptyCartError: no cart or no lines
        CartInactivePrunedError: archived products were removed from the cart
        OutOfStockError: a line exceeds stock, or stock was taken concurrently
    """
    ship = clean_shipping(shipping)

    def _op():
        cart = lock_for_update(db.session.query(Cart).filter_by(user_id=user_id)).first()
        if not cart:
            raise EmptyCartError()

        rows = _locked_lines(cart.id)
        if not rows:
            raise EmptyCartError()

        _reject_invalid_lines(rows)

        total_cents = sum(item.qty * product.price_cents for item, product in rows)

        order = Order(
            user_id=user_id,
            status=ORDER_PENDING,
            total_cents=total_cents,
            stock_deducted=False,
            **ship,
        )
        db.session.add(order)
        db.session.flush()

        for item, product in rows:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                qty=item.qty,
                price_cents=product.price_cents,
            ))

            if not claim_stock(product.id, item.qty):
                raise OutOfStockError(
                    "Stock changed during checkout; please review the cart",
                    details={"product_id": product.id, "requested_quantity": item.qty},
                )

        for item, _product in rows:
            db.session.delete(item)

        order.stock_deducted = True
        db.session.commit()

        current_app.logger.info(
            "Order %s created for user_id=%s total_cents=%s lines=%s",
            order.id, user_id, total_cents, len(rows),
        )
        return order

    return run_in_transaction(_op)
