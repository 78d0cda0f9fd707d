# Overview: Service-layer operations for inventory; the only code path that writes products.stock.

# backend/app/services/inventory_service.py
"""
Inventory Ledger

Invariants:
- products.stock is never negative.
- Stock is written here and nowhere else. Callers that deduct or restore on
  behalf of an order flip Order.stock_deducted in the same transaction.
- Batches are all-or-nothing: every product row is locked (ascending id) and
  checked before any row is changed.

None of these functions commit. They run inside the caller's transaction so
a later failure rolls the stock change back with everything else.
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Product, OrderItem
from .concurrency import lock_for_update
from .errors import InsufficientStockError, NotFoundError

DEDUCT = -1
RESTORE = 1


def _aggregate(lines: Iterable[tuple[int, int]]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for product_id, qty in lines:
        if qty <= 0:
            raise ValueError("line quantity must be positive")
        totals[product_id] = totals.get(product_id, 0) + qty
    return totals


def order_lines(order_id: int) -> list[tuple[int, int]]:
    """(product_id, qty) pairs of an order, ascending by product."""
    rows = (
        db.session.query(OrderItem.product_id, OrderItem.qty)
        .filter(OrderItem.order_id == order_id)
        .order_by(OrderItem.product_id.asc(), OrderItem.id.asc())
        .all()
    )
    return [(product_id, qty) for product_id, qty in rows]


def adjust_stock(lines: Iterable[tuple[int, int]], sign: int) -> None:
    """
    Apply `stock += sign * qty` for every line.

    sign=-1 deducts and refuses the whole batch with InsufficientStockError
    if any product would go negative. sign=+1 restores and cannot fail on
    quantity.
    """
    if sign not in (DEDUCT, RESTORE):
        raise ValueError("sign must be -1 or +1")

    totals = _aggregate(lines)
    if not totals:
        return

    # Fixed lock order (ascending id) keeps overlapping batches deadlock-free
    products = lock_for_update(
        db.session.query(Product)
        .filter(Product.id.in_(totals.keys()))
        .order_by(Product.id.asc())
    ).all()

    found = {p.id: p for p in products}
    missing = sorted(set(totals) - set(found))
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})

    if sign == DEDUCT:
        shortages = [
            {"product_id": p.id, "requested_quantity": totals[p.id], "stock": p.stock}
            for p in products
            if p.stock < totals[p.id]
        ]
        if shortages:
            raise InsufficientStockError(details={"items": shortages})

    for product in products:
        product.stock = product.stock + sign * totals[product.id]

    db.session.flush()
    current_app.logger.debug(
        "Stock %s: %s", "deducted" if sign == DEDUCT else "restored", totals
    )


def claim_stock(product_id: int, qty: int) -> bool:
    """
    Atomically take `qty` units of an active product.

    Single conditional UPDATE; returns False when the row is inactive or
    short, which callers treat as losing a race to a concurrent order.
    """
    if qty <= 0:
        raise ValueError("qty must be positive")

    affected = (
        db.session.query(Product)
        .filter(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock >= qty,
        )
        .update({Product.stock: Product.stock - qty}, synchronize_session=False)
    )
    return affected == 1


def set_stock(product_id: int, stock: int) -> Product:
    """Manual admin adjustment to an absolute quantity."""
    if stock < 0:
        raise ValueError("stock cannot be negative")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found")

    if product.stock != stock:
        current_app.logger.info(
            "Manual stock adjustment product_id=%s %s -> %s", product_id, product.stock, stock
        )
    product.stock = stock
    db.session.flush()
    return product


def get_stock(product_id: int) -> int:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product.stock
