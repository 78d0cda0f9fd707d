# Overview: Service-layer operations for carts; validation on every mutation and self-healing reads.

"""
Cart Store

Lines are validated lazily against live product state. Every read entry
point runs the pruning pass first: lines whose product is archived or has
no stock left are deleted from storage, and the caller is told that pruning
happened. Quantities above remaining stock are kept (the buyer can lower
them); checkout rejects them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, CartItem, Product
from ..validation import parse_positive_int
from .concurrency import lock_for_update, run_in_transaction
from .errors import NotFoundError, OutOfStockError, ProductInactiveError


@dataclass
class CartView:
    items: list[dict] = field(default_factory=list)
    total_cents: int = 0
    count: int = 0
    pruned: bool = False

    def to_dict(self) -> dict:
        return {
            "items": self.items,
            "summary": {"total_cents": self.total_cents, "count": self.count},
            "pruned": self.pruned,
        }


def _line_dict(item: CartItem, product: Product) -> dict:
    return {
        "product_id": product.id,
        "qty": item.qty,
        "name": product.name,
        "model": product.model,
        "price_cents": product.price_cents,
        "stock": product.stock,
        "is_active": product.is_active,
        "image_url": product.image_url,
        "subtotal_cents": item.qty * product.price_cents,
    }


def _locked_cart(user_id: int) -> Cart | None:
    return lock_for_update(db.session.query(Cart).filter_by(user_id=user_id)).first()


def _get_or_create_cart(user_id: int) -> Cart:
    cart = _locked_cart(user_id)
    if cart:
        return cart

    # Two first-time adds can race to create the cart; the unique user_id
    # lets the loser fall back to the winner's row.
    try:
        with db.session.begin_nested():
            cart = Cart(user_id=user_id)
            db.session.add(cart)
    except IntegrityError:
        cart = _locked_cart(user_id)
    return cart


def _require_cart(user_id: int) -> Cart:
    cart = _locked_cart(user_id)
    if not cart:
        raise NotFoundError("Cart not found")
    return cart


def _require_sellable(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ProductInactiveError(details={"product_id": product_id})
    return product


def _cart_rows(cart_id: int) -> list[tuple[CartItem, Product]]:
    return (
        db.session.query(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.cart_id == cart_id)
        .order_by(CartItem.id.desc())
        .all()
    )


def _prune(cart: Cart) -> tuple[list[tuple[CartItem, Product]], bool]:
    """Delete unpurchasable lines; return surviving rows and whether any were removed."""
    rows = _cart_rows(cart.id)
    dead = [item for item, product in rows if not product.is_active or product.stock <= 0]
    if dead:
        for item in dead:
            db.session.delete(item)
        db.session.flush()
        current_app.logger.info(
            "Pruned %s cart line(s) from cart_id=%s: product_ids=%s",
            len(dead), cart.id, [item.product_id for item in dead],
        )
    dead_ids = {item.id for item in dead}
    return [(item, product) for item, product in rows if item.id not in dead_ids], bool(dead)


def _build_view(rows: list[tuple[CartItem, Product]], pruned: bool) -> CartView:
    items = [_line_dict(item, product) for item, product in rows]
    return CartView(
        items=items,
        total_cents=sum(line["subtotal_cents"] for line in items),
        count=len(items),
        pruned=pruned,
    )


def add_line(user_id: int, product_id: int, qty) -> CartItem:
    """
    Add `qty` of a product, merging with an existing line.

    Raises NotFoundError, ProductInactiveError or OutOfStockError; the
    merged quantity may not exceed current stock.
    """
    qty = parse_positive_int(qty, "qty")

    def _op():
        product = _require_sellable(product_id)
        if product.stock <= 0:
            raise OutOfStockError("Product is out of stock", details={"product_id": product_id})

        cart = _get_or_create_cart(user_id)
        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()

        new_qty = (item.qty if item else 0) + qty
        if new_qty > product.stock:
            raise OutOfStockError(details={
                "product_id": product_id,
                "requested_quantity": new_qty,
                "stock": product.stock,
            })

        if item:
            item.qty = new_qty
        else:
            item = CartItem(cart_id=cart.id, product_id=product_id, qty=new_qty)
            db.session.add(item)

        db.session.commit()
        return item

    return run_in_transaction(_op)


def set_line_qty(user_id: int, product_id: int, qty) -> CartItem:
    """Replace the quantity of an existing line."""
    qty = parse_positive_int(qty, "qty")

    def _op():
        cart = _require_cart(user_id)
        product = _require_sellable(product_id)
        if qty > product.stock:
            raise OutOfStockError(details={
                "product_id": product_id,
                "requested_quantity": qty,
                "stock": product.stock,
            })

        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()
        if not item:
            raise NotFoundError("Product is not in the cart")

        item.qty = qty
        db.session.commit()
        return item

    return run_in_transaction(_op)


def remove_line(user_id: int, product_id: int) -> CartView:
    """Remove a product from the cart and return the pruned remainder."""
    def _op():
        cart = _require_cart(user_id)
        item = db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product_id).first()
        if item:
            db.session.delete(item)
            db.session.flush()
        rows, pruned = _prune(cart)
        view = _build_view(rows, pruned)
        db.session.commit()
        return view

    return run_in_transaction(_op)


def view_cart(user_id: int) -> CartView:
    """Current lines after the pruning pass, totals at live prices."""
    def _op():
        cart = _locked_cart(user_id)
        if not cart:
            db.session.rollback()
            return CartView()
        rows, pruned = _prune(cart)
        view = _build_view(rows, pruned)
        db.session.commit()
        return view

    return run_in_transaction(_op)


def preview_checkout(user_id: int) -> CartView:
    """
    What checkout would try to buy right now.

    Same pruning pass as view_cart, so the preview never lists a line that
    the cart itself would drop.
    """
    return view_cart(user_id)


def item_count(user_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(CartItem.qty), 0))
        .join(Cart, Cart.id == CartItem.cart_id)
        .filter(Cart.user_id == user_id)
        .scalar()
    )
    return int(total or 0)
