# backend/app/services/catalog_service.py
"""
Catalog Service

Public browsing only ever shows active products. Admin edits go through
PRODUCT_POLICY; stock changes requested by an admin are applied through
inventory_service.set_stock so the ledger stays the single stock writer.

Archiving is the only way to take a product off sale. It deactivates the
product, zeroes its stock and removes it from every cart in one
transaction; the row stays because orders reference it.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Brand, CartItem, OrderItem, Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import lock_for_update, run_in_transaction
from .errors import NotFoundError
from .inventory_service import set_stock

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "brand_id", "name", "model", "description", "price_cents",
        "stock", "image_url", "is_new",
    },
    required_on_create={"name", "price_cents"},
)

PUBLIC_LIST_LIMIT = 200


# =============================================================================
# BRANDS
# =============================================================================

def list_brands() -> list[Brand]:
    return db.session.query(Brand).order_by(Brand.name.asc()).all()


def create_brand(name: str) -> Brand:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    brand = Brand(name=name)
    db.session.add(brand)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Brand already exists: {name}")
    return brand


# =============================================================================
# PUBLIC CATALOG
# =============================================================================

def browse_products(
    brand_id: int | None = None,
    is_new: bool | None = None,
    q: str | None = None,
    limit: int = PUBLIC_LIST_LIMIT,
) -> list[Product]:
    """Active products, newest first, with optional brand/new/keyword filters."""
    query = db.session.query(Product).filter(Product.is_active.is_(True))

    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    if is_new:
        query = query.filter(Product.is_new.is_(True))
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.model.ilike(pattern)))

    return (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .limit(min(max(limit, 1), PUBLIC_LIST_LIMIT))
        .all()
    )


def get_active_product(product_id: int) -> Product:
    product = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.is_active.is_(True))
        .first()
    )
    if not product:
        raise NotFoundError("Product not found")
    return product


# =============================================================================
# ADMIN PRODUCT MANAGEMENT
# =============================================================================

def list_all_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.id.desc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def _check_brand(brand_id: int | None) -> None:
    if brand_id is not None and not db.session.get(Brand, brand_id):
        raise ValidationError(f"Unknown brand_id: {brand_id}")


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_brand(patch.get("brand_id"))

    initial_stock = patch.pop("stock", None) or 0

    def _op():
        product = Product(is_active=True, stock=0, **patch)
        db.session.add(product)
        db.session.flush()
        if initial_stock:
            set_stock(product.id, initial_stock)
        db.session.commit()
        current_app.logger.info("Product %s created with stock %s", product.id, initial_stock)
        return product

    return run_in_transaction(_op)


def update_product(product_id: int, payload: dict) -> Product:
    """
    Patch product fields.

    A new price only affects carts and future orders; order items keep the
    price they were created with.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if "brand_id" in patch:
        _check_brand(patch["brand_id"])

    new_stock = patch.pop("stock", None)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")

        for key, value in patch.items():
            setattr(product, key, value)
        if new_stock is not None:
            set_stock(product.id, new_stock)

        db.session.commit()
        return product

    return run_in_transaction(_op)


def archive_product(product_id: int) -> Product:
    """Take a product off sale: inactive, zero stock, gone from all carts."""
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")

        removed = (
            db.session.query(CartItem)
            .filter(CartItem.product_id == product_id)
            .delete(synchronize_session=False)
        )
        product.is_active = False
        set_stock(product.id, 0)

        db.session.commit()
        current_app.logger.info("Product %s archived; removed from %s cart(s)", product_id, removed)
        return product

    return run_in_transaction(_op)


def restore_product(product_id: int) -> Product:
    """Put an archived product back on sale (stock must be set separately)."""
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")
        product.is_active = True
        db.session.commit()
        return product

    return run_in_transaction(_op)


def delete_product(product_id: int) -> None:
    """
    Delete a product nothing refers to.

    Raises ConflictError when an order or cart line still points at it;
    such products are archived instead.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")

        order_lines = db.session.query(OrderItem).filter_by(product_id=product_id).count()
        cart_lines = db.session.query(CartItem).filter_by(product_id=product_id).count()
        if order_lines or cart_lines:
            raise ConflictError(
                "Product is referenced by orders or carts; archive it instead",
                details={
                    "order_items": order_lines,
                    "cart_items": cart_lines,
                    "hint": f"POST /api/admin/products/{product_id}/archive",
                },
            )

        db.session.delete(product)
        db.session.commit()
        current_app.logger.info("Product %s deleted", product_id)

    run_in_transaction(_op)
