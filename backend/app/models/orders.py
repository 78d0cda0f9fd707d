from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_SHIPPED = "shipped"
ORDER_COMPLETED = "completed"
ORDER_CANCELED = "canceled"

ORDER_STATUSES = (ORDER_PENDING, ORDER_PAID, ORDER_SHIPPED, ORDER_COMPLETED, ORDER_CANCELED)

PAYMENT_PENDING = "pending"
PAYMENT_VERIFIED = "verified"
PAYMENT_REJECTED = "rejected"

PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_VERIFIED, PAYMENT_REJECTED)

SHIPPING_FIELDS = (
    "recipient_name",
    "ship_phone",
    "ship_address",
    "ship_subdistrict",
    "ship_district",
    "ship_province",
    "ship_zipcode",
)


class Order(db.Model):
    """
    Immutable purchase record created by checkout.

    total_cents is fixed at creation and never recomputed from products.

    stock_deducted records whether inventory is currently decremented for
    this order's items. Every path that touches stock on behalf of an order
    (checkout, admin status change, payment review) flips it in the same
    transaction as the ledger call.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    total_cents = db.Column(db.Integer, nullable=False)
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)
    tracking_no = db.Column(db.String(64), nullable=True)

    # Shipping snapshot
    recipient_name = db.Column(db.String(255), nullable=True)
    ship_phone = db.Column(db.String(32), nullable=True)
    ship_address = db.Column(db.Text, nullable=True)
    ship_subdistrict = db.Column(db.String(120), nullable=True)
    ship_district = db.Column(db.String(120), nullable=True)
    ship_province = db.Column(db.String(120), nullable=True)
    ship_zipcode = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "stock_deducted": self.stock_deducted,
            "tracking_no": self.tracking_no,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        for field in SHIPPING_FIELDS:
            data[field] = getattr(self, field)
        return data


class OrderItem(db.Model):
    """Quantity and unit price snapshot; written once with its order."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return self.qty * self.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "model": self.product.model if self.product else None,
            "qty": self.qty,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Payment(db.Model):
    """
    Proof-of-payment record, at most one per order.

    Re-uploading replaces proof_ref and resets status to pending.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    proof_ref = db.Column(db.String(255), nullable=False)

    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "proof_ref": self.proof_ref,
            "uploaded_at": to_utc_z(self.uploaded_at),
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "version_id": self.version_id,
        }
