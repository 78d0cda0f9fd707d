# Overview: Service-layer operations for reporting; read-only sales aggregates over orders.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from app.extensions import db
from app.models import Order, OrderItem, Product
from app.models.orders import ORDER_COMPLETED, ORDER_PAID, ORDER_PENDING, ORDER_SHIPPED
from app.time_utils import day_range, month_bounds, parse_iso_date, utcnow
from app.validation import ValidationError

REVENUE_STATUSES = (ORDER_PAID, ORDER_SHIPPED, ORDER_COMPLETED)
MAX_TOP_PRODUCTS = 100


def _statuses(include_pending: bool) -> tuple[str, ...]:
    return (ORDER_PENDING,) + REVENUE_STATUSES if include_pending else REVENUE_STATUSES


def resolve_range(start: str | None, end: str | None) -> tuple[date, date]:
    """Explicit YYYY-MM-DD bounds, or the current calendar month when either is missing."""
    try:
        start_d = parse_iso_date(start)
        end_d = parse_iso_date(end)
    except ValueError:
        raise ValidationError("from/to must be YYYY-MM-DD dates")

    if start_d is None or end_d is None:
        return month_bounds(utcnow().date())
    if start_d > end_d:
        raise ValidationError("from must not be after to")
    return start_d, end_d


def sales_report(*, start: str | None, end: str | None, include_pending: bool = False) -> dict:
    start_d, end_d = resolve_range(start, end)
    start_dt, end_dt = day_range(start_d, end_d)
    filters = (
        Order.status.in_(_statuses(include_pending)),
        Order.created_at >= start_dt,
        Order.created_at <= end_dt,
    )

    count, revenue, avg_order = (
        db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_cents), 0),
            func.coalesce(func.avg(Order.total_cents), 0),
        )
        .filter(*filters)
        .one()
    )

    day = func.date(Order.created_at)
    daily_rows = (
        db.session.query(day, func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0))
        .filter(*filters)
        .group_by(day)
        .order_by(day.asc())
        .all()
    )

    return {
        "from": start_d.isoformat(),
        "to": end_d.isoformat(),
        "include_pending": include_pending,
        "summary": {
            "orders": int(count or 0),
            "revenue_cents": int(revenue or 0),
            "avg_order_cents": round(float(avg_order or 0)),
        },
        "daily": [
            {"date": str(d), "orders": int(n), "revenue_cents": int(r)}
            for d, n, r in daily_rows
        ],
    }


def top_products(
    *,
    start: str | None,
    end: str | None,
    include_pending: bool = False,
    limit: int = 10,
) -> list[dict]:
    start_d, end_d = resolve_range(start, end)
    start_dt, end_dt = day_range(start_d, end_d)
    limit = max(1, min(limit, MAX_TOP_PRODUCTS))

    qty_sold = func.sum(OrderItem.qty)
    revenue = func.sum(OrderItem.qty * OrderItem.price_cents)

    rows = (
        db.session.query(OrderItem.product_id, Product.name, Product.model, qty_sold, revenue)
        .join(Order, Order.id == OrderItem.order_id)
        .outerjoin(Product, Product.id == OrderItem.product_id)
        .filter(
            Order.status.in_(_statuses(include_pending)),
            Order.created_at >= start_dt,
            Order.created_at <= end_dt,
        )
        .group_by(OrderItem.product_id, Product.name, Product.model)
        .order_by(revenue.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "product_id": product_id,
            "name": name,
            "model": model,
            "qty_sold": int(qty or 0),
            "revenue_cents": int(rev or 0),
        }
        for product_id, name, model, qty, rev in rows
    ]
