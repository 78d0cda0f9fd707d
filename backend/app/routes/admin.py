# Overview: Flask API routes for admin operations; catalog upkeep, order and payment review, reports.

# backend/app/routes/admin.py
"""
Admin API routes

All routes require an authenticated admin. Order status and payment review
changes go through order_service / payment_service so stock deduction and
restoration stay coupled to the status the admin picks.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_admin
from ..services import auth_service
from ..services import catalog_service
from ..services import order_service
from ..services import payment_service
from ..services import reporting_service
from ..services.errors import CommerceError
from ..validation import ConflictError, ValidationError, coerce_bool, coerce_int, json_object


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _error_response(e):
    if isinstance(e, CommerceError):
        return jsonify(e.to_dict()), e.http_status
    if isinstance(e, ConflictError):
        return jsonify(e.to_dict()), 409
    return jsonify(e.to_dict()), 400


def _report_args() -> dict:
    include_pending = request.args.get("include_pending")
    return {
        "start": request.args.get("from"),
        "end": request.args.get("to"),
        "include_pending": coerce_bool(include_pending, "include_pending") if include_pending else False,
    }


# =============================================================================
# BRANDS
# =============================================================================

@admin_bp.get("/brands")
@require_auth
@require_admin
def list_brands_route():
    brands = catalog_service.list_brands()
    return jsonify({"brands": [b.to_dict() for b in brands]}), 200


@admin_bp.post("/brands")
@require_auth
@require_admin
def create_brand_route():
    try:
        data = json_object(request.get_json(silent=True))
        brand = catalog_service.create_brand(data.get("name"))
        return jsonify({"brand": brand.to_dict()}), 201
    except (ValidationError, ConflictError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create brand")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRODUCTS
# =============================================================================

@admin_bp.get("/products")
@require_auth
@require_admin
def list_products_route():
    """Every product, archived ones included."""
    products = catalog_service.list_all_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@admin_bp.get("/products/<int:product_id>")
@require_auth
@require_admin
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except CommerceError as e:
        return _error_response(e)


@admin_bp.post("/products")
@require_auth
@require_admin
def create_product_route():
    """
    Create a product.

    Body: name, price_cents (required); brand_id, model, description, stock,
    image_url, is_new (optional).
    """
    try:
        product = catalog_service.create_product(request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 201
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/products/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/products/<int:product_id>/archive")
@require_auth
@require_admin
def archive_product_route(product_id: int):
    """Take a product off sale; it disappears from the catalog and every cart."""
    try:
        product = catalog_service.archive_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/products/<int:product_id>/restore")
@require_auth
@require_admin
def restore_product_route(product_id: int):
    try:
        product = catalog_service.restore_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restore product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/products/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    """Delete an unreferenced product; referenced ones answer 409 with an archive hint."""
    try:
        catalog_service.delete_product(product_id)
        return jsonify({"deleted": product_id}), 200
    except (CommerceError, ConflictError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# USERS
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    try:
        users = auth_service.list_users(role=request.args.get("role") or None)
        return jsonify({"users": [u.to_dict() for u in users]}), 200
    except ValidationError as e:
        return _error_response(e)


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        user = auth_service.get_user(user_id)
        return jsonify({"user": user.to_dict()}), 200
    except CommerceError as e:
        return _error_response(e)


@admin_bp.get("/users/<int:user_id>/orders")
@require_auth
@require_admin
def list_user_orders_route(user_id: int):
    try:
        user = auth_service.get_user(user_id)
        return jsonify({
            "user": user.to_dict(),
            "orders": order_service.list_orders(user_id=user.id),
        }), 200
    except CommerceError as e:
        return _error_response(e)


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders_route():
    try:
        orders = order_service.list_orders(status=request.args.get("status") or None)
        return jsonify({"orders": orders}), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/orders/<int:order_id>")
@require_auth
@require_admin
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify(order_service.order_detail(order)), 200
    except CommerceError as e:
        return _error_response(e)


@admin_bp.put("/orders/<int:order_id>/status")
@require_auth
@require_admin
def set_order_status_route(order_id: int):
    """
    Change an order's status.

    Body: status, optional tracking_no. Moving to paid deducts stock if the
    order holds no deduction; moving to canceled restores it if it does.
    """
    try:
        data = json_object(request.get_json(silent=True))
        order = order_service.set_order_status(
            order_id,
            data.get("status"),
            tracking_no=data.get("tracking_no"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 200
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@admin_bp.get("/payments")
@require_auth
@require_admin
def list_payments_route():
    try:
        payments = payment_service.list_payments(status=request.args.get("status") or None)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except CommerceError as e:
        return _error_response(e)


@admin_bp.put("/payments/<int:payment_id>/status")
@require_auth
@require_admin
def set_payment_status_route(payment_id: int):
    """Review a payment proof: pending, verified or rejected."""
    try:
        data = json_object(request.get_json(silent=True))
        payment = payment_service.set_payment_status(
            payment_id,
            data.get("status"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "payment": payment.to_dict(),
            "order": payment.order.to_dict(),
        }), 200
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REPORTS
# =============================================================================

@admin_bp.get("/reports/sales")
@require_auth
@require_admin
def sales_report_route():
    """
    Orders and revenue per day.

    Query params: from, to (YYYY-MM-DD; default current month),
    include_pending (default false).
    """
    try:
        return jsonify(reporting_service.sales_report(**_report_args())), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/reports/top-products")
@require_auth
@require_admin
def top_products_route():
    try:
        limit = request.args.get("limit")
        rows = reporting_service.top_products(
            **_report_args(),
            limit=coerce_int(limit, "limit") if limit else 10,
        )
        return jsonify({"products": rows}), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build top products report")
        return jsonify({"error": "Internal server error"}), 500
