# Overview: Flask API routes for the signed-in buyer; profile, cart, checkout, orders and payment proofs.

# backend/app/routes/user.py
"""
Buyer API routes

Every route acts on g.current_user only. Another account's order reads as
404 here; payment uploads against it answer 403.
"""

import os
import secrets

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.utils import secure_filename

from ..decorators import require_auth
from ..services import auth_service
from ..services import cart_service
from ..services import checkout_service
from ..services import order_service
from ..services import payment_service
from ..services.errors import CommerceError
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, json_object, parse_positive_int
from .system import upload_dir


user_bp = Blueprint("user", __name__, url_prefix="/api/user")

PROOF_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".pdf"}


def _error_response(e):
    if isinstance(e, CommerceError):
        return jsonify(e.to_dict()), e.http_status
    if isinstance(e, ConflictError):
        return jsonify(e.to_dict()), 409
    return jsonify(e.to_dict()), 400


# =============================================================================
# PROFILE
# =============================================================================

@user_bp.get("/profile")
@require_auth
def get_profile_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@user_bp.put("/profile")
@require_auth
def update_profile_route():
    try:
        data = json_object(request.get_json(silent=True))
        user = auth_service.update_profile(g.current_user, data)
        return jsonify({"user": user.to_dict()}), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.put("/change-password")
@require_auth
def change_password_route():
    try:
        data = json_object(request.get_json(silent=True))
        auth_service.change_password(
            g.current_user,
            data.get("old_password"),
            data.get("new_password"),
        )
        return jsonify({"message": "Password changed"}), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CART
# =============================================================================

@user_bp.get("/cart")
@require_auth
def get_cart_route():
    """Cart lines after pruning; `pruned` tells the client lines were dropped."""
    try:
        view = cart_service.view_cart(g.current_user.id)
        return jsonify(view.to_dict()), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.post("/cart/add")
@require_auth
def add_to_cart_route():
    """
    Add a product to the cart.

    Body: product_id, qty (default 1). Adding a product already in the cart
    increases its quantity.
    """
    try:
        data = json_object(request.get_json(silent=True))
        product_id = parse_positive_int(data.get("product_id"), "product_id")
        item = cart_service.add_line(g.current_user.id, product_id, data.get("qty", 1))
        return jsonify({
            "item": {"product_id": item.product_id, "qty": item.qty},
            "items_count": cart_service.item_count(g.current_user.id),
        }), 200
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add to cart")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.put("/cart/item/<int:product_id>")
@require_auth
def update_cart_item_route(product_id: int):
    try:
        data = json_object(request.get_json(silent=True))
        item = cart_service.set_line_qty(g.current_user.id, product_id, data.get("qty"))
        return jsonify({
            "item": {"product_id": item.product_id, "qty": item.qty},
            "items_count": cart_service.item_count(g.current_user.id),
        }), 200
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.delete("/cart/item/<int:product_id>")
@require_auth
def remove_cart_item_route(product_id: int):
    try:
        view = cart_service.remove_line(g.current_user.id, product_id)
        return jsonify(view.to_dict()), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHECKOUT
# =============================================================================

@user_bp.post("/checkout/preview")
@require_auth
def checkout_preview_route():
    try:
        view = cart_service.preview_checkout(g.current_user.id)
        return jsonify(view.to_dict()), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to preview checkout")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.post("/checkout/confirm")
@require_auth
def checkout_confirm_route():
    """
    Turn the cart into a pending order.

    Body (all optional): recipient_name, ship_phone, ship_address,
    ship_subdistrict, ship_district, ship_province, ship_zipcode.
    """
    try:
        data = json_object(request.get_json(silent=True))
        order = checkout_service.materialize(g.current_user.id, data)
        return jsonify({"order_id": order.id, "order": order.to_dict()}), 201
    except (CommerceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm checkout")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDERS
# =============================================================================

@user_bp.get("/orders")
@require_auth
def list_orders_route():
    try:
        orders = order_service.list_orders(user_id=g.current_user.id)
        return jsonify({"orders": orders}), 200
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@user_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, user_id=g.current_user.id)
        return jsonify(order_service.order_detail(order)), 200
    except CommerceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT PROOFS
# =============================================================================

def _save_proof_image(file_storage) -> str:
    """Store an uploaded proof under UPLOAD_FOLDER; returns its public path."""
    original = secure_filename(file_storage.filename or "")
    ext = os.path.splitext(original)[1].lower()
    if ext not in PROOF_EXTENSIONS:
        raise ValidationError(
            f"payment_image must be one of: {', '.join(sorted(PROOF_EXTENSIONS))}"
        )

    folder = upload_dir()
    os.makedirs(folder, exist_ok=True)

    stamp = int(utcnow().timestamp() * 1000)
    filename = f"pay_{stamp}_{secrets.token_hex(4)}{ext}"
    file_storage.save(os.path.join(folder, filename))
    return filename


@user_bp.post("/payments")
@require_auth
def upload_payment_route():
    """
    Upload proof of payment for one of the caller's orders.

    Accepts multipart form data (order_id + payment_image file) or JSON
    (order_id + proof_ref). Re-uploading replaces the proof and resets the
    payment to pending.
    """
    saved_file = None
    try:
        image = request.files.get("payment_image")
        if image is not None:
            order_id = parse_positive_int(request.form.get("order_id"), "order_id")
            saved_file = _save_proof_image(image)
            proof_ref = f"/uploads/{saved_file}"
        else:
            data = json_object(request.get_json(silent=True))
            order_id = parse_positive_int(data.get("order_id"), "order_id")
            proof_ref = data.get("proof_ref")

        payment = payment_service.upload_proof(order_id, g.current_user.id, proof_ref)
        return jsonify({"payment": payment.to_dict()}), 201

    except (CommerceError, ValidationError) as e:
        _discard_upload(saved_file)
        return _error_response(e)
    except Exception:
        _discard_upload(saved_file)
        current_app.logger.exception("Failed to upload payment proof")
        return jsonify({"error": "Internal server error"}), 500


def _discard_upload(filename: str | None) -> None:
    if not filename:
        return
    try:
        os.remove(os.path.join(upload_dir(), filename))
    except OSError:
        current_app.logger.warning("Could not remove orphaned upload %s", filename)
