# Overview: Flask API routes for the public catalog; active products and brands only.

from flask import Blueprint, request, jsonify, current_app

from ..services import catalog_service
from ..services.errors import CommerceError
from ..validation import ValidationError, coerce_bool, coerce_int


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/brands")
def list_brands_route():
    brands = catalog_service.list_brands()
    return jsonify({"brands": [b.to_dict() for b in brands]}), 200


@catalog_bp.get("/products")
def list_products_route():
    """
    Browse active products, newest first.

    Query params:
    - brand_id: only this brand
    - is_new: "1"/"true" for new arrivals only
    - q: case-insensitive match on name or model
    """
    try:
        brand_id = request.args.get("brand_id")
        is_new = request.args.get("is_new")
        products = catalog_service.browse_products(
            brand_id=coerce_int(brand_id, "brand_id") if brand_id else None,
            is_new=coerce_bool(is_new, "is_new") if is_new else None,
            q=request.args.get("q"),
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to list catalog products")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_active_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.http_status
