# backend/app/routes/system.py
"""
System health, version and uploaded-proof endpoints.

/health reports database connectivity and a few row counts so a deploy can
be smoke-tested without credentials.
"""

import os
import time
from flask import Blueprint, current_app, send_from_directory
from ..extensions import db
from ..models import Order, Product, SessionToken, User
from app.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def upload_dir() -> str:
    """UPLOAD_FOLDER resolved against the instance folder when relative."""
    folder = current_app.config["UPLOAD_FOLDER"]
    if not os.path.isabs(folder):
        folder = os.path.join(current_app.instance_path, folder)
    return folder


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).filter(Product.is_active.is_(True)).count()
        user_count = db.session.query(User).count()
        order_count = db.session.query(Order).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_products": product_count,
                "users": user_count,
                "orders": order_count,
                "active_sessions": active_sessions,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return body, 200 if healthy else 503


@system_bp.get("/version")
def version():
    return {
        "name": "storefront-backend",
        "version": os.environ.get("APP_VERSION", "dev"),
        "git_sha": os.environ.get("GIT_SHA"),
    }


@system_bp.get("/uploads/<path:filename>")
def uploaded_file(filename: str):
    return send_from_directory(upload_dir(), filename)
