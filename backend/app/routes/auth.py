# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/app/routes/auth.py
"""
Authentication API routes

- Self-registration creates customer accounts only
- Login returns an opaque bearer token (stored hashed server-side)
- Logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import AuthenticationError
from ..validation import ConflictError, ValidationError, json_object
from ..decorators import require_auth
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account.

    Body: full_name, email, password, optional phone and address.
    """
    try:
        data = json_object(request.get_json(silent=True))
        user = auth_service.register_user(
            full_name=data.get("full_name"),
            email=data.get("email"),
            password=data.get("password"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        current_app.logger.info("Registered user_id=%s", user.id)
        return jsonify({"user": user.to_dict()}), 201

    except (ValidationError, ConflictError) as e:
        status = 409 if isinstance(e, ConflictError) else 400
        return jsonify(e.to_dict()), status
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token must be sent as `Authorization: Bearer <token>` on protected
    routes.
    """
    try:
        data = json_object(request.get_json(silent=True))
        user = auth_service.authenticate(data.get("email"), data.get("password"))

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
        }), 200

    except AuthenticationError as e:
        return jsonify({"error": str(e)}), e.http_status
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500
