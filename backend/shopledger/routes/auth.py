# backend/shopledger/routes/auth.py
"""
Authentication API routes

- Login issues an opaque bearer token (see session_service)
- Logout revokes the presenting token
- Profile and password changes act on the authenticated user only
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ApiError, ServerError, ValidationError
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email and password.

    Returns:
        200: {token, user, expires_at}
        400: Missing email or password
        401: Invalid credentials or deactivated account
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = auth_service.authenticate(email, password)
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "user": user.to_dict(),
            "expires_at": to_utc_z(session.expires_at),
        }), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify(ServerError().to_dict()), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
    session_service.revoke_session(token, "User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/profile")
@require_auth
def profile_route():
    return jsonify(g.current_user.to_dict()), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    """Update own name, phone or email."""
    try:
        user = auth_service.update_profile(g.current_user, request.get_json(silent=True) or {})
        return jsonify(user.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify(ServerError().to_dict()), 500


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    """
    Request body: {"current_password": "...", "new_password": "..."}

    Other sessions of the user are signed out; this one stays valid.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("current_password") or not data.get("new_password"):
            raise ValidationError("current_password and new_password are required")

        auth_service.change_password(
            g.current_user,
            data["current_password"],
            data["new_password"],
            keep_token_hash=g.context.token_hash,
        )
        return jsonify({"message": "Password updated successfully"}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify(ServerError().to_dict()), 500
