# backend/shopledger/routes/users.py
"""
Operator account management. Super admin only.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import ApiError, ServerError, ValidationError
from ..services import auth_service
from ..validation import parse_id


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_super_admin
def list_users_route():
    try:
        users = auth_service.list_users(
            role=request.args.get("role"),
            search=request.args.get("search"),
        )
        return jsonify([u.to_dict() for u in users]), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify(ServerError().to_dict()), 500


@users_bp.get("/<user_id>")
@require_auth
@require_super_admin
def get_user_route(user_id):
    try:
        return jsonify(auth_service.get_user(parse_id(user_id, "user")).to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get user")
        return jsonify(ServerError().to_dict()), 500


@users_bp.post("")
@require_auth
@require_super_admin
def create_user_route():
    """
    Request body:
    {
        "name": "Asha", "email": "asha@example.com", "password": "secret123",
        "role": "sub_admin", "phone": "...", "department": "...", ...
    }
    """
    try:
        user = auth_service.create_user(
            request.get_json(silent=True) or {},
            created_by_user_id=g.context.user_id,
        )
        return jsonify(user.to_dict()), 201
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify(ServerError().to_dict()), 500


@users_bp.put("/<user_id>")
@require_auth
@require_super_admin
def update_user_route(user_id):
    try:
        user = auth_service.update_user(parse_id(user_id, "user"), request.get_json(silent=True) or {})
        return jsonify(user.to_dict()), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify(ServerError().to_dict()), 500


@users_bp.delete("/<user_id>")
@require_auth
@require_super_admin
def delete_user_route(user_id):
    try:
        user = auth_service.delete_user(parse_id(user_id, "user"), acting_user_id=g.context.user_id)
        return jsonify({"message": "User deleted", "user": {"id": user.id, "email": user.email}}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify(ServerError().to_dict()), 500


@users_bp.post("/<user_id>/reset-password")
@require_auth
@require_super_admin
def reset_password_route(user_id):
    """Request body: {"new_password": "..."}. Signs the user out everywhere."""
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("new_password"):
            raise ValidationError("new_password is required")
        auth_service.reset_password(parse_id(user_id, "user"), data["new_password"])
        return jsonify({"message": "Password reset successfully"}), 200
    except ApiError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify(ServerError().to_dict()), 500
