# Overview: Authentication and role decorators for API routes.

from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify, request

from .errors import AuthError, AuthorizationError
from .services import session_service


@dataclass(frozen=True)
class RequestContext:
    """Who is making this request. Passed explicitly into services as actor ids."""
    user_id: int
    role: str
    token_hash: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"


def require_auth(f):
    """
    Require a valid bearer token.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.context: RequestContext(user_id, role, token_hash)

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired, revoked or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify(AuthError("No token, authorization denied").to_dict()), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)

        if not context:
            return jsonify(AuthError("Token is not valid").to_dict()), 401

        g.current_user = context.user
        g.context = RequestContext(
            user_id=context.user.id,
            role=context.user.role,
            token_hash=context.session.token_hash,
        )

        return f(*args, **kwargs)

    return decorated_function


def require_super_admin(f):
    """
    Gate a route to super admins. Must be applied after @require_auth.

    Returns 403 for any other role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = getattr(g, "context", None)
        if context is None:
            return jsonify(AuthError().to_dict()), 401
        if not context.is_super_admin:
            return jsonify(AuthorizationError().to_dict()), 403
        return f(*args, **kwargs)

    return decorated_function
