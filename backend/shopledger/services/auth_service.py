# Overview: Password hashing, authentication and operator account management.

"""
Authentication Service

Every bill, payment and expense is attributable to an operator. Uses bcrypt
for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- The last active super admin cannot be removed or demoted
"""

import re

import bcrypt

from ..errors import AuthError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense, User
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_USER, VALID_ROLES
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, normalize_choice, validate_payload
from . import session_service


USER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "email", "phone", "role", "is_active",
        "department", "position", "employee_id", "notes",
    },
    required_on_create={"name", "email"},
)

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone"},
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt cost 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_email(raw) -> str:
    email = str(raw or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def _ensure_email_available(email: str, *, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.email == email)
    if exclude_user_id:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ValidationError("Email already registered")


def _active_super_admin_count() -> int:
    return db.session.query(User).filter(
        User.role == ROLE_SUPER_ADMIN,
        User.is_active.is_(True),
    ).count()


def _guard_last_super_admin(user: User, *, new_role: str | None = None, deactivate: bool = False, deleting: bool = False) -> None:
    if not (user.is_super_admin and user.is_active):
        return
    losing = deleting or deactivate or (new_role is not None and new_role != ROLE_SUPER_ADMIN)
    if losing and _active_super_admin_count() <= 1:
        raise ValidationError("Cannot remove the last active super admin")


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users(*, role: str | None = None, search: str | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == normalize_choice("role", role, VALID_ROLES))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(payload: dict, *, created_by_user_id: int | None = None) -> User:
    """
    Create an operator account.

    Raises ValidationError on missing fields, bad role, weak password or a
    duplicate email.
    """
    payload = dict(payload or {})
    password = payload.pop("password", None)
    if not password:
        raise ValidationError("Missing required fields: password", details={"missing": ["password"]})

    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
    patch["email"] = _normalize_email(patch["email"])
    patch["role"] = normalize_choice("role", patch.get("role") or ROLE_USER, VALID_ROLES)
    _ensure_email_available(patch["email"])

    user = User(
        **patch,
        password_hash=hash_password(password),
        created_by_user_id=created_by_user_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, payload: dict) -> User:
    user = get_user(user_id)
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)

    if "email" in patch:
        patch["email"] = _normalize_email(patch["email"])
        _ensure_email_available(patch["email"], exclude_user_id=user.id)
    if "role" in patch:
        patch["role"] = normalize_choice("role", patch["role"], VALID_ROLES)

    _guard_last_super_admin(
        user,
        new_role=patch.get("role"),
        deactivate=patch.get("is_active") is False,
    )

    for k, v in patch.items():
        setattr(user, k, v)

    if patch.get("is_active") is False:
        session_service.revoke_all_user_sessions(user.id, "User account deactivated", commit=False)

    db.session.commit()
    return user


def delete_user(user_id: int, *, acting_user_id: int | None = None) -> User:
    user = get_user(user_id)
    if acting_user_id is not None and user.id == acting_user_id:
        raise ValidationError("You cannot delete your own account")
    _guard_last_super_admin(user, deleting=True)
    if db.session.query(Expense.id).filter(Expense.created_by_user_id == user.id).first():
        raise ValidationError("User has recorded expenses; deactivate the account instead")
    db.session.delete(user)
    db.session.commit()
    return user


def reset_password(user_id: int, new_password: str) -> User:
    """Admin reset: sets a new password and signs the user out everywhere."""
    user = get_user(user_id)
    user.password_hash = hash_password(new_password)
    session_service.revoke_all_user_sessions(user.id, "Password reset", commit=False)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and stamp last_login_at.

    Raises AuthError for unknown email, wrong password or inactive account.
    The message does not say which.
    """
    email = str(email or "").strip().lower()
    user = db.session.query(User).filter(User.email == email).first()

    if not user or not verify_password(password or "", user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, payload: dict) -> User:
    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)
    if "email" in patch:
        patch["email"] = _normalize_email(patch["email"])
        _ensure_email_available(patch["email"], exclude_user_id=user.id)
    for k, v in patch.items():
        setattr(user, k, v)
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str, *, keep_token_hash: str | None = None) -> User:
    """
    Self-service password change.

    Wrong current password is an AuthError (401). Every other session of
    the user is revoked; the one making the request survives.
    """
    if not verify_password(current_password or "", user.password_hash):
        raise AuthError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    session_service.revoke_all_user_sessions(
        user.id,
        "Password changed",
        except_token_hash=keep_token_hash,
        commit=False,
    )
    db.session.commit()
    return user
