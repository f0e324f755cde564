# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters required
- Session tokens managed separately (see session_service.py)
- The default admin (is_default=True) cannot be deleted or demoted
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import SessionToken, Sale, StockMovement, User
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    enforce_rules_user,
)
from .concurrency import run_with_retry, unit_of_work
from . import session_service


MIN_PASSWORD_LENGTH = 6
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin_26"
USER_MUTABLE_FIELDS = {"username", "role", "full_name", "is_active"}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes are treated as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _require_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def _ensure_username_free(username: str, exclude_user_id: int | None = None) -> None:
    q = db.session.query(User.id).filter(User.username == username)
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    if q.first() is not None:
        raise ConflictError("Username already exists")


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(
    username: str,
    password: str,
    role: str | None = None,
    full_name: str | None = None,
    is_default: bool = False,
) -> User:
    """
    Create a user with a bcrypt password hash.

    role defaults to cashier. Raises ConflictError on duplicate username,
    PasswordValidationError on a short password.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if not password:
        raise ValidationError("password is required")

    patch = {"role": (role or "cashier").strip().lower()}
    enforce_rules_user(patch)
    password_hash = hash_password(password)

    def _op():
        with unit_of_work():
            _ensure_username_free(username)
            user = User(
                username=username,
                password_hash=password_hash,
                role=patch["role"],
                full_name=(full_name or "").strip() or None,
                is_default=is_default,
                is_active=True,
            )
            db.session.add(user)
        return user

    user = run_with_retry(_op)
    current_app.logger.info("User %s created with role %s", user.username, user.role)
    return user


def update_user(user_id: int, patch: dict, password: str | None = None) -> User:
    """
    Update username/role/full_name/is_active and optionally the password.

    Changing the password or deactivating the user revokes their sessions.
    """
    patch = {k: v for k, v in patch.items() if k in USER_MUTABLE_FIELDS}
    if "role" in patch and patch["role"] is not None:
        patch["role"] = str(patch["role"]).strip().lower()
    enforce_rules_user(patch)
    if "username" in patch and not (patch["username"] or "").strip():
        raise ValidationError("username cannot be blank")

    password_hash = hash_password(password) if password else None

    def _op():
        with unit_of_work():
            user = _require_user(user_id)
            if user.is_default:
                if patch.get("role", "admin") != "admin":
                    raise ForbiddenError("Cannot change the role of the default admin")
                if patch.get("is_active") is False:
                    raise ForbiddenError("Cannot deactivate the default admin")

            if "username" in patch:
                patch["username"] = patch["username"].strip()
                _ensure_username_free(patch["username"], exclude_user_id=user.id)

            was_active = user.is_active
            for k, v in patch.items():
                setattr(user, k, v)
            if password_hash:
                user.password_hash = password_hash

            revoke_reason = None
            if password_hash:
                revoke_reason = "Password changed"
            elif was_active and user.is_active is False:
                revoke_reason = "User deactivated"
            if revoke_reason:
                session_service.revoke_all_user_sessions_inner(user.id, reason=revoke_reason)
        return user

    return run_with_retry(_op)


def delete_user(user_id: int, acting_user_id: int | None = None) -> None:
    """Delete a user; their sales and movements keep a null user_id."""
    def _op():
        with unit_of_work():
            user = _require_user(user_id)
            if user.is_default:
                raise ForbiddenError("Cannot delete the default admin")
            if acting_user_id is not None and user.id == acting_user_id:
                raise ValidationError("Cannot delete your own account")

            db.session.query(Sale).filter(Sale.user_id == user_id).update(
                {Sale.user_id: None}, synchronize_session=False
            )
            db.session.query(StockMovement).filter(StockMovement.user_id == user_id).update(
                {StockMovement.user_id: None}, synchronize_session=False
            )
            db.session.query(SessionToken).filter(SessionToken.user_id == user_id).delete(
                synchronize_session=False
            )
            db.session.delete(user)

    run_with_retry(_op)
    current_app.logger.info("User %s deleted by user %s", user_id, acting_user_id)


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def ensure_default_admin(password: str = DEFAULT_ADMIN_PASSWORD) -> tuple[User, bool]:
    """Create the bootstrap admin if missing. Returns (user, created)."""
    existing = db.session.query(User).filter_by(is_default=True).first()
    if existing:
        return existing, False
    existing = db.session.query(User).filter_by(username=DEFAULT_ADMIN_USERNAME).first()
    if existing:
        existing.is_default = True
        existing.role = "admin"
        db.session.commit()
        return existing, False
    user = create_user(
        DEFAULT_ADMIN_USERNAME,
        password,
        role="admin",
        full_name="Administrator",
        is_default=True,
    )
    return user, True
