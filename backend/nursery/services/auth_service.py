# Overview: Staff accounts: password hashing, authentication and user CRUD.

"""
Authentication and user management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, a digit and a special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..errors import ConflictError, HasDependentsError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryMovement, Sale, User
from ..models.auth import ROLES, ROLE_CASHIER
from ..time_utils import utcnow
from . import session_service


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, fields={"password": message})


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def _normalize_email(email) -> str:
    return (email or "").strip().lower()


def _validate_user_fields(*, name=None, email=None, role=None, require_all: bool) -> dict:
    errors = {}
    if require_all or name is not None:
        if not name or not str(name).strip():
            errors["name"] = "name is required"
    if require_all or email is not None:
        if "@" not in _normalize_email(email):
            errors["email"] = "email must be a valid email address"
    if role is not None and role not in ROLES:
        errors["role"] = f"role must be one of {', '.join(ROLES)}"
    return errors


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials are valid and the account is active,
    None otherwise. Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == _normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def create_user(name: str, email: str, password: str, role: str = ROLE_CASHIER, is_active: bool = True) -> User:
    errors = _validate_user_fields(name=name, email=email, role=role, require_all=True)
    if errors:
        raise ValidationError("Validation failed", fields=errors)

    email = _normalize_email(email)
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("User already exists")

    user = User(
        name=str(name).strip(),
        email=email,
        password_hash=hash_password(password),
        role=role or ROLE_CASHIER,
        is_active=bool(is_active),
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)

    errors = _validate_user_fields(
        name=data.get("name"),
        email=data.get("email"),
        role=data.get("role"),
        require_all=False,
    )
    if errors:
        raise ValidationError("Validation failed", fields=errors)

    if data.get("email") is not None:
        email = _normalize_email(data["email"])
        clash = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("Email already in use")
        user.email = email
    if data.get("name") is not None:
        user.name = str(data["name"]).strip()
    if data.get("role") is not None:
        user.role = data["role"]
    if data.get("password"):
        user.password_hash = hash_password(data["password"])

    deactivated = False
    if data.get("is_active") is not None:
        deactivated = user.is_active and not data["is_active"]
        user.is_active = bool(data["is_active"])

    db.session.commit()

    if deactivated:
        session_service.revoke_all_user_sessions(user.id)
    return user


def delete_user(user_id: int, acting_user_id: int) -> None:
    user = get_user(user_id)

    if user.id == acting_user_id:
        raise ValidationError("Users cannot delete their own account")

    has_sales = db.session.query(Sale.id).filter(Sale.cashier_id == user.id).first()
    has_movements = db.session.query(InventoryMovement.id).filter(
        InventoryMovement.performed_by_user_id == user.id
    ).first()
    if has_sales or has_movements:
        raise HasDependentsError("User has recorded sales or movements; deactivate the account instead")

    for session in list(user.sessions):
        db.session.delete(session)
    db.session.delete(user)
    db.session.commit()
