# Overview: Service-layer operations for accounts; password hashing and user creation.

import bcrypt

from ..extensions import db
from ..models import User, UserProfile, USER_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
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


def create_user(
    *,
    email: str,
    password: str,
    role: str = "customer",
    first_name: str = "",
    last_name: str = "",
    phone_number: str | None = None,
    preferred_location_id: int | None = None,
) -> User:
    """
    Create a user together with its profile (balance 0).

    Raises ValueError on unknown role or duplicate email and
    PasswordValidationError on a weak password.
    """
    if role not in USER_ROLES:
        raise ValueError(f"role must be one of: {', '.join(USER_ROLES)}")

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise ValueError(f"User with email '{email}' already exists")

    user = User(email=email, password_hash=hash_password(password), role=role, is_active=True)
    db.session.add(user)
    db.session.flush()

    profile = UserProfile(
        user_id=user.id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone_number=phone_number,
        preferred_location_id=preferred_location_id,
        available_balance=0,
        total_spend=0,
    )
    db.session.add(profile)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
