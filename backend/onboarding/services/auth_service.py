# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every workflow action must be attributable to a matricule. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
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
    """
    Hash password using bcrypt (BCRYPT_ROUNDS, cost factor 12 by default).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    matricule: str,
    password: str,
    role: str = Role.AGENT.value,
    affiliation: str | None = None,
    supervisor_id: int | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: unknown role, duplicate matricule, or bad supervisor link
        PasswordValidationError: password doesn't meet requirements
    """
    matricule = (matricule or "").strip()
    if not matricule:
        raise ValueError("matricule is required")

    role = getattr(role, "value", role)
    if role not in {r.value for r in Role}:
        raise ValueError(f"Unknown role: {role}")

    existing = db.session.query(User).filter_by(matricule=matricule).first()
    if existing:
        raise ValueError("Matricule already exists")

    if supervisor_id is not None:
        _check_supervisor(supervisor_id)

    user = User(
        matricule=matricule,
        password_hash=hash_password(password),
        role=role,
        affiliation=affiliation,
        supervisor_id=supervisor_id,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def assign_supervisor(user_id: int, supervisor_id: int | None) -> User:
    """Set (or clear) the reporting link of a user."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if supervisor_id is not None:
        if supervisor_id == user_id:
            raise ValueError("A user cannot supervise themselves")
        _check_supervisor(supervisor_id)
    user.supervisor_id = supervisor_id
    db.session.commit()
    return user


def _check_supervisor(supervisor_id: int) -> None:
    supervisor = db.session.query(User).filter_by(id=supervisor_id).first()
    if not supervisor:
        raise ValueError("Supervisor not found")
    if supervisor.role != Role.SUPERVISOR.value:
        raise ValueError("Supervisor must have role SUPERVISOR")


def authenticate(matricule: str, password: str) -> User | None:
    """
    Authenticate user with matricule and password.

    Returns User if credentials valid and account active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.matricule == matricule,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
