# Overview: Service-layer operations for auth; password hashing, registration and credential checks.

"""
Authentication Service

WHY: Every action must be attributable to a profile. Uses bcrypt for
password hashing and for the tenant kiosk PIN.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Kiosk PINs are 4-8 digits, hashed the same way
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re
import secrets

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..errors import ValidationFailed
from ..models import Profile
from ..models.auth import ROLE_CUSTOMER, VALID_ROLES
from chairbook.time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
KIOSK_PIN_PATTERN = re.compile(r"^\d{4,8}$")


def validate_password_strength(password: str) -> None:
    """
    Raises ValidationFailed if the password is shorter than 8 characters or
    lacks a letter or a digit.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationFailed("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise ValidationFailed("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise ValidationFailed("Password must contain at least one digit")


def _rounds() -> int:
    if has_app_context():
        return current_app.config.get("BCRYPT_ROUNDS", 12)
    return 12


def _bcrypt_hash(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def _bcrypt_check(secret: str, secret_hash: str | None) -> bool:
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def generate_temporary_password() -> str:
    """Random first password for a desk-created account (letters and a digit)."""
    return "cb" + secrets.token_hex(4) + str(secrets.randbelow(10))


def hash_password(password: str) -> str:
    """Hash a password with bcrypt after validating its strength."""
    validate_password_strength(password)
    return _bcrypt_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe."""
    return _bcrypt_check(password, password_hash)


def hash_kiosk_pin(pin: str) -> str:
    if not isinstance(pin, str) or not KIOSK_PIN_PATTERN.match(pin):
        raise ValidationFailed("Kiosk PIN must be 4 to 8 digits")
    return _bcrypt_hash(pin)


def verify_kiosk_pin(pin: str, pin_hash: str | None) -> bool:
    return _bcrypt_check(pin, pin_hash)


def normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationFailed("A valid email address is required")
    return email


def create_profile(
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    phone: str | None = None,
    role: str = ROLE_CUSTOMER,
    tenant_id: int | None = None,
    is_active_barber: bool = False,
) -> Profile:
    """
    Create a profile with a bcrypt password hash.

    Used by self sign-up (customers) and by the CLI for staff/owner/kiosk
    accounts. Raises ValidationFailed on a duplicate email or bad input.
    """
    email = normalize_email(email)
    if role not in VALID_ROLES:
        raise ValidationFailed(f"role must be one of: {', '.join(sorted(VALID_ROLES))}")

    if db.session.query(Profile).filter_by(email=email).first():
        raise ValidationFailed("An account with this email already exists")

    profile = Profile(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        phone=phone,
        role=role,
        tenant_id=tenant_id,
        is_active_barber=is_active_barber,
        loyalty_points=0,
        no_show_count=0,
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def register_customer(email: str, password: str, full_name: str | None = None, phone: str | None = None) -> Profile:
    """
    Self sign-up. New customers are unaffiliated (tenant_id NULL) so they can
    book at any shop; only grant_role attaches a profile to a tenant.
    """
    return create_profile(email=email, password=password, full_name=full_name, phone=phone)


def authenticate(email: str, password: str) -> Profile | None:
    """
    Check credentials.

    Returns the profile on success, None on unknown email, wrong password or
    deactivated account (callers must not reveal which).
    """
    try:
        email = normalize_email(email)
    except ValidationFailed:
        return None

    profile = db.session.query(Profile).filter_by(email=email).first()
    if not profile or not profile.is_active:
        return None

    if not verify_password(password or "", profile.password_hash):
        return None

    profile.last_login_at = utcnow()
    db.session.commit()
    return profile
