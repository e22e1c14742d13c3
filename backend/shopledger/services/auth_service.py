# Overview: Service-layer operations for auth; phone/PIN identity, approval workflow.

"""
Phone/PIN Authentication Service

WHY: Every ledger entry must be attributable to an approved actor. Actors
sign in with a 10-digit mobile number and a 6-digit PIN; the PIN is stored
bcrypt-hashed, never in plaintext.

RULES:
- Phone numbers are normalized (leading +91 and non-digits stripped).
- Only the configured ADMIN_PHONE may register as an Owner; that profile is
  admin and auto-approved. Everyone else starts unapproved.
- Non-admin signups notify admins (approval notification).
"""

import re

import bcrypt
from flask import current_app

from ..errors import (
    ApprovalPending,
    AuthenticationFailed,
    DuplicatePhone,
    ProfileNotFound,
    RoleNotPermitted,
    ValidationError,
)
from ..extensions import db
from ..models import Profile, KNOWN_ROLES, ROLE_OWNER, ROLE_STORE_MANAGER
from . import notification_service


PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")  # Indian mobile number format
PIN_LENGTH = 6


def normalize_phone(phone: str) -> str:
    phone = (phone or "").strip()
    if phone.startswith("+91"):
        phone = phone[3:]
    return re.sub(r"\D", "", phone)


def validate_phone(phone: str) -> None:
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("Enter a valid 10-digit mobile number", details={"field": "phone"})


def validate_pin(pin: str) -> None:
    if not isinstance(pin, str) or not pin.isdigit():
        raise ValidationError("PIN must contain only digits", details={"field": "pin"})
    if len(pin) != PIN_LENGTH:
        raise ValidationError(f"PIN must be exactly {PIN_LENGTH} digits", details={"field": "pin"})


def hash_pin(pin: str) -> str:
    """
    Hash PIN using bcrypt.

    PIN is validated before hashing. Cost factor comes from BCRYPT_ROUNDS.
    """
    validate_pin(pin)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(pin.encode("utf-8"), salt).decode("utf-8")


def check_pin(pin: str, pin_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    if not isinstance(pin, str) or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def get_profile(profile_id: int) -> Profile:
    profile = db.session.get(Profile, profile_id)
    if profile is None:
        raise ProfileNotFound("Profile not found", details={"profile_id": profile_id})
    return profile


def register_profile(phone: str, pin: str, name: str, designation: str = ROLE_STORE_MANAGER) -> Profile:
    """
    Create a new profile.

    Raises ValidationError for malformed input, DuplicatePhone when the number
    is taken, RoleNotPermitted for an Owner signup from a non-admin number.
    """
    phone = normalize_phone(phone)
    validate_phone(phone)
    validate_pin(pin)

    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", details={"field": "name"})

    is_admin = phone == current_app.config.get("ADMIN_PHONE")
    if is_admin:
        designation = ROLE_OWNER
    if designation not in KNOWN_ROLES:
        raise ValidationError(
            f"Designation must be one of: {', '.join(KNOWN_ROLES)}",
            details={"field": "designation"},
        )
    if designation == ROLE_OWNER and not is_admin:
        raise RoleNotPermitted("Owner accounts cannot be self-registered")

    if db.session.query(Profile).filter_by(phone=phone).first():
        raise DuplicatePhone("An account with this phone number already exists. Please sign in instead.")

    profile = Profile(
        phone=phone,
        name=name,
        pin_hash=hash_pin(pin),
        designation=designation,
        is_admin=is_admin,
        is_approved=is_admin,
    )
    db.session.add(profile)
    db.session.commit()

    if not profile.is_admin:
        notification_service.emit(notification_service.notify_new_profile, profile)

    return profile


def authenticate(phone: str, pin: str) -> Profile:
    """
    Resolve a phone/PIN pair to an approved profile.

    Raises AuthenticationFailed for unknown phone or wrong PIN (same message
    for both), ApprovalPending for valid credentials on an unapproved account.
    """
    phone = normalize_phone(phone)
    profile = db.session.query(Profile).filter_by(phone=phone).first()
    if profile is None or not check_pin(pin, profile.pin_hash):
        raise AuthenticationFailed("Invalid PIN. Please check your PIN and try again.")

    if not profile.is_admin and not profile.is_approved:
        raise ApprovalPending("Your account is pending approval")

    return profile


def verify_credential(actor_id: int, secret: str) -> dict:
    """Check a PIN for a known actor: {"success": bool, "error"?: str}."""
    profile = db.session.get(Profile, actor_id)
    if profile is None:
        return {"success": False, "error": "User not found"}
    if check_pin(secret, profile.pin_hash):
        return {"success": True}
    return {"success": False, "error": "Invalid PIN"}


def set_approval(actor_id: int, approved: bool) -> dict:
    """
    Approve or revoke a profile. Privilege is enforced by the caller
    (admin session or service key).

    Revoking approval also revokes the profile's open sessions.
    """
    from .session_service import revoke_all_sessions

    profile = db.session.get(Profile, actor_id)
    if profile is None:
        return {"success": False, "error": "User not found"}
    if profile.is_admin and not approved:
        return {"success": False, "error": "Admin accounts cannot be unapproved"}

    profile.is_approved = bool(approved)
    db.session.commit()

    if not approved:
        revoke_all_sessions(profile.id, reason="Approval revoked")

    return {"success": True}


def change_pin(actor_id: int, current_pin: str, new_pin: str) -> None:
    profile = get_profile(actor_id)
    if not check_pin(current_pin, profile.pin_hash):
        raise AuthenticationFailed("Current PIN is incorrect")
    profile.pin_hash = hash_pin(new_pin)
    db.session.commit()


def list_profiles(approved: bool | None = None) -> list[Profile]:
    q = db.session.query(Profile)
    if approved is not None:
        q = q.filter(Profile.is_approved.is_(approved))
    return q.order_by(Profile.created_at.desc(), Profile.id.desc()).all()
