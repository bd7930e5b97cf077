# Overview: Service-layer operations for team membership; role grants and revocation.

"""
Team Management

Role and tenant affiliation change only here. Owners manage their own
tenant; super admins may grant any role in the acting tenant. Every change
is audited and revokes the target's sessions so the new role applies at once.

Staff can also register a client at the desk (create_managed_client).
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..errors import NotFound, PolicyDenied, ValidationFailed
from ..models import Profile
from ..models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN
from . import audit_service
from .audit_service import ACTION_CREATE, ACTION_GRANT, ACTION_REVOKE, ENTITY_PROFILES
from .auth_service import create_profile, generate_temporary_password, normalize_email
from .session_service import revoke_all_profile_sessions


GRANTABLE_BY_OWNER = {ROLE_STAFF, ROLE_OWNER, ROLE_KIOSK}
GRANTABLE_BY_SUPER_ADMIN = GRANTABLE_BY_OWNER | {ROLE_SUPER_ADMIN}
TEAM_ROLES = {ROLE_STAFF, ROLE_OWNER, ROLE_KIOSK}


def _grantable(actor: Profile) -> set[str]:
    if actor.role == ROLE_SUPER_ADMIN:
        return GRANTABLE_BY_SUPER_ADMIN
    if actor.role == ROLE_OWNER:
        return GRANTABLE_BY_OWNER
    return set()


def list_team(tenant_id: int) -> list[Profile]:
    return db.session.query(Profile).filter(
        Profile.tenant_id == tenant_id,
        Profile.role.in_(TEAM_ROLES),
    ).order_by(Profile.role.asc(), Profile.full_name.asc(), Profile.id.asc()).all()


def grant_role(actor: Profile, tenant_id: int, target_email: str, role: str, *, is_active_barber: bool | None = None) -> Profile:
    """
    Attach an existing account to the tenant with a role.

    The target must be unaffiliated or already in this tenant; accounts of
    another tenant are NotFound.
    """
    allowed = _grantable(actor)
    if not allowed:
        raise PolicyDenied("Only the shop owner can manage the team")
    if role not in allowed:
        raise ValidationFailed(f"role must be one of: {', '.join(sorted(allowed))}")

    email = normalize_email(target_email)
    target = db.session.query(Profile).filter_by(email=email).first()
    if target is None or target.tenant_id not in (None, tenant_id):
        raise NotFound("Account not found")
    if target.role == ROLE_SUPER_ADMIN and actor.role != ROLE_SUPER_ADMIN:
        raise PolicyDenied("Platform administrators cannot be changed by a shop owner")

    previous = {"role": target.role, "tenant_id": target.tenant_id}
    target.role = role
    target.tenant_id = tenant_id
    if is_active_barber is not None:
        target.is_active_barber = bool(is_active_barber)
    elif role in (ROLE_STAFF, ROLE_OWNER) and previous["role"] == ROLE_CUSTOMER:
        target.is_active_barber = True

    revoke_all_profile_sessions(target.id, "Role changed")
    audit_service.append(
        tenant_id, actor.id, ACTION_GRANT, ENTITY_PROFILES, target.id,
        {"role": role, "previous_role": previous["role"], "previous_tenant_id": previous["tenant_id"]},
    )
    db.session.commit()
    return target


def revoke_staff(actor: Profile, tenant_id: int, profile_id) -> Profile:
    """Return a team member to an unaffiliated customer account."""
    if not _grantable(actor):
        raise PolicyDenied("Only the shop owner can manage the team")
    if actor.id == profile_id:
        raise ValidationFailed("You cannot remove yourself from the team")

    target = db.session.query(Profile).filter_by(id=profile_id, tenant_id=tenant_id).first()
    if target is None or target.role not in TEAM_ROLES:
        raise NotFound("Team member not found")

    previous_role = target.role
    target.role = ROLE_CUSTOMER
    target.tenant_id = None
    target.is_active_barber = False

    revoke_all_profile_sessions(target.id, "Removed from team")
    audit_service.append(
        tenant_id, actor.id, ACTION_REVOKE, ENTITY_PROFILES, target.id,
        {"previous_role": previous_role},
    )
    db.session.commit()
    return target


# =============================================================================
# DESK-CREATED CLIENTS
# =============================================================================

CLIENT_DESK_ROLES = {ROLE_STAFF, ROLE_OWNER, ROLE_SUPER_ADMIN}


def _clean_phone(phone) -> str:
    digits = re.sub(r"\D", "", str(phone or ""))
    if not 7 <= len(digits) <= 15:
        raise ValidationFailed("phone must have between 7 and 15 digits")
    return digits


def create_managed_client(
    actor: Profile,
    tenant_id: int,
    *,
    full_name: str | None,
    phone,
    email: str | None = None,
) -> tuple[Profile, str | None]:
    """
    Create a client account at the desk so a walk-in can start earning points.

    Returns (profile, temporary_password). A client already known by that
    phone (unaffiliated or of this shop) is returned as is, with no password.
    """
    if actor.role not in CLIENT_DESK_ROLES:
        raise PolicyDenied("Only shop staff can register clients")

    phone = _clean_phone(phone)
    existing = db.session.query(Profile).filter(
        Profile.phone == phone,
        Profile.role == ROLE_CUSTOMER,
        db.or_(Profile.tenant_id.is_(None), Profile.tenant_id == tenant_id),
    ).order_by(Profile.id.asc()).first()
    if existing is not None:
        return existing, None

    name = (full_name or "").strip() or "Client"
    if email:
        email = normalize_email(email)
    else:
        email = f"{phone}@phone.{current_app.config['ROOT_DOMAIN']}"

    password = generate_temporary_password()
    profile = create_profile(
        email=email,
        password=password,
        full_name=name[:255],
        phone=phone,
        role=ROLE_CUSTOMER,
        tenant_id=tenant_id,
    )
    audit_service.append(
        tenant_id, actor.id, ACTION_CREATE, ENTITY_PROFILES, profile.id,
        {"role": ROLE_CUSTOMER, "managed": True},
    )
    db.session.commit()
    return profile, password
