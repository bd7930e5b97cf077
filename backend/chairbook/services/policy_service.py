# Overview: Access decisions against live tenant state, and kiosk mode switching.

"""
Access Policy Service

Reads the tenant's kiosk flag from the database on every decision (no
process-local cache), feeds it to the pure policy table, and logs denials
as security events.

Kiosk mode:
- activate: owner or super admin, only once a kiosk PIN is configured
- deactivate: anyone in the tenant who knows the PIN
- set PIN: owner or super admin
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import PolicyDenied, ValidationFailed
from ..models import Profile, Tenant
from ..models.auth import ROLE_OWNER, ROLE_SUPER_ADMIN
from .. import policy
from . import audit_service
from .audit_service import ACTION_KIOSK_ON, ACTION_KIOSK_OFF, ACTION_UPDATE, ENTITY_SETTINGS
from .auth_service import hash_kiosk_pin, verify_kiosk_pin
from .security_service import (
    commit_security_event,
    EVENT_KIOSK_PIN_FAILED,
    EVENT_POLICY_DENIED,
)
from .tenant_service import get_tenant

logger = logging.getLogger(__name__)


KIOSK_ADMIN_ROLES = {ROLE_OWNER, ROLE_SUPER_ADMIN}


def is_kiosk_active(tenant_id: int | None) -> bool:
    if tenant_id is None:
        return False
    value = db.session.query(Tenant.kiosk_mode_active).filter(Tenant.id == tenant_id).scalar()
    return bool(value)


def is_member(profile: Profile | None, tenant_id: int | None) -> bool:
    if profile is None:
        return False
    if profile.role == ROLE_SUPER_ADMIN:
        return True
    return tenant_id is not None and profile.tenant_id == tenant_id


def get_access_decision(profile: Profile | None, tenant_id: int | None, route: str) -> policy.AccessDecision:
    return policy.decide(
        route,
        role=profile.role if profile else None,
        kiosk_active=is_kiosk_active(tenant_id),
        is_member=is_member(profile, tenant_id),
    )


def get_navigation(profile: Profile | None, tenant_id: int | None) -> dict:
    kiosk_active = is_kiosk_active(tenant_id)
    return {
        "kiosk_mode_active": kiosk_active,
        "role": profile.role if profile else None,
        "items": policy.navigation_menu(
            role=profile.role if profile else None,
            kiosk_active=kiosk_active,
            is_member=is_member(profile, tenant_id),
        ),
    }


def authorize(profile: Profile | None, tenant_id: int | None, operation: str) -> policy.AccessDecision:
    """
    Authorize an operation for the caller in the acting tenant.

    Raises:
        PolicyDenied: carries the redirect target of the denied decision
    """
    decision = policy.decide_operation(
        operation,
        role=profile.role if profile else None,
        kiosk_active=is_kiosk_active(tenant_id),
        is_member=is_member(profile, tenant_id),
    )
    if not decision.allowed:
        commit_security_event(
            EVENT_POLICY_DENIED,
            profile_id=profile.id if profile else None,
            tenant_id=tenant_id,
            action=operation,
            reason=decision.reason,
        )
        raise PolicyDenied(
            f"Not allowed: {decision.reason}",
            redirect_to=decision.redirect_to,
            details={"operation": operation},
        )
    return decision


def _require_kiosk_admin(actor: Profile) -> None:
    if actor.role not in KIOSK_ADMIN_ROLES:
        raise PolicyDenied("Only the shop owner can change kiosk settings", redirect_to=policy.TERMINAL_ROUTE)


def set_kiosk_pin(actor: Profile, tenant_id: int, pin: str) -> Tenant:
    _require_kiosk_admin(actor)
    tenant = get_tenant(tenant_id)
    tenant.kiosk_pin_hash = hash_kiosk_pin(pin)
    audit_service.append(tenant_id, actor.id, ACTION_UPDATE, ENTITY_SETTINGS, tenant_id, {"field": "kiosk_pin"})
    db.session.commit()
    return tenant


def activate_kiosk(actor: Profile, tenant_id: int) -> Tenant:
    _require_kiosk_admin(actor)
    tenant = get_tenant(tenant_id)
    if not tenant.kiosk_pin_hash:
        raise ValidationFailed("Set a kiosk PIN before activating kiosk mode")
    if not tenant.kiosk_mode_active:
        tenant.kiosk_mode_active = True
        audit_service.append(tenant_id, actor.id, ACTION_KIOSK_ON, ENTITY_SETTINGS, tenant_id)
        db.session.commit()
        logger.info("Kiosk mode activated for tenant %s by profile %s", tenant_id, actor.id)
    return tenant


def deactivate_kiosk(actor: Profile, tenant_id: int, pin: str) -> Tenant:
    """
    Leave kiosk mode.

    Raises:
        PolicyDenied: wrong PIN (logged as a security event)
    """
    tenant = get_tenant(tenant_id)
    if not verify_kiosk_pin(pin or "", tenant.kiosk_pin_hash):
        commit_security_event(
            EVENT_KIOSK_PIN_FAILED,
            profile_id=actor.id,
            tenant_id=tenant_id,
            action="deactivate_kiosk",
            reason="Incorrect kiosk PIN",
        )
        raise PolicyDenied("Incorrect PIN")
    if tenant.kiosk_mode_active:
        tenant.kiosk_mode_active = False
        audit_service.append(tenant_id, actor.id, ACTION_KIOSK_OFF, ENTITY_SETTINGS, tenant_id)
        db.session.commit()
        logger.info("Kiosk mode deactivated for tenant %s by profile %s", tenant_id, actor.id)
    return tenant


def update_settings(actor: Profile, tenant_id: int, payload: dict) -> Tenant:
    """Owner-editable tenant settings (display name, logo, guest checkout)."""
    tenant = get_tenant(tenant_id)
    changed = {}

    if "display_name" in payload:
        name = (payload.get("display_name") or "").strip()
        if not name:
            raise ValidationFailed("display_name cannot be empty")
        tenant.display_name = name
        changed["display_name"] = name

    if "logo_url" in payload:
        tenant.logo_url = payload.get("logo_url") or None
        changed["logo_url"] = tenant.logo_url

    if "guest_checkout_enabled" in payload:
        value = payload.get("guest_checkout_enabled")
        if not isinstance(value, bool):
            raise ValidationFailed("guest_checkout_enabled must be a boolean")
        tenant.guest_checkout_enabled = value
        changed["guest_checkout_enabled"] = value

    if changed:
        audit_service.append(tenant_id, actor.id, ACTION_UPDATE, ENTITY_SETTINGS, tenant_id, changed)
        db.session.commit()
    return tenant
