"""
Multi-Tenant Service: Tenant Resolution and Scoping Helpers

WHY: Every request is scoped to a tenant (a shop), and cross-tenant access
must be explicitly denied.

SECURITY INVARIANTS:
1. The acting tenant is derived from the authenticated profile (staff,
   owner, kiosk) or the request host (customers, super admins), never from
   request payload fields.
2. Entity ids from client input are looked up together with the acting
   tenant id; a foreign-tenant id is indistinguishable from a missing one.
3. Cross-tenant access attempts are logged as security events.

USAGE:
    from chairbook.services.tenant_service import resolve_tenant_slug, require_profile_in_tenant

    slug = resolve_tenant_slug(request.host)
    staff = require_profile_in_tenant(staff_id, g.tenant_id, roles=STAFF_ROLES)
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound, PolicyDenied, ValidationFailed
from ..models import Tenant, Profile
from ..models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN
from ..models.tenancy import SUBSCRIPTION_STATUSES
from .security_service import log_security_event, EVENT_CROSS_TENANT


RESERVED_SUBDOMAINS = frozenset({"www", "api", "admin", "app"})
DEFAULT_NON_TENANT_HOSTS = ("localhost", "127.0.0.1")
DEFAULT_NON_TENANT_SUFFIXES = (".vercel.app",)

# Roles that always act inside their own profile's tenant
TENANT_BOUND_ROLES = {ROLE_STAFF, ROLE_OWNER, ROLE_KIOSK}
# Roles that can be assigned as the servicing staff on a booking or sale
SERVICING_ROLES = {ROLE_STAFF, ROLE_OWNER}


def resolve_tenant_slug(
    hostname: str | None,
    *,
    non_tenant_hosts: tuple[str, ...] = DEFAULT_NON_TENANT_HOSTS,
    non_tenant_suffixes: tuple[str, ...] = DEFAULT_NON_TENANT_SUFFIXES,
) -> str | None:
    """
    Map a request host name to a tenant slug.

    - port is stripped, the host is lower-cased
    - local development hosts and preview deployments carry no tenant
    - "<slug>.<domain>.<tld>" (3+ labels) -> slug, unless slug is reserved

    Examples:
        fulanos.chairbook.app      -> "fulanos"
        fulanos.chairbook.app:443  -> "fulanos"
        www.chairbook.app          -> None
        chairbook.app              -> None
        localhost:3000             -> None

    Pure: no I/O.
    """
    if not hostname:
        return None

    host = hostname.strip().lower()
    if host.startswith("["):
        return None  # IPv6 literal
    host = host.split(":", 1)[0].rstrip(".")

    if not host:
        return None
    if any(marker in host for marker in non_tenant_hosts):
        return None
    if any(host.endswith(suffix) for suffix in non_tenant_suffixes):
        return None

    labels = host.split(".")
    if len(labels) >= 3:
        leading = labels[0]
        if leading and leading not in RESERVED_SUBDOMAINS:
            return leading

    return None


def get_tenant_by_slug(slug: str | None) -> Tenant | None:
    if not slug:
        return None
    return db.session.query(Tenant).filter_by(slug=slug).first()


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        raise NotFound("Tenant not found")
    return tenant


def resolve_acting_tenant(profile: Profile | None, host_tenant: Tenant | None) -> int | None:
    """
    Decide which tenant a request acts in.

    - staff, owner, kiosk: their own tenant. If the host names a different
      tenant the request is refused as NotFound (a foreign shop is not
      visible to them).
    - super_admin: the host tenant, falling back to their own tenant.
    - customers and anonymous callers: the host tenant (may be None).
    """
    if profile is not None and profile.role in TENANT_BOUND_ROLES:
        if profile.tenant_id is None:
            return None
        if host_tenant is not None and host_tenant.id != profile.tenant_id:
            log_security_event(
                EVENT_CROSS_TENANT,
                profile_id=profile.id,
                tenant_id=profile.tenant_id,
                reason=f"Host tenant {host_tenant.id} differs from profile tenant {profile.tenant_id}",
            )
            raise NotFound("Tenant not found")
        return profile.tenant_id

    if profile is not None and profile.role == ROLE_SUPER_ADMIN:
        if host_tenant is not None:
            return host_tenant.id
        return profile.tenant_id

    return host_tenant.id if host_tenant is not None else None


def require_active_tenant(tenant_id: int | None) -> Tenant:
    """
    Require a tenant context that is not suspended.

    Raises:
        NotFound: no tenant context / unknown tenant
        PolicyDenied: tenant subscription is suspended
    """
    if tenant_id is None:
        raise NotFound("Tenant not found")
    tenant = get_tenant(tenant_id)
    if tenant.is_suspended:
        raise PolicyDenied("This shop's subscription is suspended")
    return tenant


def require_profile_in_tenant(profile_id, tenant_id: int, *, roles: set[str] | None = None, label: str = "Profile") -> Profile:
    """
    Validate that a profile belongs to the acting tenant (and optionally has one of roles).

    SECURITY: Core tenant isolation check for any profile id taken from client input.

    Raises:
        NotFound: profile doesn't exist, belongs to another tenant, or has the wrong role
    """
    profile = db.session.query(Profile).filter_by(id=profile_id).first()

    if not profile or not profile.is_active:
        raise NotFound(f"{label} not found")

    if profile.tenant_id != tenant_id:
        log_security_event(
            EVENT_CROSS_TENANT,
            tenant_id=tenant_id,
            reason=f"{label} {profile_id} belongs to tenant {profile.tenant_id}, not {tenant_id}",
        )
        raise NotFound(f"{label} not found")  # Don't reveal it exists in another tenant

    if roles is not None and profile.role not in roles:
        raise NotFound(f"{label} not found")

    return profile


def require_client_for_tenant(client_id, tenant_id: int) -> Profile:
    """
    Validate a loyalty client for a sale in this tenant.

    Clients are customer profiles that are unaffiliated or affiliated with
    this tenant; anything else is NotFound.
    """
    profile = db.session.query(Profile).filter_by(id=client_id).first()
    if (
        not profile
        or not profile.is_active
        or profile.role != ROLE_CUSTOMER
        or profile.tenant_id not in (None, tenant_id)
    ):
        if profile is not None and profile.tenant_id not in (None, tenant_id):
            log_security_event(
                EVENT_CROSS_TENANT,
                tenant_id=tenant_id,
                reason=f"Client {client_id} belongs to tenant {profile.tenant_id}, not {tenant_id}",
            )
        raise NotFound("Client not found")
    return profile


def create_tenant(*, slug: str, display_name: str, subscription_status: str = "trial", logo_url: str | None = None) -> Tenant:
    """Provision a new tenant (platform operation, used by the CLI)."""
    slug = (slug or "").strip().lower()
    if not slug or not slug.replace("-", "").isalnum() or slug in RESERVED_SUBDOMAINS:
        raise ValidationFailed("slug must be URL-safe (letters, digits, dashes) and not reserved")
    if subscription_status not in SUBSCRIPTION_STATUSES:
        raise ValidationFailed(f"subscription_status must be one of: {', '.join(sorted(SUBSCRIPTION_STATUSES))}")
    if get_tenant_by_slug(slug):
        raise ValidationFailed(f"Tenant slug '{slug}' is already taken")

    tenant = Tenant(
        slug=slug,
        display_name=display_name,
        logo_url=logo_url,
        subscription_status=subscription_status,
    )
    db.session.add(tenant)
    db.session.commit()
    return tenant


def set_subscription_status(tenant_id: int, status: str) -> Tenant:
    if status not in SUBSCRIPTION_STATUSES:
        raise ValidationFailed(f"subscription_status must be one of: {', '.join(sorted(SUBSCRIPTION_STATUSES))}")
    tenant = get_tenant(tenant_id)
    tenant.subscription_status = status
    db.session.commit()
    return tenant
