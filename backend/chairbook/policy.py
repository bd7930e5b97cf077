# Overview: Access policy table shared by server authorization and client navigation.

"""
Access Policy

One table decides which admin sections a caller may reach. The same
decision function backs the route decorators, the navigation menu and the
access-decision endpoint, so client menus cannot drift from what the server
enforces.

PRIORITY (first match wins):
1. Kiosk mode active for the tenant, or a kiosk device profile:
   operational sections only, for every role including owner.
   Anything else redirects to the terminal.
2. Staff: operational sections plus the client list and own profile.
   Reports, settings, team and service catalog redirect to the terminal.
3. Owner, super admin: every section (the platform section is super admin only).
4. Customers, and staff/owners of another tenant: no admin section;
   redirect to the customer area.

Pure: callers pass the kiosk flag read from the tenant row.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from .models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN


ADMIN_ROOT = "/admin"
CUSTOMER_ROOT = "/app"
TERMINAL_ROUTE = "/admin/pos"
LOGIN_ROUTE = "/login"

DASHBOARD = "/admin"
SCHEDULE = "/admin/schedule"
BOOKINGS = "/admin/bookings"
POS = "/admin/pos"
EXPENSES = "/admin/expenses"
CLIENTS = "/admin/clients"
PROFILE = "/admin/profile"
REPORTS = "/admin/reports"
SETTINGS = "/admin/settings"
TEAM = "/admin/team"
SERVICES = "/admin/services"
PLATFORM = "/admin/platform"

KIOSK_SECTIONS = frozenset({DASHBOARD, SCHEDULE, BOOKINGS, POS, EXPENSES})
STAFF_SECTIONS = KIOSK_SECTIONS | {CLIENTS, PROFILE}
SUPER_ADMIN_ONLY_SECTIONS = frozenset({PLATFORM})

# Menu order as rendered by the admin sidebar
MENU = (
    (DASHBOARD, "Dashboard"),
    (BOOKINGS, "Bookings"),
    (SCHEDULE, "Schedule"),
    (POS, "Terminal"),
    (EXPENSES, "Expenses"),
    (CLIENTS, "Clients"),
    (SERVICES, "Services"),
    (TEAM, "Team"),
    (REPORTS, "Reports"),
    (SETTINGS, "Settings"),
    (PROFILE, "Profile"),
    (PLATFORM, "Platform"),
)

# Every mutating or reading operation is authorized through the section it lives in
OPERATION_ROUTES = {
    "view_dashboard": DASHBOARD,
    "view_schedule": SCHEDULE,
    "list_bookings": BOOKINGS,
    "create_booking": BOOKINGS,
    "seat_booking": BOOKINGS,
    "cancel_booking": BOOKINGS,
    "mark_no_show": BOOKINGS,
    "list_clients": CLIENTS,
    "create_client": CLIENTS,
    "forgive_no_show": CLIENTS,
    "seat_walk_in": POS,
    "quote_settlement": POS,
    "settle": POS,
    "link_client": POS,
    "list_services": POS,
    "record_expense": EXPENSES,
    "list_expenses": EXPENSES,
    "view_profile": PROFILE,
    "view_reports": REPORTS,
    "void_transaction": REPORTS,
    "manage_services": SERVICES,
    "manage_team": TEAM,
    "manage_settings": SETTINGS,
    "view_audit_log": SETTINGS,
    "activate_kiosk": SETTINGS,
    "set_kiosk_pin": SETTINGS,
    # Exiting kiosk mode must be reachable while kiosk mode is on; the PIN guards it
    "deactivate_kiosk": DASHBOARD,
    "manage_tenants": PLATFORM,
}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    route: str
    redirect_to: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_route(route: str | None) -> str:
    """Drop query string, fragment and trailing slash; always starts with '/'."""
    path = (route or "/").split("?", 1)[0].split("#", 1)[0].strip()
    if not path.startswith("/"):
        path = "/" + path
    while len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def admin_section(route: str) -> str | None:
    """
    Map an admin route to its section root.

    /admin -> /admin, /admin/pos/checkout -> /admin/pos, /app -> None
    """
    path = normalize_route(route)
    if path == ADMIN_ROOT:
        return DASHBOARD
    if path.startswith(ADMIN_ROOT + "/"):
        segment = path[len(ADMIN_ROOT) + 1:].split("/", 1)[0]
        return f"{ADMIN_ROOT}/{segment}"
    return None


def _allow(route: str) -> AccessDecision:
    return AccessDecision(allowed=True, route=route)


def _deny(route: str, redirect_to: str, reason: str) -> AccessDecision:
    return AccessDecision(allowed=False, route=route, redirect_to=redirect_to, reason=reason)


def decide(route: str, *, role: str | None, kiosk_active: bool, is_member: bool) -> AccessDecision:
    """
    Decide access to a route.

    Args:
        route: requested path
        role: caller's role, None when anonymous
        kiosk_active: the acting tenant's kiosk flag
        is_member: caller belongs to the acting tenant (always True for super admins)
    """
    path = normalize_route(route)
    section = admin_section(path)

    if section is None:
        # Customer area needs a session; everything else outside /admin is public
        if path == CUSTOMER_ROOT or path.startswith(CUSTOMER_ROOT + "/"):
            if role is None:
                return _deny(path, LOGIN_ROUTE, "Sign in required")
        return _allow(path)

    if role is None:
        return _deny(path, LOGIN_ROUTE, "Sign in required")

    if role == ROLE_CUSTOMER or (role != ROLE_SUPER_ADMIN and not is_member):
        return _deny(path, CUSTOMER_ROOT, "Admin area is for shop members only")

    if kiosk_active or role == ROLE_KIOSK:
        if section in KIOSK_SECTIONS:
            return _allow(path)
        return _deny(path, TERMINAL_ROUTE, "Restricted while kiosk mode is active")

    if role == ROLE_STAFF:
        if section in STAFF_SECTIONS:
            return _allow(path)
        return _deny(path, TERMINAL_ROUTE, "Staff cannot access this section")

    if role == ROLE_SUPER_ADMIN:
        return _allow(path)

    if role == ROLE_OWNER:
        if section in SUPER_ADMIN_ONLY_SECTIONS:
            return _deny(path, DASHBOARD, "Platform administration only")
        return _allow(path)

    return _deny(path, CUSTOMER_ROOT, "Unknown role")


def decide_operation(operation: str, *, role: str | None, kiosk_active: bool, is_member: bool) -> AccessDecision:
    """Decide an operation through the section it belongs to."""
    if operation not in OPERATION_ROUTES:
        raise KeyError(f"Unknown operation: {operation}")
    return decide(OPERATION_ROUTES[operation], role=role, kiosk_active=kiosk_active, is_member=is_member)


def navigation_menu(*, role: str | None, kiosk_active: bool, is_member: bool) -> list[dict]:
    """Admin menu entries the caller may see; derived from decide()."""
    return [
        {"route": route, "label": label}
        for route, label in MENU
        if decide(route, role=role, kiosk_active=kiosk_active, is_member=is_member).allowed
    ]
