# Overview: Pytest coverage for the access policy table and its server-side enforcement.

"""
Access Policy Tests

The same decide() backs route authorization, the navigation menu and the
access-decision endpoint. These tests pin the table and prove that the
server refuses what the menu hides, whatever the client does.
"""

import pytest

from chairbook import policy
from chairbook.models import SecurityEvent
from chairbook.services import policy_service

from conftest import HOST_A, headers_for


@pytest.mark.parametrize("route, role, kiosk_active, is_member, allowed, redirect_to", [
    # Owner and super admin
    ("/admin/reports", "owner", False, True, True, None),
    ("/admin/settings", "owner", False, True, True, None),
    ("/admin/platform", "owner", False, True, False, "/admin"),
    ("/admin/platform", "super_admin", False, True, True, None),
    ("/admin/team", "super_admin", False, False, True, None),
    # Staff
    ("/admin/pos/checkout", "staff", False, True, True, None),
    ("/admin/clients", "staff", False, True, True, None),
    ("/admin/profile", "staff", False, True, True, None),
    ("/admin/reports", "staff", False, True, False, "/admin/pos"),
    ("/admin/services", "staff", False, True, False, "/admin/pos"),
    ("/admin/team", "staff", False, True, False, "/admin/pos"),
    # Kiosk mode outranks every role
    ("/admin/reports", "owner", True, True, False, "/admin/pos"),
    ("/admin/settings", "super_admin", True, True, False, "/admin/pos"),
    ("/admin/clients", "staff", True, True, False, "/admin/pos"),
    ("/admin/bookings", "owner", True, True, True, None),
    ("/admin/expenses", "staff", True, True, True, None),
    # Kiosk device profile is restricted even with the tenant flag off
    ("/admin", "kiosk", False, True, True, None),
    ("/admin/schedule", "kiosk", False, True, True, None),
    ("/admin/team", "kiosk", False, True, False, "/admin/pos"),
    # Outsiders
    ("/admin", "customer", False, False, False, "/app"),
    ("/admin", "owner", False, False, False, "/app"),
    ("/admin", None, False, False, False, "/login"),
    ("/app", None, False, False, False, "/login"),
    ("/app/bookings", "customer", False, False, True, None),
    ("/app", "staff", False, True, True, None),
    ("/book/shop-a", None, False, False, True, None),
])
def test_decide(route, role, kiosk_active, is_member, allowed, redirect_to):
    decision = policy.decide(route, role=role, kiosk_active=kiosk_active, is_member=is_member)
    assert decision.allowed is allowed
    assert decision.redirect_to == redirect_to


@pytest.mark.parametrize("route", ["/admin/reports/", "/admin/reports?range=week", "admin/reports#top"])
def test_routes_are_normalized(route):
    decision = policy.decide(route, role="owner", kiosk_active=False, is_member=True)
    assert decision.allowed
    assert decision.route == "/admin/reports"


@pytest.mark.parametrize("role", ["staff", "owner", "super_admin", "kiosk"])
def test_kiosk_mode_yields_the_same_sections_for_every_role(role):
    items = policy.navigation_menu(role=role, kiosk_active=True, is_member=True)
    assert {item["route"] for item in items} == set(policy.KIOSK_SECTIONS)


def test_staff_menu_matches_staff_sections():
    items = policy.navigation_menu(role="staff", kiosk_active=False, is_member=True)
    assert [item["route"] for item in items] == [
        "/admin",
        "/admin/bookings",
        "/admin/schedule",
        "/admin/pos",
        "/admin/expenses",
        "/admin/clients",
        "/admin/profile",
    ]


def test_every_menu_entry_is_reachable():
    for role in ("staff", "owner", "super_admin", "kiosk"):
        for kiosk_active in (False, True):
            for item in policy.navigation_menu(role=role, kiosk_active=kiosk_active, is_member=True):
                assert policy.decide(item["route"], role=role, kiosk_active=kiosk_active, is_member=True).allowed


def test_unknown_operation_is_a_programming_error():
    with pytest.raises(KeyError):
        policy.decide_operation("launch_rockets", role="owner", kiosk_active=False, is_member=True)


def test_every_operation_maps_to_a_menu_section():
    sections = {route for route, _ in policy.MENU}
    assert set(policy.OPERATION_ROUTES.values()) <= sections


class TestServerEnforcement:
    """The server refuses what the menu hides, even when called directly."""

    def test_staff_cannot_create_services(self, client, db_session, tenant_a, staff_a):
        response = client.post('/api/services', json={
            "name": "Hot Towel Shave",
            "price_cents": 2000,
            "duration_min": 20,
        }, headers=headers_for(staff_a))

        assert response.status_code == 403
        assert response.json["error"] == "PolicyDenied"
        assert response.json["redirect_to"] == "/admin/pos"
        assert response.json["message"]

        event = db_session.query(SecurityEvent).filter_by(event_type="POLICY_DENIED").one()
        assert event.profile_id == staff_a.id
        assert event.tenant_id == tenant_a.id
        assert event.action == "manage_services"
        assert event.resource == "/api/services"

    def test_staff_cannot_read_reports(self, client, staff_a):
        response = client.get('/api/reports/summary', headers=headers_for(staff_a))
        assert response.status_code == 403

    def test_owner_can_create_services(self, client, owner_a):
        response = client.post('/api/services', json={
            "name": "Hot Towel Shave",
            "price_cents": 2000,
            "duration_min": 20,
        }, headers=headers_for(owner_a))
        assert response.status_code == 201

    def test_customer_is_sent_to_customer_area(self, client, tenant_a, customer):
        response = client.get('/api/bookings', headers=headers_for(customer), base_url=HOST_A)

        assert response.status_code == 403
        assert response.json["redirect_to"] == "/app"

    def test_page_navigation_redirects(self, client, staff_a):
        response = client.get('/admin/reports', headers=headers_for(staff_a))

        assert response.status_code == 302
        assert response.headers["Location"].endswith("/admin/pos")

    def test_allowed_page_renders(self, client, staff_a, tenant_a):
        response = client.get('/admin/pos', headers=headers_for(staff_a))

        assert response.status_code == 200
        assert response.json["allowed"] is True
        assert response.json["tenant_id"] == tenant_a.id


class TestDecisionEndpoints:

    def test_access_decision(self, client, staff_a, owner_a):
        denied = client.get('/api/access-decision?route=/admin/reports', headers=headers_for(staff_a))
        assert denied.status_code == 200
        assert denied.json["allowed"] is False
        assert denied.json["redirect_to"] == "/admin/pos"

        granted = client.get('/api/access-decision?route=/admin/reports', headers=headers_for(owner_a))
        assert granted.json["allowed"] is True

    def test_access_decision_needs_a_route(self, client, staff_a):
        response = client.get('/api/access-decision', headers=headers_for(staff_a))
        assert response.status_code == 400

    def test_navigation_menu_matches_policy(self, client, owner_a, tenant_a):
        response = client.get('/api/navigation', headers=headers_for(owner_a))

        assert response.status_code == 200
        routes = [item["route"] for item in response.json["items"]]
        assert "/admin/reports" in routes
        assert "/admin/platform" not in routes
        assert response.json["kiosk_mode_active"] is False

    def test_service_reads_kiosk_flag_from_tenant(self, db_session, owner_a, tenant_a):
        assert policy_service.get_access_decision(owner_a, tenant_a.id, "/admin/reports").allowed

        tenant_a.kiosk_mode_active = True
        db_session.commit()

        decision = policy_service.get_access_decision(owner_a, tenant_a.id, "/admin/reports")
        assert not decision.allowed
        assert decision.redirect_to == "/admin/pos"
