# Overview: Pytest coverage for the flask CLI bootstrap and provisioning commands.

from chairbook.models import Profile, Service, SessionToken, Tenant

from conftest import issue_tokens


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--slug", "demo"])
    second = runner.invoke(args=["system", "init", "--slug", "demo"])

    assert first.exit_code == 0, first.output
    assert "DONE" in first.output
    assert second.exit_code == 0
    assert "already exists" in second.output

    tenant = db_session.query(Tenant).filter_by(slug="demo").one()
    assert tenant.subscription_status == "active"
    roles = {p.email: p.role for p in db_session.query(Profile).all()}
    assert roles == {
        "owner@demo.test": "owner",
        "staff@demo.test": "staff",
        "kiosk@demo.test": "kiosk",
        "customer@demo.test": "customer",
    }
    assert db_session.query(Service).filter_by(tenant_id=tenant.id).count() == 4


def test_tenant_create_and_suspend(app, db_session):
    runner = app.test_cli_runner()

    created = runner.invoke(args=["tenants", "create", "--slug", "fulanos", "--name", "Fulano's"])
    suspended = runner.invoke(args=["tenants", "set-status", "fulanos", "suspended"])

    assert created.exit_code == 0, created.output
    assert suspended.exit_code == 0, suspended.output
    assert db_session.query(Tenant).filter_by(slug="fulanos").one().subscription_status == "suspended"


def test_tenant_create_rejects_reserved_slug(app):
    result = app.test_cli_runner().invoke(args=["tenants", "create", "--slug", "admin", "--name", "Nope"])
    assert result.exit_code != 0


def test_staff_account_needs_a_tenant(app):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--email", "x@example.test", "--password", "Password123", "--role", "staff",
    ])
    assert result.exit_code != 0
    assert "--tenant is required" in result.output


def test_grant_revokes_sessions(app, db_session, customer):
    issue_tokens(customer)

    result = app.test_cli_runner().invoke(args=["users", "grant", "client@example.test", "super_admin"])

    assert result.exit_code == 0, result.output
    assert db_session.get(Profile, customer.id).role == "super_admin"
    assert db_session.query(SessionToken).filter_by(profile_id=customer.id, is_revoked=False).count() == 0
