# Overview: Flask CLI command groups for bootstrap, tenant provisioning and maintenance.

# backend/chairbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--slug demo]
#   Idempotent bootstrap: demo tenant, owner/staff/kiosk/customer accounts and a starter catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants with subscription status and kiosk mode.
# - python -m flask tenants create --slug fulanos --name "Fulano's Barbershop"
#   Provision a new tenant.
# - python -m flask tenants set-status fulanos suspended
#   Change a tenant's subscription status (active, trial, suspended).
#
# Account management:
# - python -m flask users list [--tenant fulanos]
#   List profiles with role, tenant and loyalty balance.
# - python -m flask users create --email owner@fulanos.test --password "Password123" --role owner --tenant fulanos
#   Create an account (prompts if options are omitted).
# - python -m flask users grant owner@fulanos.test super_admin
#   Change an existing account's role (revokes its sessions).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete revoked or expired session rows older than the retention window.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Profile, Service, Tenant
from .models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, VALID_ROLES
from .models.tenancy import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_STATUSES
from .services import session_service, tenant_service
from .services.auth_service import create_profile, normalize_email


DEFAULT_PASSWORD = "Password123"

DEFAULT_SERVICES = (
    ("Haircut", 2500, 30),
    ("Beard Trim", 1500, 20),
    ("Haircut + Beard", 3500, 45),
    ("Kids Cut", 1800, 25),
)


def _tenant_or_abort(slug: str) -> Tenant:
    tenant = tenant_service.get_tenant_by_slug((slug or "").strip().lower())
    if tenant is None:
        raise click.ClickException(f"Tenant '{slug}' not found")
    return tenant


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--slug', default='demo', show_default=True, help='Demo tenant slug')
@click.option('--name', 'display_name', default='Demo Barbershop', show_default=True, help='Demo tenant display name')
@with_appcontext
def init_system(slug, display_name):
    """
    Initialize a demo shop.

    Creates (skipping anything that already exists):
    - Tenant <slug> with an active subscription
    - Accounts: owner@<slug>.test, staff@<slug>.test, kiosk@<slug>.test
      and an unaffiliated customer@<slug>.test
    - A starter service catalog

    All passwords default to "Password123". Change them in production!
    """
    click.echo("START Initializing demo shop...")

    tenant = tenant_service.get_tenant_by_slug(slug)
    if tenant is None:
        try:
            tenant = tenant_service.create_tenant(
                slug=slug, display_name=display_name, subscription_status=SUBSCRIPTION_ACTIVE,
            )
        except DomainError as e:
            raise click.ClickException(e.message)
        click.echo(f"PASS Created tenant: {tenant.display_name} (ID: {tenant.id}, slug: {tenant.slug})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.display_name} (ID: {tenant.id})")

    accounts = [
        (f"owner@{slug}.test", "Shop Owner", ROLE_OWNER, tenant.id, True),
        (f"staff@{slug}.test", "Staff Barber", ROLE_STAFF, tenant.id, True),
        (f"kiosk@{slug}.test", "Front Desk Kiosk", ROLE_KIOSK, tenant.id, False),
        (f"customer@{slug}.test", "Demo Customer", ROLE_CUSTOMER, None, False),
    ]

    click.echo("\nUSERS Creating accounts...")
    for email, full_name, role, tenant_id, is_barber in accounts:
        if db.session.query(Profile).filter_by(email=email).first():
            click.echo(f"WARN  Account '{email}' already exists, skipping...")
            continue
        try:
            create_profile(
                email=email,
                password=DEFAULT_PASSWORD,
                full_name=full_name,
                role=role,
                tenant_id=tenant_id,
                is_active_barber=is_barber,
            )
            click.echo(f"PASS Created {role}: {email}")
        except DomainError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create '{email}': {e.message}")

    click.echo("\nLIST Creating services...")
    existing = {s.name for s in db.session.query(Service).filter_by(tenant_id=tenant.id).all()}
    created = 0
    for name, price_cents, duration_min in DEFAULT_SERVICES:
        if name in existing:
            continue
        db.session.add(Service(
            tenant_id=tenant.id, name=name, price_cents=price_cents, duration_min=duration_min, is_active=True,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} services ({len(existing)} already present)")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Demo shop initialized")
    click.echo("=" * 60)
    click.echo(f"\nTenant: {tenant.display_name} -> {tenant.slug}.<your-domain>")
    click.echo(f"Default password for every account: {DEFAULT_PASSWORD} (CHANGE IN PRODUCTION!)")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('tenants')
def tenants_group():
    """Tenant (shop) provisioning commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Slug':<20} {'Name':<30} {'Status':<12} {'Kiosk'}")
    click.echo("=" * 80)
    for tenant in tenants:
        kiosk = "ON" if tenant.kiosk_mode_active else "off"
        click.echo(f"{tenant.id:<5} {tenant.slug:<20} {tenant.display_name:<30} {tenant.subscription_status:<12} {kiosk}")
    click.echo("=" * 80 + "\n")


@tenants_group.command('create')
@click.option('--slug', required=True, help='Subdomain label (unique)')
@click.option('--name', 'display_name', required=True, help='Display name')
@click.option('--status', type=click.Choice(sorted(SUBSCRIPTION_STATUSES)), default='trial', show_default=True)
@with_appcontext
def create_tenant_cli(slug, display_name, status):
    """Provision a new tenant."""
    try:
        tenant = tenant_service.create_tenant(slug=slug, display_name=display_name, subscription_status=status)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created tenant: {tenant.display_name} (ID: {tenant.id}, slug: {tenant.slug})")


@tenants_group.command('set-status')
@click.argument('slug')
@click.argument('status', type=click.Choice(sorted(SUBSCRIPTION_STATUSES)))
@with_appcontext
def set_tenant_status_cli(slug, status):
    """Change a tenant's subscription status."""
    tenant = _tenant_or_abort(slug)
    tenant_service.set_subscription_status(tenant.id, status)
    click.echo(f"PASS Tenant '{tenant.slug}' is now {status}")


@click.group('users')
def users_group():
    """Account inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--tenant', 'tenant_slug', help='Filter by tenant slug')
@with_appcontext
def list_users(tenant_slug):
    """List profiles with role, tenant and loyalty balance."""
    query = db.session.query(Profile)
    if tenant_slug:
        query = query.filter_by(tenant_id=_tenant_or_abort(tenant_slug).id)

    profiles = query.order_by(Profile.id.asc()).all()
    if not profiles:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Tenant':<7} {'Email':<35} {'Role':<12} {'Active':<8} {'Points':<8} {'No-shows'}")
    click.echo("=" * 100)
    for p in profiles:
        tenant_str = str(p.tenant_id) if p.tenant_id is not None else "-"
        active_str = "Yes" if p.is_active else "No"
        click.echo(f"{p.id:<5} {tenant_str:<7} {p.email:<35} {p.role:<12} {active_str:<8} {p.loyalty_points:<8} {p.no_show_count}")
    click.echo("=" * 100 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True, help='Role')
@click.option('--tenant', 'tenant_slug', help='Tenant slug (required for staff, owner and kiosk)')
@click.option('--name', 'full_name', help='Full name')
@with_appcontext
def create_user_cli(email, password, role, tenant_slug, full_name):
    """Create an account."""
    tenant_id = None
    if tenant_slug:
        tenant_id = _tenant_or_abort(tenant_slug).id
    elif role in tenant_service.TENANT_BOUND_ROLES:
        raise click.ClickException(f"--tenant is required for role '{role}'")

    try:
        profile = create_profile(
            email=email,
            password=password,
            full_name=full_name,
            role=role,
            tenant_id=tenant_id,
            is_active_barber=role in tenant_service.SERVICING_ROLES,
        )
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created {profile.role}: {profile.email} (ID: {profile.id})")


@users_group.command('grant')
@click.argument('email')
@click.argument('role', type=click.Choice(sorted(VALID_ROLES)))
@click.option('--tenant', 'tenant_slug', help='Move the account into this tenant')
@with_appcontext
def grant_role_cli(email, role, tenant_slug):
    """
    Change an existing account's role.

    Platform-level counterpart of the owner's team grant; used to create the
    first super admin. All sessions of the account are revoked.
    """
    try:
        email = normalize_email(email)
    except DomainError as e:
        raise click.ClickException(e.message)

    profile = db.session.query(Profile).filter_by(email=email).first()
    if profile is None:
        raise click.ClickException(f"Account '{email}' not found")

    if tenant_slug:
        profile.tenant_id = _tenant_or_abort(tenant_slug).id
    if role in tenant_service.TENANT_BOUND_ROLES and profile.tenant_id is None:
        raise click.ClickException(f"--tenant is required for role '{role}'")

    profile.role = role
    revoked = session_service.revoke_all_profile_sessions(profile.id, "Role changed")
    db.session.commit()
    click.echo(f"PASS {profile.email} is now {role} ({revoked} sessions revoked)")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """
    Cleanup revoked and expired session rows.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} sessions older than {older_than_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
