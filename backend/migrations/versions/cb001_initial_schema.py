"""initial schema: tenants, profiles, bookings, sales, audit

Revision ID: cb001_initial_schema
Revises:
Create Date: 2026-09-01 00:00:00.000000

Creates the complete schema from scratch:
- tenants: multi-tenant root (subscription status, kiosk mode, kiosk PIN)
- profiles: customers, staff, owners, kiosk devices, platform admins
- session_tokens: hashed access/refresh pairs grouped by login family
- services: per-tenant catalog
- bookings: appointment/ticket lifecycle (never deleted)
- transactions: one sale per booking (booking_id unique)
- loyalty_events: append-only points ledger
- expenses: cash paid out at the terminal
- audit_entries, security_events: append-only logs

Money columns are integer cents.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'cb001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # tenants
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('slug', sa.String(length=63), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('logo_url', sa.String(length=512), nullable=True),
        sa.Column('subscription_status', sa.String(length=16), nullable=False, server_default='trial'),
        sa.Column('kiosk_mode_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('kiosk_pin_hash', sa.String(length=255), nullable=True),
        sa.Column('guest_checkout_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)
    op.create_index('ix_tenants_subscription_status', 'tenants', ['subscription_status'])

    # ==========================================================================
    # profiles
    # ==========================================================================
    op.create_table('profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('is_active_barber', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('no_show_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_profiles_points_non_negative'),
        sa.CheckConstraint('no_show_count >= 0', name='ck_profiles_no_show_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)
    op.create_index('ix_profiles_tenant_id', 'profiles', ['tenant_id'])
    op.create_index('ix_profiles_tenant_role', 'profiles', ['tenant_id', 'role'])

    # ==========================================================================
    # session_tokens
    # ==========================================================================
    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('family_id', sa.String(length=64), nullable=False),
        sa.Column('access_token_hash', sa.String(length=64), nullable=False),
        sa.Column('refresh_token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('refresh_expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('rotated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_profile_id', 'session_tokens', ['profile_id'])
    op.create_index('ix_session_tokens_family', 'session_tokens', ['family_id'])
    op.create_index('ix_session_tokens_access_token_hash', 'session_tokens', ['access_token_hash'], unique=True)
    op.create_index('ix_session_tokens_refresh_token_hash', 'session_tokens', ['refresh_token_hash'], unique=True)

    # ==========================================================================
    # services
    # ==========================================================================
    op.create_table('services',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('duration_min', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price_cents >= 0', name='ck_services_price_non_negative'),
        sa.CheckConstraint('duration_min > 0', name='ck_services_duration_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_services_tenant_id', 'services', ['tenant_id'])
    op.create_index('ix_services_tenant_active', 'services', ['tenant_id', 'is_active'])

    # ==========================================================================
    # bookings: lifecycle confirmed/seated -> completed | cancelled | no_show
    # ==========================================================================
    op.create_table('bookings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='confirmed'),
        sa.Column('origin', sa.String(length=16), nullable=False, server_default='web'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('guest_name', sa.String(length=255), nullable=True),
        sa.Column('price_at_booking_cents', sa.Integer(), nullable=True),
        sa.Column('service_name_at_booking', sa.String(length=255), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('no_show_by', sa.Integer(), nullable=True),
        sa.Column('no_show_reason', sa.String(length=255), nullable=True),
        sa.Column('no_show_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('forgiven_by', sa.Integer(), nullable=True),
        sa.Column('forgiven_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('rating_comment', sa.String(length=1000), nullable=True),
        sa.Column('rated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['profiles.id']),
        sa.ForeignKeyConstraint(['no_show_by'], ['profiles.id']),
        sa.ForeignKeyConstraint(['forgiven_by'], ['profiles.id']),
        sa.CheckConstraint('rating IS NULL OR (rating BETWEEN 1 AND 5)', name='ck_bookings_rating_range'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bookings_tenant_id', 'bookings', ['tenant_id'])
    op.create_index('ix_bookings_service_id', 'bookings', ['service_id'])
    op.create_index('ix_bookings_staff_id', 'bookings', ['staff_id'])
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_tenant_status', 'bookings', ['tenant_id', 'status'])
    op.create_index('ix_bookings_staff_start', 'bookings', ['staff_id', 'start_time'])

    # ==========================================================================
    # transactions: exactly one per booking
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('voided_by', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['client_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['voided_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', name='uq_transactions_booking'),
        sa.CheckConstraint('amount_cents >= 0', name='ck_transactions_amount_non_negative'),
        sa.CheckConstraint('points_earned >= 0', name='ck_transactions_earned_non_negative'),
        sa.CheckConstraint('points_redeemed >= 0', name='ck_transactions_redeemed_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_tenant_id', 'transactions', ['tenant_id'])
    op.create_index('ix_transactions_staff_id', 'transactions', ['staff_id'])
    op.create_index('ix_transactions_service_id', 'transactions', ['service_id'])
    op.create_index('ix_transactions_client_id', 'transactions', ['client_id'])
    op.create_index('ix_transactions_tenant_created', 'transactions', ['tenant_id', 'created_at'])

    # ==========================================================================
    # loyalty_events, expenses
    # ==========================================================================
    op.create_table('loyalty_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_loyalty_events_profile_id', 'loyalty_events', ['profile_id'])
    op.create_index('ix_loyalty_events_tenant_id', 'loyalty_events', ['tenant_id'])
    op.create_index('ix_loyalty_events_transaction_id', 'loyalty_events', ['transaction_id'])
    op.create_index('ix_loyalty_events_profile_occurred', 'loyalty_events', ['profile_id', 'occurred_at'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('recorded_by', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['recorded_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_expenses_amount_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expenses_tenant_id', 'expenses', ['tenant_id'])
    op.create_index('ix_expenses_tenant_created', 'expenses', ['tenant_id', 'created_at'])

    # ==========================================================================
    # audit_entries, security_events (append-only)
    # ==========================================================================
    op.create_table('audit_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('entity', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_entries_tenant_id', 'audit_entries', ['tenant_id'])
    op.create_index('ix_audit_entries_actor_id', 'audit_entries', ['actor_id'])
    op.create_index('ix_audit_entries_action', 'audit_entries', ['action'])
    op.create_index('ix_audit_entries_tenant_created', 'audit_entries', ['tenant_id', 'created_at'])
    op.create_index('ix_audit_entries_entity', 'audit_entries', ['entity', 'entity_id'])

    op.create_table('security_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('profile_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_tenant_id', 'security_events', ['tenant_id'])
    op.create_index('ix_security_events_profile_id', 'security_events', ['profile_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_tenant_occurred', 'security_events', ['tenant_id', 'occurred_at'])


def downgrade():
    op.drop_table('security_events')
    op.drop_table('audit_entries')
    op.drop_table('expenses')
    op.drop_table('loyalty_events')
    op.drop_table('transactions')
    op.drop_table('bookings')
    op.drop_table('services')
    op.drop_table('session_tokens')
    op.drop_table('profiles')
    op.drop_table('tenants')
