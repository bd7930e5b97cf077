from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


ROLE_CUSTOMER = "customer"
ROLE_STAFF = "staff"
ROLE_OWNER = "owner"
ROLE_KIOSK = "kiosk"
ROLE_SUPER_ADMIN = "super_admin"
VALID_ROLES = {ROLE_CUSTOMER, ROLE_STAFF, ROLE_OWNER, ROLE_KIOSK, ROLE_SUPER_ADMIN}


class Profile(db.Model):
    """
    An actor: customer, staff member, owner, kiosk device or platform admin.

    MULTI-TENANT: tenant_id is NULL for unaffiliated customers and for
    platform-level super admins. role and tenant_id change only through the
    grant operation; loyalty_points change only through settlement.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.CheckConstraint("loyalty_points >= 0", name="ck_profiles_points_non_negative"),
        db.CheckConstraint("no_show_count >= 0", name="ck_profiles_no_show_non_negative"),
        db.Index("ix_profiles_tenant_role", "tenant_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_CUSTOMER)
    is_active_barber = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    no_show_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tenant = db.relationship("Tenant", backref=db.backref("profiles", lazy=True))

    def __repr__(self) -> str:
        return f"<Profile id={self.id} role={self.role} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "is_active_barber": self.is_active_barber,
            "is_active": self.is_active,
            "loyalty_points": self.loyalty_points,
            "no_show_count": self.no_show_count,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer credential pair for a profile.

    Tokens are never stored in plaintext, only their SHA-256 hashes. Every
    refresh rotates both tokens and records rotated_at on the old row; a
    rotated refresh token presented again is a replay, and the whole
    family_id is revoked.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_family", "family_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    family_id = db.Column(db.String(64), nullable=False)

    access_token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    refresh_token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    refresh_expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    rotated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    profile = db.relationship("Profile", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "refresh_expires_at": to_utc_z(self.refresh_expires_at),
            "is_revoked": self.is_revoked,
        }
