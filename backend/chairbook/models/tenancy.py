from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_TRIAL = "trial"
SUBSCRIPTION_SUSPENDED = "suspended"
SUBSCRIPTION_STATUSES = {SUBSCRIPTION_ACTIVE, SUBSCRIPTION_TRIAL, SUBSCRIPTION_SUSPENDED}


class Tenant(db.Model):
    """
    Multi-tenant root: every shop is a Tenant.

    All profiles (except unaffiliated customers and platform admins), services,
    bookings, transactions and audit entries belong to exactly one tenant.

    kiosk_mode_active is the tenant-wide restrictive operating mode. It is
    persisted here and read on every access decision so every server instance
    sees the same value.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(63), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(255), nullable=False)
    logo_url = db.Column(db.String(512), nullable=True)

    subscription_status = db.Column(db.String(16), nullable=False, default=SUBSCRIPTION_TRIAL, index=True)

    kiosk_mode_active = db.Column(db.Boolean, nullable=False, default=False)
    kiosk_pin_hash = db.Column(db.String(255), nullable=True)

    guest_checkout_enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_suspended(self) -> bool:
        return self.subscription_status == SUBSCRIPTION_SUSPENDED

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "display_name": self.display_name,
            "logo_url": self.logo_url,
            "subscription_status": self.subscription_status,
            "kiosk_mode_active": self.kiosk_mode_active,
            "has_kiosk_pin": self.kiosk_pin_hash is not None,
            "guest_checkout_enabled": self.guest_checkout_enabled,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
