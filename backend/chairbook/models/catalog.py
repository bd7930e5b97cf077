from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


class Service(db.Model):
    """
    A bookable service in a tenant's catalog.

    Price and duration may change over time; bookings snapshot the price and
    name they were made at, so edits only affect future bookings.
    """
    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_services_price_non_negative"),
        db.CheckConstraint("duration_min > 0", name="ck_services_duration_positive"),
        db.Index("ix_services_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_min = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("services", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "duration_min": self.duration_min,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
