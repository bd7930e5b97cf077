from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


STATUS_CONFIRMED = "confirmed"
STATUS_SEATED = "seated"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"
BOOKING_STATUSES = {STATUS_CONFIRMED, STATUS_SEATED, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW}

ORIGIN_WEB = "web"
ORIGIN_STAFF = "staff"
ORIGIN_WALK_IN = "walk_in"
ORIGIN_POS = "pos"


class Booking(db.Model):
    """
    The reservable unit of service time (appointment or POS ticket).

    Rows are never deleted: cancellation and no-show are statuses, so
    occupancy reporting and the audit trail stay intact. Status changes only
    through booking_service (transitions) and settlement_service (completion).
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_tenant_status", "tenant_id", "status"),
        db.Index("ix_bookings_staff_start", "staff_id", "start_time"),
        db.CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 5)", name="ck_bookings_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_CONFIRMED)
    origin = db.Column(db.String(16), nullable=False, default=ORIGIN_WEB)
    notes = db.Column(db.Text, nullable=True)
    guest_name = db.Column(db.String(255), nullable=True)

    # Snapshot taken at booking time (financial integrity)
    price_at_booking_cents = db.Column(db.Integer, nullable=True)
    service_name_at_booking = db.Column(db.String(255), nullable=True)

    cancelled_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    no_show_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    no_show_reason = db.Column(db.String(255), nullable=True)
    no_show_at = db.Column(db.DateTime(timezone=True), nullable=True)

    forgiven_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    forgiven_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Post-visit rating, once per completed booking
    rating = db.Column(db.Integer, nullable=True)
    rating_comment = db.Column(db.String(1000), nullable=True)
    rated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("bookings", lazy=True))
    service = db.relationship("Service")
    staff = db.relationship("Profile", foreign_keys=[staff_id])
    customer = db.relationship("Profile", foreign_keys=[customer_id])

    def __repr__(self) -> str:
        return f"<Booking id={self.id} status={self.status} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "customer_id": self.customer_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "status": self.status,
            "origin": self.origin,
            "notes": self.notes,
            "guest_name": self.guest_name,
            "price_at_booking_cents": self.price_at_booking_cents,
            "service_name_at_booking": self.service_name_at_booking,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "no_show": {
                "by": self.no_show_by,
                "reason": self.no_show_reason,
                "at": to_utc_z(self.no_show_at),
            } if self.no_show_at else None,
            "forgiven_at": to_utc_z(self.forgiven_at),
            "rating": self.rating,
            "rated_at": to_utc_z(self.rated_at),
        }
