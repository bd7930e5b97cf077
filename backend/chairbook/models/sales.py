from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_TRANSFER = "transfer"
PAYMENT_METHODS = {PAYMENT_CASH, PAYMENT_CARD, PAYMENT_TRANSFER}

TRANSACTION_COMPLETED = "completed"
TRANSACTION_VOIDED = "voided"


class Transaction(db.Model):
    """
    Money ledger row for one settled booking.

    IMMUTABLE: created exactly once per booking (booking_id is unique) and
    never deleted. The only later change is the void marker.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("booking_id", name="uq_transactions_booking"),
        db.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_non_negative"),
        db.CheckConstraint("points_earned >= 0", name="ck_transactions_earned_non_negative"),
        db.CheckConstraint("points_redeemed >= 0", name="ck_transactions_redeemed_non_negative"),
        db.Index("ix_transactions_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)

    # Gross is amount_cents + discount_cents; amount_cents is what was charged
    amount_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False)

    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=TRANSACTION_COMPLETED)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    voided_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    booking = db.relationship("Booking", backref=db.backref("transaction", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "booking_id": self.booking_id,
            "staff_id": self.staff_id,
            "service_id": self.service_id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "discount_cents": self.discount_cents,
            "payment_method": self.payment_method,
            "points_earned": self.points_earned,
            "points_redeemed": self.points_redeemed,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
        }


class LoyaltyEvent(db.Model):
    """
    Append-only ledger of loyalty point movements.

    EVENT TYPES:
    - EARN: points accrued from the cash-equivalent part of a sale
    - REDEEM: points converted into a discount on a sale (negative)
    """
    __tablename__ = "loyalty_events"
    __table_args__ = (
        db.Index("ix_loyalty_events_profile_occurred", "profile_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    event_type = db.Column(db.String(16), nullable=False)
    points = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "tenant_id": self.tenant_id,
            "transaction_id": self.transaction_id,
            "event_type": self.event_type,
            "points": self.points,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Expense(db.Model):
    """Cash paid out of the shop, entered at the terminal."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    recorded_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "recorded_by": self.recorded_by,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
