# Overview: Service-layer operations for bookings; owns the booking/ticket state machine.

"""
Booking Lifecycle Service

================================================================================
STATE MACHINE
================================================================================

    confirmed --seat--> seated
    confirmed --settle--> completed
    seated --settle--> completed
    confirmed --cancel--> cancelled
    confirmed --no-show--> no_show
    no_show --forgive--> confirmed

    confirmed: online/staff reservation (initial)
    seated:    walk-in ticket opened at the terminal (initial), or a
               reservation whose client has arrived
    completed, cancelled: terminal
    no_show:   terminal unless forgiven

RULES:
1. Any pair not listed above raises InvalidTransition; nothing is a silent no-op
2. completed is reached only through settlement_service
3. Every transition writes exactly one audit entry in the same transaction
4. The acting tenant must own the booking; a foreign booking is NotFound
5. Rows are never deleted

Notifications are published after commit and never affect the outcome.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import case

from ..extensions import db
from ..errors import CancellationWindowExpired, Conflict, InvalidTransition, NotFound, PolicyDenied, ValidationFailed
from ..models import Booking, Profile, Service
from ..models.auth import ROLE_CUSTOMER, ROLE_KIOSK, ROLE_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN
from ..models.bookings import (
    BOOKING_STATUSES,
    ORIGIN_STAFF,
    ORIGIN_WALK_IN,
    ORIGIN_WEB,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_NO_SHOW,
    STATUS_SEATED,
)
from . import audit_service, notifier
from .audit_service import (
    ACTION_CANCEL,
    ACTION_CREATE,
    ACTION_FORGIVE,
    ACTION_NO_SHOW,
    ACTION_RATE,
    ACTION_SEAT,
    ENTITY_BOOKINGS,
)
from .persistence import atomic, first_or_self, get_scoped
from .tenant_service import (
    SERVICING_ROLES,
    require_active_tenant,
    require_client_for_tenant,
    require_profile_in_tenant,
)
from chairbook.time_utils import parse_iso_datetime, utcnow


ALLOWED_TRANSITIONS = frozenset({
    (STATUS_CONFIRMED, STATUS_SEATED),
    (STATUS_CONFIRMED, STATUS_COMPLETED),
    (STATUS_SEATED, STATUS_COMPLETED),
    (STATUS_CONFIRMED, STATUS_CANCELLED),
    (STATUS_CONFIRMED, STATUS_NO_SHOW),
    (STATUS_NO_SHOW, STATUS_CONFIRMED),
})

SETTLEABLE_STATUSES = (STATUS_CONFIRMED, STATUS_SEATED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

# Roles that act for the shop on the booking ledger (not a shared kiosk device)
SHOP_ROLES = {ROLE_STAFF, ROLE_OWNER, ROLE_SUPER_ADMIN}
# Roles that can take a reservation at the front desk
DESK_ROLES = SHOP_ROLES | {ROLE_KIOSK}


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check a lifecycle edge. Pure.

    Raises:
        ValidationFailed: either status is not a booking status
    """
    for status in (from_status, to_status):
        if status not in BOOKING_STATUSES:
            raise ValidationFailed(
                f"Invalid status '{status}'. Must be one of: {', '.join(sorted(BOOKING_STATUSES))}"
            )
    return (from_status, to_status) in ALLOWED_TRANSITIONS


def require_transition(booking: Booking, to_status: str) -> None:
    if not can_transition(booking.status, to_status):
        raise InvalidTransition(
            f"Cannot move booking from {booking.status} to {to_status}",
            details={"from": booking.status, "to": to_status},
        )


def cancellation_buffer() -> timedelta:
    return timedelta(minutes=current_app.config["CANCELLATION_BUFFER_MINUTES"])


def check_cancellation_window(start_time: datetime, now: datetime, buffer: timedelta) -> None:
    """
    Pure wall-clock check: cancelling is allowed only while start_time is
    more than `buffer` away. A zero buffer disables the guard.
    """
    if buffer <= timedelta(0):
        return
    if start_time - now < buffer:
        raise CancellationWindowExpired(
            f"Bookings cannot be cancelled less than {int(buffer.total_seconds() // 60)} minutes before they start",
            details={"buffer_minutes": int(buffer.total_seconds() // 60)},
        )


def _require_shop_actor(actor: Profile, action: str) -> None:
    if actor.role not in SHOP_ROLES:
        raise PolicyDenied(f"Only shop staff can {action}")


def _load_for_update(booking_id, tenant_id: int) -> Booking:
    return get_scoped(Booking, booking_id, tenant_id, label="Booking", for_update=True)


def booking_view(booking: Booking) -> dict:
    """Booking with the names a schedule card shows."""
    data = booking.to_dict()
    service = first_or_self(booking.service)
    staff = first_or_self(booking.staff)
    customer = first_or_self(booking.customer)
    data["service_name"] = booking.service_name_at_booking or (service.name if service else None)
    data["staff_name"] = staff.full_name if staff else None
    data["customer_name"] = (customer.full_name if customer else None) or booking.guest_name
    return data


# =============================================================================
# CREATION
# =============================================================================

def create_booking(
    actor: Profile | None,
    tenant_id: int,
    *,
    service_id,
    staff_id,
    start_time,
    customer_id=None,
    guest_name: str | None = None,
    notes: str | None = None,
) -> Booking:
    """
    Reserve a slot (status confirmed).

    - A signed-in customer always books for themselves (origin web)
    - Shop staff and the front-desk kiosk book for a client or a named guest (origin staff)
    - Anonymous guests need guest checkout enabled for the tenant and a name

    The service price and name are snapshotted on the booking.
    """
    tenant = require_active_tenant(tenant_id)

    start = start_time if isinstance(start_time, datetime) else _parse_start(start_time)
    now = utcnow()

    service = get_scoped(Service, service_id, tenant_id, label="Service")
    if not service.is_active:
        raise NotFound("Service not found")
    staff = require_profile_in_tenant(staff_id, tenant_id, roles=SERVICING_ROLES, label="Staff member")

    origin = ORIGIN_WEB
    if actor is not None and actor.role == ROLE_CUSTOMER:
        customer = actor
        if start <= now:
            raise ValidationFailed("start_time must be in the future")
    elif actor is not None and actor.role in DESK_ROLES:
        origin = ORIGIN_STAFF
        customer = require_client_for_tenant(customer_id, tenant_id) if customer_id is not None else None
    elif actor is None:
        customer = None
        if start <= now:
            raise ValidationFailed("start_time must be in the future")
    else:
        raise PolicyDenied("This account cannot create bookings")

    guest_name = (guest_name or "").strip() or None
    if customer is None:
        if actor is None and not tenant.guest_checkout_enabled:
            raise PolicyDenied("Guest checkout is disabled for this shop; please sign in")
        if not guest_name:
            raise ValidationFailed("guest_name is required when booking without an account")

    with atomic():
        booking = Booking(
            tenant_id=tenant_id,
            service_id=service.id,
            staff_id=staff.id,
            customer_id=customer.id if customer else None,
            guest_name=guest_name if customer is None else None,
            start_time=start,
            end_time=start + timedelta(minutes=service.duration_min),
            status=STATUS_CONFIRMED,
            origin=origin,
            notes=notes,
            price_at_booking_cents=service.price_cents,
            service_name_at_booking=service.name,
        )
        db.session.add(booking)
        db.session.flush()
        audit_service.append(
            tenant_id,
            actor.id if actor else None,
            ACTION_CREATE,
            ENTITY_BOOKINGS,
            booking.id,
            {"status": STATUS_CONFIRMED, "origin": origin, "start_time": start.isoformat()},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_NEW_BOOKING, lambda: booking_view(booking))
    return booking


def _parse_start(value) -> datetime:
    if not isinstance(value, str):
        raise ValidationFailed("start_time is required (ISO-8601)")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        raise ValidationFailed("start_time must be an ISO-8601 datetime")
    if parsed is None:
        raise ValidationFailed("start_time is required (ISO-8601)")
    return parsed


def seat_walk_in(
    actor: Profile,
    tenant_id: int,
    *,
    staff_id,
    client_id=None,
    guest_name: str | None = None,
    notes: str | None = None,
) -> Booking:
    """
    Open a walk-in ticket at the terminal (status seated, no service yet).

    The service and amount are chosen when the ticket is settled.
    """
    require_active_tenant(tenant_id)
    staff = require_profile_in_tenant(staff_id, tenant_id, roles=SERVICING_ROLES, label="Staff member")
    client = require_client_for_tenant(client_id, tenant_id) if client_id is not None else None

    guest_name = (guest_name or "").strip() or None
    if client is None and not guest_name:
        guest_name = "Walk-in"

    now = utcnow()
    with atomic():
        booking = Booking(
            tenant_id=tenant_id,
            service_id=None,
            staff_id=staff.id,
            customer_id=client.id if client else None,
            guest_name=guest_name if client is None else None,
            start_time=now,
            end_time=now,
            status=STATUS_SEATED,
            origin=ORIGIN_WALK_IN,
            notes=notes,
        )
        db.session.add(booking)
        db.session.flush()
        audit_service.append(
            tenant_id, actor.id, ACTION_CREATE, ENTITY_BOOKINGS, booking.id,
            {"status": STATUS_SEATED, "origin": ORIGIN_WALK_IN},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_BOOKING_SEATED, lambda: booking_view(booking))
    return booking


# =============================================================================
# TRANSITIONS
# =============================================================================

def seat_booking(actor: Profile, tenant_id: int, booking_id) -> Booking:
    """Client arrived: confirmed -> seated."""
    with atomic():
        booking = _load_for_update(booking_id, tenant_id)
        require_transition(booking, STATUS_SEATED)
        booking.status = STATUS_SEATED
        audit_service.append(
            tenant_id, actor.id, ACTION_SEAT, ENTITY_BOOKINGS, booking.id,
            {"from": STATUS_CONFIRMED, "to": STATUS_SEATED},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_BOOKING_SEATED, lambda: booking_view(booking))
    return booking


def cancel_booking(actor: Profile, tenant_id: int, booking_id, reason: str | None = None, *, now: datetime | None = None) -> Booking:
    """
    confirmed -> cancelled, guarded by the cancellation window.

    Raises:
        CancellationWindowExpired: start_time is closer than the configured buffer
        InvalidTransition: booking is not confirmed
    """
    now = now or utcnow()
    with atomic():
        booking = _load_for_update(booking_id, tenant_id)
        require_transition(booking, STATUS_CANCELLED)
        check_cancellation_window(booking.start_time, now, cancellation_buffer())

        booking.status = STATUS_CANCELLED
        booking.cancelled_by = actor.id
        booking.cancelled_at = now
        booking.cancellation_reason = (reason or "").strip() or None
        audit_service.append(
            tenant_id, actor.id, ACTION_CANCEL, ENTITY_BOOKINGS, booking.id,
            {"from": STATUS_CONFIRMED, "to": STATUS_CANCELLED, "reason": booking.cancellation_reason},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_BOOKING_CANCELLED, lambda: booking_view(booking))
    return booking


def mark_no_show(actor: Profile, tenant_id: int, booking_id, reason: str) -> Booking:
    """
    confirmed -> no_show. Shop staff only; a reason is required.

    A registered customer's no_show_count is incremented in the same
    transaction.
    """
    _require_shop_actor(actor, "mark a no-show")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A reason is required to mark a no-show")

    now = utcnow()
    with atomic():
        booking = _load_for_update(booking_id, tenant_id)
        require_transition(booking, STATUS_NO_SHOW)

        booking.status = STATUS_NO_SHOW
        booking.no_show_by = actor.id
        booking.no_show_reason = reason
        booking.no_show_at = now
        booking.forgiven_by = None
        booking.forgiven_at = None

        if booking.customer_id is not None:
            db.session.query(Profile).filter(Profile.id == booking.customer_id).update(
                {"no_show_count": Profile.no_show_count + 1},
                synchronize_session=False,
            )

        audit_service.append(
            tenant_id, actor.id, ACTION_NO_SHOW, ENTITY_BOOKINGS, booking.id,
            {"from": STATUS_CONFIRMED, "to": STATUS_NO_SHOW, "reason": reason},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_BOOKING_NO_SHOW, lambda: booking_view(booking))
    return booking


def forgive_no_show(actor: Profile, tenant_id: int, booking_id) -> Booking:
    """
    no_show -> confirmed. Owner/staff only.

    The no-show marker is cleared (the audit entry keeps it) and the
    customer's no_show_count is decremented, never below zero.
    """
    _require_shop_actor(actor, "forgive a no-show")

    now = utcnow()
    with atomic():
        booking = _load_for_update(booking_id, tenant_id)
        require_transition(booking, STATUS_CONFIRMED)

        previous_reason = booking.no_show_reason
        booking.status = STATUS_CONFIRMED
        booking.no_show_by = None
        booking.no_show_reason = None
        booking.no_show_at = None
        booking.forgiven_by = actor.id
        booking.forgiven_at = now

        if booking.customer_id is not None:
            db.session.query(Profile).filter(Profile.id == booking.customer_id).update(
                {"no_show_count": case((Profile.no_show_count > 0, Profile.no_show_count - 1), else_=0)},
                synchronize_session=False,
            )

        audit_service.append(
            tenant_id, actor.id, ACTION_FORGIVE, ENTITY_BOOKINGS, booking.id,
            {"from": STATUS_NO_SHOW, "to": STATUS_CONFIRMED, "previous_reason": previous_reason},
        )

    notifier.notify_booking(tenant_id, notifier.EVENT_BOOKING_UPDATED, lambda: booking_view(booking))
    return booking


# =============================================================================
# QUERIES
# =============================================================================

def get_booking(tenant_id: int, booking_id) -> Booking:
    return get_scoped(Booking, booking_id, tenant_id, label="Booking")


def list_bookings(
    tenant_id: int,
    *,
    status: str | None = None,
    staff_id=None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 200,
) -> list[Booking]:
    query = db.session.query(Booking).filter(Booking.tenant_id == tenant_id)
    if status is not None:
        if status not in BOOKING_STATUSES:
            raise ValidationFailed(f"status must be one of: {', '.join(sorted(BOOKING_STATUSES))}")
        query = query.filter(Booking.status == status)
    if staff_id is not None:
        query = query.filter(Booking.staff_id == staff_id)
    if date_from is not None:
        query = query.filter(Booking.start_time >= date_from)
    if date_to is not None:
        query = query.filter(Booking.start_time < date_to)
    return query.order_by(Booking.start_time.asc(), Booking.id.asc()).limit(limit).all()


def list_clients(tenant_id: int, *, limit: int = 500) -> list[dict]:
    """Customers who have booked at this tenant or are affiliated with it."""
    booked_ids = db.session.query(Booking.customer_id).filter(
        Booking.tenant_id == tenant_id,
        Booking.customer_id.isnot(None),
    )
    clients = db.session.query(Profile).filter(
        Profile.role == ROLE_CUSTOMER,
        db.or_(Profile.tenant_id == tenant_id, Profile.id.in_(booked_ids)),
    ).order_by(Profile.full_name.asc(), Profile.id.asc()).limit(limit).all()
    return [
        {
            "id": client.id,
            "full_name": client.full_name,
            "email": client.email,
            "phone": client.phone,
            "loyalty_points": client.loyalty_points,
            "no_show_count": client.no_show_count,
        }
        for client in clients
    ]


# =============================================================================
# CUSTOMER AREA
# =============================================================================

def my_bookings(customer: Profile, *, tenant_id: int | None = None) -> list[Booking]:
    query = db.session.query(Booking).filter(Booking.customer_id == customer.id)
    if tenant_id is not None:
        query = query.filter(Booking.tenant_id == tenant_id)
    return query.order_by(Booking.start_time.desc(), Booking.id.desc()).all()


def cancel_my_booking(customer: Profile, booking_id, reason: str | None = None) -> Booking:
    """A customer cancels their own booking; someone else's is NotFound."""
    booking = db.session.query(Booking).filter_by(id=booking_id, customer_id=customer.id).first()
    if booking is None:
        raise NotFound("Booking not found")
    return cancel_booking(customer, booking.tenant_id, booking.id, reason)


def rate_booking(customer: Profile, booking_id, rating, comment: str | None = None) -> Booking:
    """
    Post-visit rating (1-5) by the booking's customer, once per completed visit.

    Raises:
        NotFound: not this customer's booking
        InvalidTransition: the visit is not completed
        Conflict: already rated
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailed("rating must be an integer from 1 to 5")
    comment = (comment or "").strip() or None
    if comment is not None and len(comment) > 1000:
        raise ValidationFailed("comment must be at most 1000 characters")

    with atomic():
        booking = db.session.query(Booking).filter_by(id=booking_id, customer_id=customer.id).first()
        if booking is None:
            raise NotFound("Booking not found")
        if booking.status != STATUS_COMPLETED:
            raise InvalidTransition("Only completed visits can be rated", details={"status": booking.status})

        updated = db.session.query(Booking).filter(
            Booking.id == booking.id,
            Booking.rated_at.is_(None),
        ).update(
            {"rating": rating, "rating_comment": comment, "rated_at": utcnow()},
            synchronize_session=False,
        )
        if updated != 1:
            raise Conflict("This visit has already been rated")

        audit_service.append(
            booking.tenant_id, customer.id, ACTION_RATE, ENTITY_BOOKINGS, booking.id,
            {"rating": rating},
        )

    db.session.refresh(booking)
    return booking
