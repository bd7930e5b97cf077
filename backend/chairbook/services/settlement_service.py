# Overview: Service-layer operations for settlement; turns a booking or walk-in into a recorded sale.

"""
Settlement Engine

================================================================================
PURPOSE: Record a sale for a scheduled booking or a walk-in, atomically
================================================================================

SHAPES:
- Scheduled: booking_id given. The booking must be confirmed or seated and
  belong to the acting tenant. Amount defaults to the price snapshotted on
  the booking (or the service price) and may be overridden.
- Walk-in: no booking_id. A ghost booking is created already completed,
  spanning [now, now + service duration].

ORDER:
1. Validate everything (staff, service, client, booking state, redemption).
   Nothing is written if any check fails.
2. In ONE database transaction:
   - flip the booking to completed with a conditional update
     (WHERE status IN (confirmed, seated)); 0 rows -> AlreadySettled
   - insert the transaction (booking_id is unique; a duplicate -> AlreadySettled)
   - move points with one conditional update
     (loyalty_points = loyalty_points - redeemed + earned
      WHERE loyalty_points >= redeemed)
   - append loyalty events and the POS_SALE audit entry
3. Commit, then notify (failures are logged only).

After checkout, link_client attaches a loyalty client to an anonymous sale
and credits its points once.

A storage failure in step 2 rolls everything back and raises
SettlementFailed: the sale was not recorded.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..errors import (
    AlreadySettled,
    Conflict,
    DomainError,
    InsufficientPoints,
    InvalidTransition,
    NotFound,
    PolicyDenied,
    SettlementFailed,
    ValidationFailed,
)
from ..models import Booking, Expense, LoyaltyEvent, Profile, Service, Transaction
from ..models.auth import ROLE_OWNER, ROLE_SUPER_ADMIN
from ..models.bookings import ORIGIN_POS, STATUS_COMPLETED
from ..models.sales import PAYMENT_METHODS, TRANSACTION_COMPLETED, TRANSACTION_VOIDED
from . import audit_service, loyalty_service, notifier
from .audit_service import ACTION_LINK_CLIENT, ACTION_POS_SALE, ACTION_VOID, ENTITY_BOOKINGS, ENTITY_TRANSACTIONS
from .booking_service import SETTLEABLE_STATUSES, booking_view
from .persistence import atomic, get_scoped, run_with_retry
from .tenant_service import (
    SERVICING_ROLES,
    require_active_tenant,
    require_client_for_tenant,
    require_profile_in_tenant,
)
from chairbook.time_utils import utcnow

logger = logging.getLogger(__name__)


LOYALTY_EARN = "EARN"
LOYALTY_REDEEM = "REDEEM"
SALE_NOT_RECORDED = "Sale not recorded"

VOID_ROLES = {ROLE_OWNER, ROLE_SUPER_ADMIN}


def _validate_amount(amount_cents) -> int | None:
    if amount_cents is None:
        return None
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 0:
        raise ValidationFailed("amount_cents must be a non-negative integer")
    return amount_cents


def _validate_redeem(redeem_points) -> int:
    if redeem_points is None:
        return 0
    if isinstance(redeem_points, bool) or not isinstance(redeem_points, int) or redeem_points < 0:
        raise ValidationFailed("redeem_points must be a non-negative integer")
    return redeem_points


def _default_amount(booking: Booking | None, service: Service) -> int:
    if booking is not None and booking.service_id == service.id and booking.price_at_booking_cents is not None:
        return booking.price_at_booking_cents
    return service.price_cents


def _load_open_booking(booking_id, tenant_id: int) -> Booking:
    booking = get_scoped(Booking, booking_id, tenant_id, label="Booking")
    if booking.status not in SETTLEABLE_STATUSES:
        if booking.status == STATUS_COMPLETED:
            raise AlreadySettled("This booking has already been settled")
        raise InvalidTransition(
            f"Cannot settle a {booking.status} booking",
            details={"from": booking.status, "to": STATUS_COMPLETED},
        )
    if db.session.query(Transaction.id).filter_by(booking_id=booking.id).first() is not None:
        raise AlreadySettled("This booking has already been settled")
    return booking


def _price_ticket(amount_cents: int, client: Profile | None, redeem_points: int) -> dict:
    """Pure pricing of one ticket for the given client balance."""
    balance = client.loyalty_points if client is not None else 0
    discount = 0
    if redeem_points > 0:
        if client is None:
            raise ValidationFailed("A client must be selected to redeem points")
        discount = loyalty_service.check_redemption(balance, redeem_points, amount_cents)

    charge = amount_cents - discount
    earned = loyalty_service.points_earned(charge, balance) if client is not None else 0
    return {
        "gross_cents": amount_cents,
        "discount_cents": discount,
        "charge_cents": charge,
        "points_redeemed": redeem_points,
        "points_earned": earned,
        "balance_before": balance,
        "balance_after": balance - redeem_points + earned,
    }


# =============================================================================
# WRITE PHASE
# =============================================================================

def _complete_booking(booking: Booking, service: Service, client: Profile | None, now) -> None:
    values = {"status": STATUS_COMPLETED, "updated_at": now}
    if booking.service_id is None:
        # Open walk-in ticket: the service is chosen at checkout
        values.update({
            "service_id": service.id,
            "service_name_at_booking": service.name,
            "price_at_booking_cents": service.price_cents,
            "end_time": max(booking.start_time + timedelta(minutes=service.duration_min), now),
        })
    elif booking.service_id != service.id:
        # Service swapped at the chair: the booking snapshot follows the sale
        values.update({
            "service_id": service.id,
            "service_name_at_booking": service.name,
            "price_at_booking_cents": service.price_cents,
        })
    if booking.customer_id is None and client is not None:
        values["customer_id"] = client.id

    updated = db.session.query(Booking).filter(
        Booking.id == booking.id,
        Booking.status.in_(SETTLEABLE_STATUSES),
    ).update(values, synchronize_session=False)
    if updated != 1:
        raise AlreadySettled("This booking has already been settled")


def _create_ghost_booking(tenant_id: int, staff: Profile, service: Service, client: Profile | None, now) -> Booking:
    booking = Booking(
        tenant_id=tenant_id,
        service_id=service.id,
        staff_id=staff.id,
        customer_id=client.id if client else None,
        guest_name=None if client else "Walk-in",
        start_time=now,
        end_time=now + timedelta(minutes=service.duration_min),
        status=STATUS_COMPLETED,
        origin=ORIGIN_POS,
        price_at_booking_cents=service.price_cents,
        service_name_at_booking=service.name,
    )
    db.session.add(booking)
    db.session.flush()
    return booking


def _apply_points(client: Profile, tenant_id: int, transaction: Transaction, priced: dict, now) -> None:
    redeemed = priced["points_redeemed"]
    earned = priced["points_earned"]
    if redeemed == 0 and earned == 0:
        return

    updated = db.session.query(Profile).filter(
        Profile.id == client.id,
        Profile.loyalty_points >= redeemed,
    ).update(
        {"loyalty_points": Profile.loyalty_points - redeemed + earned},
        synchronize_session=False,
    )
    if updated != 1:
        raise InsufficientPoints("Point balance changed during checkout; please retry")

    if redeemed:
        db.session.add(LoyaltyEvent(
            profile_id=client.id,
            tenant_id=tenant_id,
            transaction_id=transaction.id,
            event_type=LOYALTY_REDEEM,
            points=-redeemed,
            occurred_at=now,
        ))
    if earned:
        db.session.add(LoyaltyEvent(
            profile_id=client.id,
            tenant_id=tenant_id,
            transaction_id=transaction.id,
            event_type=LOYALTY_EARN,
            points=earned,
            occurred_at=now,
        ))


def _write_sale(actor, tenant_id, booking, staff, service, client, payment_method, priced) -> Transaction:
    now = utcnow()

    if booking is not None:
        _complete_booking(booking, service, client, now)
        booking_id = booking.id
    else:
        booking_id = _create_ghost_booking(tenant_id, staff, service, client, now).id

    transaction = Transaction(
        tenant_id=tenant_id,
        booking_id=booking_id,
        staff_id=staff.id,
        service_id=service.id,
        client_id=client.id if client else None,
        amount_cents=priced["charge_cents"],
        discount_cents=priced["discount_cents"],
        payment_method=payment_method,
        points_earned=priced["points_earned"],
        points_redeemed=priced["points_redeemed"],
        status=TRANSACTION_COMPLETED,
        created_at=now,
    )
    db.session.add(transaction)
    db.session.flush()

    if client is not None:
        _apply_points(client, tenant_id, transaction, priced, now)

    audit_service.append(
        tenant_id,
        actor.id if actor else None,
        ACTION_POS_SALE,
        ENTITY_BOOKINGS,
        booking_id,
        {"amount": priced["charge_cents"], "paymentMethod": payment_method},
    )
    return transaction


# =============================================================================
# OPERATIONS
# =============================================================================

def settle(
    actor: Profile | None,
    tenant_id: int,
    *,
    staff_id,
    service_id,
    payment_method: str,
    booking_id=None,
    amount_cents: int | None = None,
    redeem_points: int = 0,
    client_id=None,
) -> Transaction:
    """
    Settle a scheduled booking or a walk-in sale.

    Raises:
        NotFound: staff, service, client or booking absent or foreign
        AlreadySettled: the booking already has a sale
        InvalidTransition: the booking is cancelled or a no-show
        RedemptionBelowThreshold / InsufficientPoints / ValidationFailed
        SettlementFailed: storage failed; nothing was recorded
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailed(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")
    amount_cents = _validate_amount(amount_cents)
    redeem_points = _validate_redeem(redeem_points)

    require_active_tenant(tenant_id)
    staff = require_profile_in_tenant(staff_id, tenant_id, roles=SERVICING_ROLES, label="Staff member")
    service = get_scoped(Service, service_id, tenant_id, label="Service")

    booking = _load_open_booking(booking_id, tenant_id) if booking_id is not None else None
    if booking is None and not service.is_active:
        raise NotFound("Service not found")

    if client_id is None and booking is not None:
        client_id = booking.customer_id
    client = require_client_for_tenant(client_id, tenant_id) if client_id is not None else None

    amount = amount_cents if amount_cents is not None else _default_amount(booking, service)
    priced = _price_ticket(amount, client, redeem_points)

    try:
        transaction = _write_sale(actor, tenant_id, booking, staff, service, client, payment_method, priced)
        settled_booking_id = transaction.booking_id
        db.session.commit()
    except DomainError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if booking is not None and db.session.query(Transaction.id).filter_by(booking_id=booking.id).first():
            raise AlreadySettled("This booking has already been settled") from exc
        logger.exception("Settlement integrity failure tenant=%s booking=%s", tenant_id, booking_id)
        raise SettlementFailed(SALE_NOT_RECORDED) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Settlement write failed tenant=%s booking=%s", tenant_id, booking_id)
        raise SettlementFailed(SALE_NOT_RECORDED) from exc

    # Committed: nothing below may turn the sale into a failure
    logger.info(
        "Settled booking %s tenant=%s charge=%s method=%s earned=%s redeemed=%s",
        settled_booking_id, tenant_id, priced["charge_cents"], payment_method,
        priced["points_earned"], priced["points_redeemed"],
    )
    notifier.notify_booking(
        tenant_id,
        notifier.EVENT_BOOKING_COMPLETED,
        lambda: booking_view(db.session.get(Booking, settled_booking_id)),
    )
    return transaction


def quote_settlement(
    tenant_id: int,
    *,
    service_id,
    booking_id=None,
    amount_cents: int | None = None,
    client_id=None,
    redeem_points: int = 0,
) -> dict:
    """
    Preview a checkout for the terminal: charge, points and what redemption
    the client may be offered. Writes nothing.
    """
    amount_cents = _validate_amount(amount_cents)
    redeem_points = _validate_redeem(redeem_points)

    service = get_scoped(Service, service_id, tenant_id, label="Service")
    booking = _load_open_booking(booking_id, tenant_id) if booking_id is not None else None
    if client_id is None and booking is not None:
        client_id = booking.customer_id
    client = require_client_for_tenant(client_id, tenant_id) if client_id is not None else None

    amount = amount_cents if amount_cents is not None else _default_amount(booking, service)
    priced = _price_ticket(amount, client, redeem_points)

    quote = dict(priced)
    if client is not None:
        quote["loyalty"] = loyalty_service.loyalty_status(client.loyalty_points)
        quote["redemption"] = loyalty_service.redemption_eligibility(client.loyalty_points, amount)
    else:
        quote["loyalty"] = None
        quote["redemption"] = {"eligible": False, "reason": "No client selected", "max_redeemable": 0}
    return quote


def void_transaction(actor: Profile, tenant_id: int, transaction_id, reason: str) -> Transaction:
    """
    Mark a sale voided (owner only). The row, the completed booking and the
    loyalty movements stay as they are; the void is a marker plus an audit entry.
    """
    if actor.role not in VOID_ROLES:
        raise PolicyDenied("Only the shop owner can void a sale")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A reason is required to void a sale")

    def _void():
        transaction = get_scoped(Transaction, transaction_id, tenant_id, label="Transaction", for_update=True)
        if transaction.status == TRANSACTION_VOIDED:
            raise InvalidTransition("This sale is already voided")
        transaction.status = TRANSACTION_VOIDED
        transaction.voided_by = actor.id
        transaction.voided_at = utcnow()
        transaction.void_reason = reason
        audit_service.append(
            tenant_id, actor.id, ACTION_VOID, ENTITY_TRANSACTIONS, transaction.id,
            {"amount": transaction.amount_cents, "reason": reason},
        )
        db.session.commit()
        return transaction

    return run_with_retry(_void)


def _find_client(client_ref, tenant_id: int) -> Profile:
    """Resolve a scanned client reference: a profile id or an email address."""
    if isinstance(client_ref, int) and not isinstance(client_ref, bool):
        return require_client_for_tenant(client_ref, tenant_id)
    ref = str(client_ref or "").strip()
    if not ref:
        raise ValidationFailed("A client id or email is required")
    if ref.isdigit():
        return require_client_for_tenant(int(ref), tenant_id)
    profile = db.session.query(Profile).filter_by(email=ref.lower()).first()
    if profile is None:
        raise NotFound("Client not found")
    return require_client_for_tenant(profile.id, tenant_id)


def link_client(actor: Profile, tenant_id: int, transaction_id, client_ref) -> Transaction:
    """
    Attach a loyalty client to an anonymous sale after checkout.

    The client earns the sale's points at their current tier, exactly once.

    Raises:
        NotFound: sale or client absent or foreign
        InvalidTransition: the sale is voided
        Conflict: the sale already has a client
    """
    client = _find_client(client_ref, tenant_id)

    with atomic():
        transaction = get_scoped(Transaction, transaction_id, tenant_id, label="Transaction", for_update=True)
        if transaction.status == TRANSACTION_VOIDED:
            raise InvalidTransition("This sale is voided")
        if transaction.client_id is not None:
            raise Conflict("This sale already has a client")

        now = utcnow()
        earned = loyalty_service.points_earned(transaction.amount_cents, client.loyalty_points)

        linked = db.session.query(Transaction).filter(
            Transaction.id == transaction.id,
            Transaction.client_id.is_(None),
            Transaction.status == TRANSACTION_COMPLETED,
        ).update({"client_id": client.id, "points_earned": earned}, synchronize_session=False)
        if linked != 1:
            raise Conflict("This sale already has a client")

        db.session.query(Booking).filter(
            Booking.id == transaction.booking_id,
            Booking.customer_id.is_(None),
        ).update({"customer_id": client.id, "guest_name": None}, synchronize_session=False)

        if earned:
            db.session.query(Profile).filter(Profile.id == client.id).update(
                {"loyalty_points": Profile.loyalty_points + earned},
                synchronize_session=False,
            )
            db.session.add(LoyaltyEvent(
                profile_id=client.id,
                tenant_id=tenant_id,
                transaction_id=transaction.id,
                event_type=LOYALTY_EARN,
                points=earned,
                occurred_at=now,
            ))

        audit_service.append(
            tenant_id, actor.id, ACTION_LINK_CLIENT, ENTITY_TRANSACTIONS, transaction.id,
            {"client_id": client.id, "points": earned},
        )

    logger.info("Linked client %s to sale %s tenant=%s earned=%s", client.id, transaction_id, tenant_id, earned)
    db.session.refresh(transaction)
    return transaction


# =============================================================================
# REPORTS
# =============================================================================

def list_transactions(tenant_id: int, *, date_from=None, date_to=None, include_voided: bool = True, limit: int = 500) -> list[Transaction]:
    query = db.session.query(Transaction).filter(Transaction.tenant_id == tenant_id)
    if date_from is not None:
        query = query.filter(Transaction.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Transaction.created_at < date_to)
    if not include_voided:
        query = query.filter(Transaction.status == TRANSACTION_COMPLETED)
    return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()


def sales_summary(tenant_id: int, *, date_from=None, date_to=None) -> dict:
    """Completed sales by payment method, expenses, and the net for a period."""
    sales = db.session.query(
        Transaction.payment_method,
        db.func.count(Transaction.id),
        db.func.coalesce(db.func.sum(Transaction.amount_cents), 0),
        db.func.coalesce(db.func.sum(Transaction.discount_cents), 0),
    ).filter(
        Transaction.tenant_id == tenant_id,
        Transaction.status == TRANSACTION_COMPLETED,
    )
    expenses = db.session.query(db.func.coalesce(db.func.sum(Expense.amount_cents), 0)).filter(
        Expense.tenant_id == tenant_id,
    )
    if date_from is not None:
        sales = sales.filter(Transaction.created_at >= date_from)
        expenses = expenses.filter(Expense.created_at >= date_from)
    if date_to is not None:
        sales = sales.filter(Transaction.created_at < date_to)
        expenses = expenses.filter(Expense.created_at < date_to)

    by_method = {method: {"count": 0, "total_cents": 0} for method in sorted(PAYMENT_METHODS)}
    gross = 0
    discounts = 0
    count = 0
    for method, method_count, total, discount in sales.group_by(Transaction.payment_method).all():
        by_method[method] = {"count": int(method_count), "total_cents": int(total)}
        gross += int(total)
        discounts += int(discount)
        count += int(method_count)

    expenses_total = int(expenses.scalar() or 0)
    return {
        "transactions": count,
        "revenue_cents": gross,
        "discounts_cents": discounts,
        "expenses_cents": expenses_total,
        "net_cents": gross - expenses_total,
        "by_payment_method": by_method,
    }
