# Overview: Pytest coverage for settlement: atomic sales, idempotence, loyalty movements and voids.

"""
Settlement Tests

Verifies:
1. A sale writes booking completion, transaction, points and audit together
2. A booking is settled at most once (sequential and racing attempts)
3. Redemption failures and foreign ids write nothing
4. A storage failure mid-sale rolls everything back ("Sale not recorded")
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from chairbook.errors import (
    AlreadySettled,
    Conflict,
    InvalidTransition,
    NotFound,
    PolicyDenied,
    RedemptionBelowThreshold,
    SettlementFailed,
)
from chairbook.models import AuditEntry, Booking, LoyaltyEvent, Profile, Transaction
from chairbook.services import booking_service, expense_service, settlement_service

from conftest import headers_for, in_hours


def _give_points(db_session, profile, points):
    profile.loyalty_points = points
    db_session.commit()


def _reserve(owner, tenant, service, staff, customer=None):
    kwargs = {"customer_id": customer.id} if customer is not None else {"guest_name": "Walk-up Guest"}
    return booking_service.create_booking(
        owner, tenant.id,
        service_id=service.id, staff_id=staff.id, start_time=in_hours(24), **kwargs,
    )


def _points(db_session, profile):
    return db_session.get(Profile, profile.id).loyalty_points


class TestWalkInSale:

    def test_redeem_and_earn_on_walk_in(self, db_session, tenant_a, staff_a, premium_a, customer):
        _give_points(db_session, customer, 600)

        transaction = settlement_service.settle(
            staff_a, tenant_a.id,
            staff_id=staff_a.id,
            service_id=premium_a.id,
            payment_method="card",
            redeem_points=200,
            client_id=customer.id,
        )

        # 200.00 gross, 200 points = 20.00 off, silver tier earns 1.5x on 180.00
        assert transaction.amount_cents == 18000
        assert transaction.discount_cents == 2000
        assert transaction.points_redeemed == 200
        assert transaction.points_earned == 270
        assert _points(db_session, customer) == 670

        events = {e.event_type: e.points for e in db_session.query(LoyaltyEvent).filter_by(transaction_id=transaction.id)}
        assert events == {"REDEEM": -200, "EARN": 270}

        ghost = db_session.get(Booking, transaction.booking_id)
        assert ghost.status == "completed"
        assert ghost.origin == "pos"
        assert ghost.customer_id == customer.id

        sale = db_session.query(AuditEntry).filter_by(action="POS_SALE").one()
        assert sale.entity == "bookings"
        assert sale.entity_id == str(ghost.id)
        assert sale.metadata_json == {"amount": 18000, "paymentMethod": "card"}

    def test_anonymous_walk_in_earns_nothing(self, db_session, tenant_a, staff_a, haircut_a):
        transaction = settlement_service.settle(
            staff_a, tenant_a.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
        )

        assert transaction.client_id is None
        assert transaction.points_earned == 0
        assert db_session.query(LoyaltyEvent).count() == 0

    def test_amount_override(self, tenant_a, staff_a, haircut_a):
        transaction = settlement_service.settle(
            staff_a, tenant_a.id,
            staff_id=staff_a.id, service_id=haircut_a.id, payment_method="transfer", amount_cents=3000,
        )
        assert transaction.amount_cents == 3000

    def test_open_walk_in_ticket_gets_its_service_at_checkout(self, db_session, tenant_a, staff_a, haircut_a, customer):
        ticket = booking_service.seat_walk_in(staff_a, tenant_a.id, staff_id=staff_a.id, client_id=customer.id)
        assert ticket.status == "seated"
        assert ticket.service_id is None

        transaction = settlement_service.settle(
            staff_a, tenant_a.id,
            booking_id=ticket.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
        )

        settled = db_session.get(Booking, ticket.id)
        assert settled.status == "completed"
        assert settled.service_id == haircut_a.id
        assert settled.price_at_booking_cents == 2500
        assert transaction.amount_cents == 2500
        assert _points(db_session, customer) == 25


class TestIdempotence:

    def test_second_settle_is_refused(self, db_session, tenant_a, owner_a, staff_a, haircut_a):
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a)

        settlement_service.settle(
            staff_a, tenant_a.id,
            booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
        )
        with pytest.raises(AlreadySettled):
            settlement_service.settle(
                staff_a, tenant_a.id,
                booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
            )

        assert db_session.query(Transaction).filter_by(booking_id=booking.id).count() == 1

    def test_http_retry_gets_conflict(self, client, db_session, tenant_a, owner_a, staff_a, haircut_a):
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a)
        body = {
            "booking_id": booking.id,
            "staff_id": staff_a.id,
            "service_id": haircut_a.id,
            "payment_method": "cash",
        }
        headers = headers_for(staff_a)

        first = client.post('/api/pos/settle', json=body, headers=headers)
        second = client.post('/api/pos/settle', json=body, headers=headers)

        assert first.status_code == 201
        assert first.json["message"] == "Sale recorded"
        assert second.status_code == 409
        assert second.json["error"] == "AlreadySettled"
        assert db_session.query(Transaction).count() == 1

    def test_racing_settle_loses_on_conditional_update(self, monkeypatch, db_session, tenant_a, owner_a, staff_a, haircut_a, customer):
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a, customer)
        settlement_service.settle(
            staff_a, tenant_a.id,
            booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
        )
        balance = _points(db_session, customer)

        # A second request that read the booking before the first one committed
        monkeypatch.setattr(
            settlement_service, "_load_open_booking",
            lambda booking_id, tenant_id: db_session.get(Booking, booking_id),
        )
        with pytest.raises(AlreadySettled):
            settlement_service.settle(
                staff_a, tenant_a.id,
                booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="card",
            )

        assert db_session.query(Transaction).filter_by(booking_id=booking.id).count() == 1
        assert _points(db_session, customer) == balance
        assert db_session.query(AuditEntry).filter_by(action="POS_SALE").count() == 1


class TestNothingWrittenOnRefusal:

    def test_below_threshold_redemption_then_plain_sale(self, db_session, tenant_a, owner_a, staff_a, haircut_a, customer):
        _give_points(db_session, customer, 50)
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a, customer)

        with pytest.raises(RedemptionBelowThreshold):
            settlement_service.settle(
                staff_a, tenant_a.id,
                booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id,
                payment_method="cash", redeem_points=50,
            )

        assert db_session.get(Booking, booking.id).status == "confirmed"
        assert db_session.query(Transaction).count() == 0
        assert _points(db_session, customer) == 50

        # The same ticket goes through once the redemption is dropped
        transaction = settlement_service.settle(
            staff_a, tenant_a.id,
            booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id,
            payment_method="cash", redeem_points=0,
        )

        assert transaction.discount_cents == 0
        assert transaction.amount_cents == 2500
        assert transaction.points_earned == 25
        assert _points(db_session, customer) == 75
        assert db_session.get(Booking, booking.id).status == "completed"

    def test_cancelled_booking_cannot_be_settled(self, tenant_a, owner_a, staff_a, haircut_a):
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a)
        booking_service.cancel_booking(owner_a, tenant_a.id, booking.id)

        with pytest.raises(InvalidTransition):
            settlement_service.settle(
                owner_a, tenant_a.id,
                booking_id=booking.id, staff_id=staff_a.id, service_id=haircut_a.id, payment_method="cash",
            )

    @pytest.mark.parametrize("field", ["staff", "service", "booking", "client"])
    def test_foreign_ids_are_not_found(
        self, field, db_session, tenant_a, owner_a, staff_a, haircut_a,
        tenant_b, owner_b, staff_b, haircut_b, customer_b,
    ):
        kwargs = {"staff_id": staff_a.id, "service_id": haircut_a.id, "payment_method": "cash"}
        if field == "staff":
            kwargs["staff_id"] = staff_b.id
        elif field == "service":
            kwargs["service_id"] = haircut_b.id
        elif field == "booking":
            kwargs["booking_id"] = _reserve(owner_b, tenant_b, haircut_b, staff_b).id
        else:
            kwargs["client_id"] = customer_b.id

        with pytest.raises(NotFound):
            settlement_service.settle(owner_a, tenant_a.id, **kwargs)

        assert db_session.query(Transaction).count() == 0


class TestAtomicity:

    def test_storage_failure_rolls_back_everything(self, monkeypatch, db_session, tenant_a, owner_a, staff_a, premium_a, customer):
        _give_points(db_session, customer, 600)
        booking = _reserve(owner_a, tenant_a, premium_a, staff_a, customer)

        def _fail(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(settlement_service, "_apply_points", _fail)

        with pytest.raises(SettlementFailed) as exc:
            settlement_service.settle(
                staff_a, tenant_a.id,
                booking_id=booking.id, staff_id=staff_a.id, service_id=premium_a.id,
                payment_method="card", redeem_points=200,
            )

        assert exc.value.message == "Sale not recorded"
        assert db_session.get(Booking, booking.id).status == "confirmed"
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(LoyaltyEvent).count() == 0
        assert _points(db_session, customer) == 600
        assert db_session.query(AuditEntry).filter_by(action="POS_SALE").count() == 0

    def test_storage_failure_over_http(self, monkeypatch, client, tenant_a, owner_a, staff_a, haircut_a, customer):
        def _fail(*args, **kwargs):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(settlement_service, "_apply_points", _fail)

        response = client.post('/api/pos/settle', json={
            "staff_id": staff_a.id,
            "service_id": haircut_a.id,
            "client_id": customer.id,
            "payment_method": "cash",
        }, headers=headers_for(staff_a))

        assert response.status_code == 502
        assert response.json == {"error": "SettlementFailed", "message": "Sale not recorded"}


class TestAfterCommit:

    def test_payload_failure_does_not_fail_the_sale(self, monkeypatch, client, db_session, tenant_a, staff_a, haircut_a):
        def _broken_view(booking):
            raise RuntimeError("view unavailable")

        monkeypatch.setattr(settlement_service, "booking_view", _broken_view)

        response = client.post('/api/pos/settle', json={
            "staff_id": staff_a.id,
            "service_id": haircut_a.id,
            "payment_method": "cash",
        }, headers=headers_for(staff_a))

        assert response.status_code == 201
        assert response.json["message"] == "Sale recorded"
        assert db_session.query(Transaction).count() == 1

    def test_transport_failure_does_not_fail_the_sale(self, client, db_session, transport, tenant_a, staff_a, haircut_a):
        transport.fail = True

        response = client.post('/api/pos/settle', json={
            "staff_id": staff_a.id,
            "service_id": haircut_a.id,
            "payment_method": "card",
        }, headers=headers_for(staff_a))

        assert response.status_code == 201
        assert db_session.query(Transaction).count() == 1
        assert transport.messages == []


class TestServiceChangedAtCheckout:

    def test_booking_snapshot_follows_the_sale(self, db_session, tenant_a, owner_a, staff_a, haircut_a, premium_a):
        booking = _reserve(owner_a, tenant_a, haircut_a, staff_a)

        transaction = settlement_service.settle(
            staff_a, tenant_a.id,
            booking_id=booking.id, staff_id=staff_a.id, service_id=premium_a.id, payment_method="card",
        )

        settled = db_session.get(Booking, booking.id)
        assert transaction.service_id == premium_a.id
        assert transaction.amount_cents == 20000
        assert settled.service_id == premium_a.id
        assert settled.service_name_at_booking == "Premium Grooming"
        assert settled.price_at_booking_cents == 20000


class TestQuote:

    def test_quote_explains_ineligible_redemption(self, tenant_a, haircut_a, customer, db_session):
        _give_points(db_session, customer, 99)

        quote = settlement_service.quote_settlement(tenant_a.id, service_id=haircut_a.id, client_id=customer.id)

        assert quote["charge_cents"] == 2500
        assert quote["redemption"]["eligible"] is False
        assert quote["loyalty"]["tier"] == "bronze"

    def test_quote_caps_redemption_at_ticket_total(self, client, db_session, tenant_a, staff_a, haircut_a, customer):
        _give_points(db_session, customer, 600)

        response = client.post('/api/pos/quote', json={
            "service_id": haircut_a.id,
            "client_id": customer.id,
        }, headers=headers_for(staff_a))

        assert response.status_code == 200
        assert response.json["quote"]["redemption"]["max_redeemable"] == 250
        assert db_session.query(Transaction).count() == 0


class TestVoidAndReports:

    def _sale(self, staff, tenant, service, **kwargs):
        return settlement_service.settle(
            staff, tenant.id, staff_id=staff.id, service_id=service.id, **kwargs,
        )

    def test_owner_voids_without_touching_points(self, db_session, tenant_a, owner_a, staff_a, haircut_a, customer):
        transaction = self._sale(staff_a, tenant_a, haircut_a, payment_method="cash", client_id=customer.id)
        balance = _points(db_session, customer)

        voided = settlement_service.void_transaction(owner_a, tenant_a.id, transaction.id, "Entered twice")

        assert voided.status == "voided"
        assert voided.void_reason == "Entered twice"
        assert _points(db_session, customer) == balance
        assert db_session.get(Booking, transaction.booking_id).status == "completed"

    def test_staff_cannot_void(self, client, tenant_a, staff_a, haircut_a):
        transaction = self._sale(staff_a, tenant_a, haircut_a, payment_method="cash")

        with pytest.raises(PolicyDenied):
            settlement_service.void_transaction(staff_a, tenant_a.id, transaction.id, "Mistake")

        response = client.post(
            f'/api/reports/transactions/{transaction.id}/void',
            json={"reason": "Mistake"},
            headers=headers_for(staff_a),
        )
        assert response.status_code == 403
        assert response.json["redirect_to"] == "/admin/pos"

    def test_sales_summary(self, db_session, tenant_a, owner_a, staff_a, haircut_a, premium_a, customer):
        _give_points(db_session, customer, 600)
        self._sale(staff_a, tenant_a, haircut_a, payment_method="cash")
        self._sale(staff_a, tenant_a, premium_a, payment_method="card", client_id=customer.id, redeem_points=200)
        voided = self._sale(staff_a, tenant_a, haircut_a, payment_method="cash")
        settlement_service.void_transaction(owner_a, tenant_a.id, voided.id, "Test sale")
        expense_service.record_expense(owner_a, tenant_a.id, amount_cents=1000, category="supplies")

        summary = settlement_service.sales_summary(tenant_a.id)

        assert summary["transactions"] == 2
        assert summary["revenue_cents"] == 20500
        assert summary["discounts_cents"] == 2000
        assert summary["expenses_cents"] == 1000
        assert summary["net_cents"] == 19500
        assert summary["by_payment_method"]["cash"] == {"count": 1, "total_cents": 2500}
        assert summary["by_payment_method"]["transfer"] == {"count": 0, "total_cents": 0}


class TestLinkClient:

    def _anonymous_sale(self, staff, tenant, service):
        return settlement_service.settle(
            staff, tenant.id, staff_id=staff.id, service_id=service.id, payment_method="cash",
        )

    def test_scanned_id_credits_the_sale(self, client, db_session, tenant_a, staff_a, haircut_a, customer):
        transaction = self._anonymous_sale(staff_a, tenant_a, haircut_a)

        response = client.post(
            f'/api/pos/transactions/{transaction.id}/link-client',
            json={"client": str(customer.id)},
            headers=headers_for(staff_a),
        )

        assert response.status_code == 200
        assert response.json["transaction"]["client_id"] == customer.id
        assert response.json["transaction"]["points_earned"] == 25
        assert _points(db_session, customer) == 25
        assert db_session.get(Booking, transaction.booking_id).customer_id == customer.id

        event = db_session.query(LoyaltyEvent).filter_by(transaction_id=transaction.id).one()
        assert (event.event_type, event.points) == ("EARN", 25)
        entry = db_session.query(AuditEntry).filter_by(action="LINK_CLIENT").one()
        assert entry.metadata_json == {"client_id": customer.id, "points": 25}

    def test_email_lookup_and_tier_rate(self, db_session, tenant_a, staff_a, premium_a, customer):
        _give_points(db_session, customer, 1000)
        transaction = self._anonymous_sale(staff_a, tenant_a, premium_a)

        linked = settlement_service.link_client(staff_a, tenant_a.id, transaction.id, "Client@Example.test")

        assert linked.points_earned == 400
        assert _points(db_session, customer) == 1400

    def test_sale_with_a_client_is_refused(self, db_session, tenant_a, staff_a, haircut_a, customer):
        transaction = self._anonymous_sale(staff_a, tenant_a, haircut_a)
        settlement_service.link_client(staff_a, tenant_a.id, transaction.id, customer.id)

        with pytest.raises(Conflict):
            settlement_service.link_client(staff_a, tenant_a.id, transaction.id, customer.id)

        assert _points(db_session, customer) == 25
        assert db_session.query(LoyaltyEvent).count() == 1

    def test_voided_sale_is_refused(self, db_session, tenant_a, owner_a, staff_a, haircut_a, customer):
        transaction = self._anonymous_sale(staff_a, tenant_a, haircut_a)
        settlement_service.void_transaction(owner_a, tenant_a.id, transaction.id, "Wrong ticket")

        with pytest.raises(InvalidTransition):
            settlement_service.link_client(staff_a, tenant_a.id, transaction.id, customer.id)

        assert _points(db_session, customer) == 0

    def test_foreign_client_is_not_found(self, db_session, tenant_a, staff_a, haircut_a, customer_b):
        transaction = self._anonymous_sale(staff_a, tenant_a, haircut_a)

        with pytest.raises(NotFound):
            settlement_service.link_client(staff_a, tenant_a.id, transaction.id, customer_b.id)

        assert db_session.get(Transaction, transaction.id).client_id is None
