# Overview: Pytest coverage for the append-only audit trail.

from datetime import datetime

import pytest

from chairbook.errors import InvalidTransition
from chairbook.models import AuditEntry, Booking
from chairbook.services import audit_service, booking_service

from conftest import headers_for, in_hours


def _book(owner, tenant, service, staff):
    return booking_service.create_booking(
        owner, tenant.id,
        service_id=service.id, staff_id=staff.id, start_time=in_hours(48), guest_name="Walk-up Guest",
    )


def _entries(db_session, booking_id):
    return db_session.query(AuditEntry).filter_by(
        entity="bookings", entity_id=str(booking_id),
    ).order_by(AuditEntry.id.asc()).all()


class TestAppend:

    def test_append_records_actor_and_metadata(self, db_session, tenant_a, owner_a):
        entry = audit_service.append(
            tenant_a.id, owner_a.id, audit_service.ACTION_UPDATE, audit_service.ENTITY_SETTINGS, tenant_a.id,
            {"field": "display_name", "at": datetime(2026, 1, 2, 3, 4)},
        )
        db_session.commit()

        stored = db_session.get(AuditEntry, entry.id)
        assert stored.actor_id == owner_a.id
        assert stored.entity_id == str(tenant_a.id)
        assert stored.metadata_json == {"field": "display_name", "at": "2026-01-02 03:04:00"}

    def test_append_failure_never_reaches_the_caller(self, monkeypatch, db_session, tenant_a, owner_a, staff_a, haircut_a):
        def _broken(**kwargs):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(audit_service, "AuditEntry", _broken)

        assert audit_service.append(tenant_a.id, owner_a.id, "UPDATE", "settings", tenant_a.id) is None

        booking = _book(owner_a, tenant_a, haircut_a, staff_a)
        assert db_session.get(Booking, booking.id).status == "confirmed"
        assert db_session.query(AuditEntry).count() == 0


class TestTransitionsAreAudited:

    def test_each_transition_writes_one_entry(self, db_session, tenant_a, owner_a, staff_a, haircut_a):
        booking = _book(owner_a, tenant_a, haircut_a, staff_a)
        booking_service.mark_no_show(owner_a, tenant_a.id, booking.id, "No call")
        booking_service.forgive_no_show(owner_a, tenant_a.id, booking.id)
        booking_service.cancel_booking(owner_a, tenant_a.id, booking.id, "Shop closed")

        entries = _entries(db_session, booking.id)
        assert [e.action for e in entries] == ["CREATE", "NO_SHOW", "FORGIVE", "CANCEL"]
        assert all(e.actor_id == owner_a.id for e in entries)
        assert all(e.tenant_id == tenant_a.id for e in entries)
        assert entries[1].metadata_json["reason"] == "No call"
        assert entries[2].metadata_json["previous_reason"] == "No call"
        assert entries[3].metadata_json == {"from": "confirmed", "to": "cancelled", "reason": "Shop closed"}

    def test_rejected_transition_writes_nothing(self, db_session, tenant_a, owner_a, staff_a, haircut_a):
        booking = _book(owner_a, tenant_a, haircut_a, staff_a)
        booking_service.cancel_booking(owner_a, tenant_a.id, booking.id)

        with pytest.raises(InvalidTransition):
            booking_service.seat_booking(owner_a, tenant_a.id, booking.id)

        assert [e.action for e in _entries(db_session, booking.id)] == ["CREATE", "CANCEL"]


class TestAuditLogRoute:

    def test_owner_reads_tenant_log(self, client, tenant_a, owner_a, staff_a, haircut_a):
        booking = _book(owner_a, tenant_a, haircut_a, staff_a)
        booking_service.seat_booking(owner_a, tenant_a.id, booking.id)

        response = client.get(
            f'/api/settings/audit?entity=bookings&entity_id={booking.id}',
            headers=headers_for(owner_a),
        )

        assert response.status_code == 200
        assert [e["action"] for e in response.json["entries"]] == ["SEAT", "CREATE"]

    def test_staff_cannot_read_log(self, client, staff_a):
        response = client.get('/api/settings/audit', headers=headers_for(staff_a))
        assert response.status_code == 403

    def test_log_is_scoped_to_tenant(self, client, tenant_a, owner_a, staff_a, haircut_a, owner_b):
        _book(owner_a, tenant_a, haircut_a, staff_a)

        response = client.get('/api/settings/audit', headers=headers_for(owner_b))

        assert response.status_code == 200
        assert response.json["entries"] == []
