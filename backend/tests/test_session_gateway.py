# Overview: Pytest coverage for session classification, rotation, replay detection and redirects.

"""
Session Gateway Tests

Verifies:
1. Login issues a token pair (body and httponly cookies)
2. Missing or expired sessions are ANONYMOUS: 401 for APIs, one login redirect for pages
3. Only an invalid or replayed refresh token is CORRUPTED: cookies cleared,
   redirect to /login?session_expired=1
4. Near-expiry access tokens are refreshed transparently and the old pair retired
5. Logout and role changes revoke sessions
"""

from datetime import timedelta

from chairbook.models import Profile, SecurityEvent, SessionToken
from chairbook.services.session_service import hash_token
from chairbook.time_utils import utcnow

from conftest import PASSWORD, auth_headers, headers_for, issue_tokens, set_cookie_values


def _session_row(db_session, access_token):
    return db_session.query(SessionToken).filter_by(access_token_hash=hash_token(access_token)).one()


class TestLogin:

    def test_login_sets_identity_cookies(self, client, staff_a):
        response = client.post('/api/auth/login', json={"email": "staff@shop-a.test", "password": PASSWORD})

        assert response.status_code == 200
        assert response.json["profile"]["role"] == "staff"
        cookies = set_cookie_values(response)
        assert cookies["cb_access_token"] == response.json["access_token"]
        assert cookies["cb_refresh_token"] == response.json["refresh_token"]
        assert "HttpOnly" in response.headers.getlist("Set-Cookie")[-1]

        me = client.get('/api/auth/me', headers=auth_headers(response.json["access_token"]))
        assert me.status_code == 200
        assert me.json["profile"]["email"] == "staff@shop-a.test"

    def test_login_is_case_insensitive_on_email(self, client, staff_a):
        response = client.post('/api/auth/login', json={"email": "Staff@Shop-A.test", "password": PASSWORD})
        assert response.status_code == 200

    def test_wrong_password(self, client, staff_a):
        response = client.post('/api/auth/login', json={"email": "staff@shop-a.test", "password": "nope-nope-1"})
        assert response.status_code == 401
        assert response.json["error"] == "Invalid credentials"

    def test_login_works_with_a_broken_session(self, client, staff_a):
        response = client.post(
            '/api/auth/login',
            json={"email": "staff@shop-a.test", "password": PASSWORD},
            headers={"X-Refresh-Token": "not-a-real-token"},
        )

        assert response.status_code == 200
        assert set_cookie_values(response)["cb_access_token"] == response.json["access_token"]

    def test_register_then_login(self, client):
        response = client.post('/api/auth/register', json={
            "email": "new@example.test",
            "password": "Sup3rSecret",
            "full_name": "New Customer",
        })
        assert response.status_code == 201
        assert response.json["profile"]["role"] == "customer"
        assert response.json["profile"]["tenant_id"] is None

        login = client.post('/api/auth/login', json={"email": "new@example.test", "password": "Sup3rSecret"})
        assert login.status_code == 200


class TestAnonymous:

    def test_api_without_session_is_401(self, client):
        response = client.get('/api/auth/me')

        assert response.status_code == 401
        assert response.json["error"] == "Authentication required"

    def test_page_redirects_to_login_once(self, client):
        first = client.get('/admin')

        assert first.status_code == 302
        assert first.headers["Location"].endswith("/login?next=/admin")
        assert set_cookie_values(first)["cb_login_redirect"] == "1"

        second = client.get('/admin', headers={"Cookie": "cb_login_redirect=1"})

        assert second.status_code == 401
        assert second.json["redirect_to"] == "/login"

    def test_expired_refresh_token_is_anonymous_not_corrupted(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)
        row = _session_row(db_session, issued.access_token)
        row.expires_at = utcnow() - timedelta(days=2)
        row.refresh_expires_at = utcnow() - timedelta(days=1)
        db_session.commit()

        response = client.get('/api/auth/me', headers={"X-Refresh-Token": issued.refresh_token})

        assert response.status_code == 401
        assert response.json["error"] == "Authentication required"

    def test_expired_access_token_is_refreshed(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)
        row = _session_row(db_session, issued.access_token)
        row.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = client.get('/api/auth/me', headers={
            **auth_headers(issued.access_token),
            "X-Refresh-Token": issued.refresh_token,
        })

        assert response.status_code == 200
        assert set_cookie_values(response)["cb_access_token"] not in ("", issued.access_token)


class TestCorruptedSession:

    def test_bogus_refresh_token_on_api(self, client):
        response = client.get('/api/bookings', headers={"X-Refresh-Token": "f" * 64})

        assert response.status_code == 401
        assert response.json["error"] == "SessionCorrupted"
        assert response.json["redirect_to"] == "/login?session_expired=1"
        cookies = set_cookie_values(response)
        assert cookies["cb_access_token"] == ""
        assert cookies["cb_refresh_token"] == ""

    def test_bogus_refresh_token_on_page(self, client):
        response = client.get('/admin/pos', headers={"X-Refresh-Token": "f" * 64})

        assert response.status_code == 302
        assert response.headers["Location"].endswith("/login?session_expired=1")

    def test_refresh_cookie_is_read(self, client):
        response = client.get('/api/auth/me', headers={"Cookie": "cb_refresh_token=" + "a" * 64})

        assert response.status_code == 401
        assert response.json["error"] == "SessionCorrupted"


class TestRotation:

    def test_near_expiry_session_is_rotated(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)
        row = _session_row(db_session, issued.access_token)
        row.expires_at = utcnow() + timedelta(minutes=1)
        db_session.commit()
        row_id = row.id

        response = client.get('/api/auth/me', headers={
            **auth_headers(issued.access_token),
            "X-Refresh-Token": issued.refresh_token,
        })

        assert response.status_code == 200
        cookies = set_cookie_values(response)
        assert cookies["cb_access_token"] not in ("", issued.access_token)
        assert cookies["cb_refresh_token"] not in ("", issued.refresh_token)

        old = db_session.get(SessionToken, row_id)
        assert old.rotated_at is not None
        assert old.is_revoked is True

        fresh = _session_row(db_session, cookies["cb_access_token"])
        assert fresh.family_id == old.family_id
        assert fresh.is_revoked is False

    def test_fresh_session_is_not_rotated(self, client, staff_a):
        issued = issue_tokens(staff_a)

        response = client.get('/api/auth/me', headers={
            **auth_headers(issued.access_token),
            "X-Refresh-Token": issued.refresh_token,
        })

        assert response.status_code == 200
        assert "cb_access_token" not in set_cookie_values(response)

    def test_parallel_requests_share_one_rotation(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)
        row = _session_row(db_session, issued.access_token)
        row.expires_at = utcnow() + timedelta(minutes=2)
        db_session.commit()
        stale = {**auth_headers(issued.access_token), "X-Refresh-Token": issued.refresh_token}

        first = client.get('/api/auth/me', headers=stale)
        second = client.get('/api/auth/me', headers=stale)

        assert first.status_code == 200
        assert second.status_code == 200
        assert "cb_access_token" not in set_cookie_values(second)

        fresh_access = set_cookie_values(first)["cb_access_token"]
        assert client.get('/api/auth/me', headers=auth_headers(fresh_access)).status_code == 200
        assert db_session.query(SecurityEvent).filter_by(event_type="SESSION_REPLAY_DETECTED").count() == 0
        assert db_session.query(SessionToken).filter_by(profile_id=staff_a.id, is_revoked=False).count() == 1

    def test_explicit_refresh_inside_grace_window_keeps_the_family(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)

        first = client.post('/api/auth/refresh', json={"refresh_token": issued.refresh_token})
        again = client.post('/api/auth/refresh', json={"refresh_token": issued.refresh_token})

        assert first.status_code == 200
        assert again.status_code == 409
        assert "cb_access_token" not in set_cookie_values(again)
        assert client.get('/api/auth/me', headers=auth_headers(first.json["access_token"])).status_code == 200

    def test_replayed_refresh_token_revokes_the_family(self, client, db_session, staff_a):
        issued = issue_tokens(staff_a)

        first = client.post('/api/auth/refresh', json={"refresh_token": issued.refresh_token})
        assert first.status_code == 200
        rotated_access = first.json["access_token"]
        assert client.get('/api/auth/me', headers=auth_headers(rotated_access)).status_code == 200

        # Presented again well after the rotation
        old = db_session.query(SessionToken).filter_by(refresh_token_hash=hash_token(issued.refresh_token)).one()
        old.rotated_at = utcnow() - timedelta(minutes=5)
        db_session.commit()

        replay = client.post('/api/auth/refresh', json={"refresh_token": issued.refresh_token})

        assert replay.status_code == 401
        assert replay.json["error"] == "SessionCorrupted"
        assert set_cookie_values(replay)["cb_access_token"] == ""

        # The legitimate holder's new pair is gone too
        assert client.get('/api/auth/me', headers=auth_headers(rotated_access)).status_code == 401

        events = db_session.query(SecurityEvent).filter_by(event_type="SESSION_REPLAY_DETECTED").all()
        assert len(events) == 1
        assert events[0].profile_id == staff_a.id

        live = db_session.query(SessionToken).filter_by(profile_id=staff_a.id, is_revoked=False).count()
        assert live == 0

    def test_refresh_requires_a_token(self, client):
        response = client.post('/api/auth/refresh', json={})
        assert response.status_code == 400


class TestRevocation:

    def test_logout_revokes_session(self, client, staff_a):
        issued = issue_tokens(staff_a)

        response = client.post('/api/auth/logout', headers=auth_headers(issued.access_token))

        assert response.status_code == 200
        assert set_cookie_values(response)["cb_access_token"] == ""
        assert client.get('/api/auth/me', headers=auth_headers(issued.access_token)).status_code == 401

    def test_role_grant_revokes_target_sessions(self, client, db_session, owner_a, tenant_a, customer):
        customer_token = issue_tokens(customer).access_token
        assert client.get('/api/auth/me', headers=auth_headers(customer_token)).status_code == 200

        response = client.post('/api/team/grant', json={
            "email": "client@example.test",
            "role": "staff",
        }, headers=headers_for(owner_a))

        assert response.status_code == 200
        assert response.json["profile"]["role"] == "staff"
        assert response.json["profile"]["tenant_id"] == tenant_a.id

        assert client.get('/api/auth/me', headers=auth_headers(customer_token)).status_code == 401

        promoted = db_session.get(Profile, customer.id)
        assert promoted.role == "staff"
        assert promoted.is_active_barber is True

    def test_deactivated_profile_loses_access(self, client, db_session, staff_a):
        token = issue_tokens(staff_a).access_token
        staff_a.is_active = False
        db_session.commit()

        assert client.get('/api/auth/me', headers=auth_headers(token)).status_code == 401
