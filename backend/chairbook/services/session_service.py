# Overview: Service-layer operations for session tokens; issue, validate, rotate and revoke.

"""
Session Token Management Service

WHY: Secure session management with short-lived access tokens, rotating
refresh tokens and replay detection. Tokens are cryptographically secure,
hashed in the database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Access tokens expire after ACCESS_TOKEN_TTL_MINUTES and are refreshed
  transparently when within ACCESS_REFRESH_THRESHOLD_MINUTES of expiry
- Every refresh rotates both tokens; rows of one login share a family_id
- A rotated refresh token presented again within
  REFRESH_REUSE_GRACE_SECONDS (parallel requests sharing one cookie pair)
  resolves to the family's live session; later it is a replay and the
  whole family is revoked

OUTCOMES (resolve_session):
- VALID: a live session, possibly refreshed during this request
- ANONYMOUS: no session, or a session that simply expired
- CORRUPTED: only "refresh token already used" and "invalid refresh token".
  A missing session is never corruption.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..errors import SessionCorrupted
from ..models import Profile, SessionToken
from .security_service import log_security_event, EVENT_SESSION_REPLAY
from chairbook.time_utils import utcnow

logger = logging.getLogger(__name__)


OUTCOME_VALID = "VALID"
OUTCOME_ANONYMOUS = "ANONYMOUS"
OUTCOME_CORRUPTED = "CORRUPTED"

REASON_REFRESH_REUSED = "refresh token already used"
REASON_REFRESH_INVALID = "invalid refresh token"


@dataclass
class IssuedTokens:
    """Plaintext tokens handed to the client once; only hashes are stored."""
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass
class SessionContext:
    profile: Profile
    session: SessionToken
    issued: IssuedTokens | None = None  # set when tokens were rotated during this request


@dataclass
class SessionOutcome:
    status: str
    context: SessionContext | None = None
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == OUTCOME_VALID

    @property
    def is_corrupted(self) -> bool:
        return self.status == OUTCOME_CORRUPTED


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest for database storage.

    Tokens are high-entropy, so a fast hash is sufficient (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _access_ttl() -> timedelta:
    return timedelta(minutes=current_app.config["ACCESS_TOKEN_TTL_MINUTES"])


def _refresh_ttl() -> timedelta:
    return timedelta(days=current_app.config["REFRESH_TOKEN_TTL_DAYS"])


def _refresh_threshold() -> timedelta:
    return timedelta(minutes=current_app.config["ACCESS_REFRESH_THRESHOLD_MINUTES"])


def _reuse_grace() -> timedelta:
    return timedelta(seconds=current_app.config["REFRESH_REUSE_GRACE_SECONDS"])


def _issue(profile_id: int, family_id: str, user_agent: str | None, ip_address: str | None) -> tuple[SessionToken, IssuedTokens]:
    access_token = generate_token()
    refresh_token = generate_token()
    now = utcnow()

    session = SessionToken(
        profile_id=profile_id,
        family_id=family_id,
        access_token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token),
        created_at=now,
        expires_at=now + _access_ttl(),
        refresh_expires_at=now + _refresh_ttl(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)

    return session, IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        access_expires_at=session.expires_at,
        refresh_expires_at=session.refresh_expires_at,
    )


def create_session(profile_id: int, user_agent: str | None = None, ip_address: str | None = None) -> tuple[SessionToken, IssuedTokens]:
    """
    Start a new session family for a profile (login).

    Returns (session_record, issued_tokens). The client receives the
    plaintext tokens; the database stores only the hashes.
    """
    profile = db.session.query(Profile).filter_by(id=profile_id).first()
    if not profile or not profile.is_active:
        raise ValueError("Profile not found or inactive")

    session, issued = _issue(profile_id, secrets.token_hex(16), user_agent, ip_address)
    db.session.commit()
    return session, issued


def validate_access_token(access_token: str | None) -> SessionContext | None:
    """
    Look up a live session by access token.

    Returns None if the token is unknown, revoked or expired, or the
    profile is deactivated.
    """
    if not access_token:
        return None

    session = db.session.query(SessionToken).filter_by(
        access_token_hash=hash_token(access_token),
        is_revoked=False,
    ).first()

    if not session or session.expires_at <= utcnow():
        return None

    profile = session.profile
    if not profile or not profile.is_active:
        return None

    return SessionContext(profile=profile, session=session)


def refresh_session(refresh_token: str, user_agent: str | None = None, ip_address: str | None = None) -> SessionContext | None:
    """
    Rotate a refresh token into a fresh token pair.

    Returns the new SessionContext, or None when the refresh token has
    simply expired (or its profile was deactivated). A token rotated within
    the reuse grace window returns the family's live session with
    issued=None.

    Raises:
        SessionCorrupted: the refresh token was already rotated (replay;
            the whole family is revoked) or is unknown/revoked.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(refresh_token_hash=hash_token(refresh_token)).first()

    if session is None:
        raise SessionCorrupted(REASON_REFRESH_INVALID)

    if session.rotated_at is not None:
        if now - session.rotated_at <= _reuse_grace():
            # Parallel request that carried the pre-rotation cookies
            return _grace_context(session)
        _handle_replay(session)
        raise SessionCorrupted(REASON_REFRESH_REUSED)

    if session.is_revoked:
        raise SessionCorrupted(REASON_REFRESH_INVALID)

    if session.refresh_expires_at <= now:
        return None

    profile = session.profile
    if not profile or not profile.is_active:
        revoke_family(session.family_id, "Profile deactivated")
        db.session.commit()
        return None

    # Conditional update: concurrent refreshes of one token cannot both win
    rotated = db.session.query(SessionToken).filter(
        SessionToken.id == session.id,
        SessionToken.rotated_at.is_(None),
    ).update(
        {"rotated_at": now, "is_revoked": True, "revoked_at": now, "revoked_reason": "Rotated"},
        synchronize_session=False,
    )
    if rotated != 1:
        # Lost the race to a concurrent refresh of the same token
        db.session.rollback()
        return _grace_context(session)

    new_session, issued = _issue(profile.id, session.family_id, user_agent, ip_address)
    db.session.commit()
    return SessionContext(profile=profile, session=new_session, issued=issued)


def _grace_context(rotated: SessionToken) -> SessionContext | None:
    """
    Session for a refresh token rotated moments ago by a concurrent request.

    Returns the family's live successor without issuing new tokens (the
    other response carries them), or None when the family has no live
    session left.
    """
    successor = db.session.query(SessionToken).filter(
        SessionToken.family_id == rotated.family_id,
        SessionToken.is_revoked.is_(False),
        SessionToken.id != rotated.id,
    ).order_by(SessionToken.created_at.desc(), SessionToken.id.desc()).first()
    if successor is None or successor.refresh_expires_at <= utcnow():
        return None

    profile = successor.profile
    if not profile or not profile.is_active:
        return None

    logger.info("Rotated refresh token reused within grace window for profile %s", profile.id)
    return SessionContext(profile=profile, session=successor)


def _handle_replay(session: SessionToken) -> None:
    family_id = session.family_id
    profile_id = session.profile_id
    tenant_id = session.profile.tenant_id if session.profile else None
    revoked = revoke_family(family_id, "Refresh token reuse detected")
    log_security_event(
        EVENT_SESSION_REPLAY,
        profile_id=profile_id,
        tenant_id=tenant_id,
        reason=f"Rotated refresh token replayed; {revoked} session(s) revoked",
    )
    db.session.commit()
    logger.warning("Refresh token replay for profile %s; family revoked", profile_id)


def resolve_session(
    access_token: str | None,
    refresh_token: str | None,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> SessionOutcome:
    """
    Classify the credentials presented with a request.

    A valid access token close to expiry is refreshed transparently when a
    refresh token is available; the new pair is returned in context.issued
    for the gateway to set as cookies.
    """
    if not access_token and not refresh_token:
        return SessionOutcome(OUTCOME_ANONYMOUS)

    context = validate_access_token(access_token)

    if context is not None:
        near_expiry = context.session.expires_at - utcnow() <= _refresh_threshold()
        if not near_expiry or not refresh_token:
            return SessionOutcome(OUTCOME_VALID, context=context)

    if not refresh_token:
        return SessionOutcome(OUTCOME_ANONYMOUS, reason="session expired")

    try:
        refreshed = refresh_session(refresh_token, user_agent=user_agent, ip_address=ip_address)
    except SessionCorrupted as exc:
        if context is not None:
            revoke_family(context.session.family_id, f"Session corrupted: {exc.message}")
            db.session.commit()
        return SessionOutcome(OUTCOME_CORRUPTED, reason=exc.message)

    if refreshed is not None:
        return SessionOutcome(OUTCOME_VALID, context=refreshed)

    if context is not None:
        # Refresh token expired but the access token is still good for a few minutes
        return SessionOutcome(OUTCOME_VALID, context=context)

    return SessionOutcome(OUTCOME_ANONYMOUS, reason="session expired")


def revoke_family(family_id: str, reason: str) -> int:
    """Revoke every live session of one login. Caller commits."""
    now = utcnow()
    return db.session.query(SessionToken).filter(
        SessionToken.family_id == family_id,
        SessionToken.is_revoked.is_(False),
    ).update(
        {"is_revoked": True, "revoked_at": now, "revoked_reason": reason},
        synchronize_session=False,
    )


def revoke_session(access_token: str, reason: str = "User logout") -> bool:
    """
    Revoke the session family an access token belongs to (logout).

    Returns True if a live session was found.
    """
    session = db.session.query(SessionToken).filter_by(
        access_token_hash=hash_token(access_token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    revoke_family(session.family_id, reason)
    db.session.commit()
    return True


def revoke_all_profile_sessions(profile_id: int, reason: str = "Revoke all sessions") -> int:
    """
    Revoke all live sessions of a profile. Caller commits.

    WHY: Role or tenant changes must take effect on every device.
    """
    now = utcnow()
    return db.session.query(SessionToken).filter(
        SessionToken.profile_id == profile_id,
        SessionToken.is_revoked.is_(False),
    ).update(
        {"is_revoked": True, "revoked_at": now, "revoked_reason": reason},
        synchronize_session=False,
    )


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """
    Delete sessions that are dead (refresh expired or revoked) and older than
    the cutoff. Run periodically (see `flask maintenance cleanup-sessions`).
    """
    now = utcnow()
    cutoff = now - timedelta(days=older_than_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.refresh_expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
