# Overview: Security event logging for policy denials and cross-tenant access attempts.

"""
Security Event Logging with Tenant Context

WHY: Denied access attempts must be attributable and reviewable per tenant.
Only denials are logged (policy: no granted logs).
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from chairbook.time_utils import utcnow

logger = logging.getLogger(__name__)


EVENT_POLICY_DENIED = "POLICY_DENIED"
EVENT_CROSS_TENANT = "CROSS_TENANT_ACCESS_DENIED"
EVENT_SESSION_REPLAY = "SESSION_REPLAY_DETECTED"
EVENT_KIOSK_PIN_FAILED = "KIOSK_PIN_FAILED"


def log_security_event(
    event_type: str,
    *,
    profile_id: int | None = None,
    tenant_id: int | None = None,
    action: str | None = None,
    reason: str | None = None,
) -> SecurityEvent | None:
    """
    Record a security event in its own SAVEPOINT and flush it.

    Never raises: a failed write is logged and None is returned. The event
    becomes durable with the caller's next commit.
    """
    resource = request.path if has_request_context() else None
    ip_address = request.remote_addr if has_request_context() else None
    user_agent = request.headers.get("User-Agent") if has_request_context() else None

    try:
        with db.session.begin_nested():
            event = SecurityEvent(
                tenant_id=tenant_id,
                profile_id=profile_id,
                event_type=event_type,
                resource=resource,
                action=action,
                reason=reason,
                ip_address=ip_address,
                user_agent=user_agent,
                occurred_at=utcnow(),
            )
            db.session.add(event)
        return event
    except Exception:
        logger.exception("Failed to log security event %s", event_type)
        return None


def commit_security_event(event_type: str, **kwargs) -> SecurityEvent | None:
    """Log a security event and commit it immediately (used on denial paths)."""
    event = log_security_event(event_type, **kwargs)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to commit security event %s", event_type)
        return None
    return event
