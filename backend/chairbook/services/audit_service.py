# Overview: Append-only audit trail of sensitive mutations.

"""
Audit Trail

Invariants:
- Append-only: entries are never updated or deleted.
- Entries are written inside the same DB transaction as the mutation they
  record (a SAVEPOINT isolates the audit insert).
- append() never raises into the caller; a failed insert is logged and the
  surrounding mutation carries on.
"""

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import AuditEntry
from chairbook.time_utils import utcnow

logger = logging.getLogger(__name__)


ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_CANCEL = "CANCEL"
ACTION_SEAT = "SEAT"
ACTION_NO_SHOW = "NO_SHOW"
ACTION_FORGIVE = "FORGIVE"
ACTION_POS_SALE = "POS_SALE"
ACTION_VOID = "VOID"
ACTION_GRANT = "GRANT"
ACTION_REVOKE = "REVOKE"
ACTION_KIOSK_ON = "KIOSK_ON"
ACTION_KIOSK_OFF = "KIOSK_OFF"
ACTION_RATE = "RATE"
ACTION_LINK_CLIENT = "LINK_CLIENT"

ENTITY_BOOKINGS = "bookings"
ENTITY_TRANSACTIONS = "transactions"
ENTITY_PROFILES = "profiles"
ENTITY_SERVICES = "services"
ENTITY_SETTINGS = "settings"
ENTITY_EXPENSES = "expenses"


def append(
    tenant_id: int | None,
    actor_id: int | None,
    action: str,
    entity: str,
    entity_id: Any,
    metadata: dict | None = None,
) -> AuditEntry | None:
    """
    Append an audit entry to the current transaction.

    Returns the entry, or None when the insert failed (already logged).
    The caller owns the commit.
    """
    try:
        with db.session.begin_nested():
            entry = AuditEntry(
                tenant_id=tenant_id,
                actor_id=actor_id,
                action=action,
                entity=entity,
                entity_id=str(entity_id),
                metadata_json=_jsonable(metadata or {}),
                created_at=utcnow(),
            )
            db.session.add(entry)
        return entry
    except Exception:
        logger.exception(
            "Failed to append audit entry action=%s entity=%s entity_id=%s",
            action, entity, entity_id,
        )
        return None


def list_entries(tenant_id: int, *, entity: str | None = None, entity_id: Any = None, limit: int = 200) -> list[AuditEntry]:
    query = db.session.query(AuditEntry).filter_by(tenant_id=tenant_id)
    if entity is not None:
        query = query.filter_by(entity=entity)
    if entity_id is not None:
        query = query.filter_by(entity_id=str(entity_id))
    return query.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc()).limit(limit).all()


def _jsonable(metadata: dict) -> dict:
    return {str(key): (value if isinstance(value, (str, int, float, bool)) or value is None else str(value))
            for key, value in metadata.items()}
