# Overview: Persistence boundary helpers: locking, retries, atomic units and error translation.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import Conflict, NotFound, PersistenceUnavailable


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). After the last attempt the failure is
    surfaced as PersistenceUnavailable.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceUnavailable("Database unavailable, please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))


@contextmanager
def atomic():
    """
    One database transaction: commit on success, roll back on any error.

    IntegrityError is surfaced as Conflict; everything else is re-raised
    unchanged after the rollback.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Conflicting write", details={"constraint": str(exc.orig)}) from exc
    except BaseException:
        db.session.rollback()
        raise


def get_scoped(model, entity_id, tenant_id: int, *, label: str | None = None, for_update: bool = False):
    """
    Fetch a tenant-owned row by id.

    Absent rows and rows owned by another tenant raise the same NotFound.
    """
    query = db.session.query(model).filter_by(id=entity_id, tenant_id=tenant_id)
    if for_update:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFound(f"{label or model.__name__} not found")
    return row


def first_or_self(value):
    """
    Normalize a joined value that may arrive as a list or as a single object.

    [] / None -> None, [a, b] -> a, a -> a
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value
