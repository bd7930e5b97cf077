# Overview: Service-layer operations for expenses paid out at the terminal.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationFailed
from ..models import Expense, Profile
from . import audit_service
from .audit_service import ACTION_CREATE, ENTITY_EXPENSES
from chairbook.time_utils import utcnow


EXPENSE_CATEGORIES = {"supplies", "utilities", "rent", "wages", "maintenance", "other"}


def record_expense(actor: Profile, tenant_id: int, *, amount_cents, category: str, description: str | None = None) -> Expense:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationFailed("amount_cents must be a positive integer")
    category = (category or "").strip().lower()
    if category not in EXPENSE_CATEGORIES:
        raise ValidationFailed(f"category must be one of: {', '.join(sorted(EXPENSE_CATEGORIES))}")

    expense = Expense(
        tenant_id=tenant_id,
        recorded_by=actor.id,
        amount_cents=amount_cents,
        category=category,
        description=(description or "").strip() or None,
        created_at=utcnow(),
    )
    db.session.add(expense)
    db.session.flush()
    audit_service.append(
        tenant_id, actor.id, ACTION_CREATE, ENTITY_EXPENSES, expense.id,
        {"amount": amount_cents, "category": category},
    )
    db.session.commit()
    return expense


def list_expenses(tenant_id: int, *, date_from=None, date_to=None, limit: int = 200) -> list[Expense]:
    query = db.session.query(Expense).filter(Expense.tenant_id == tenant_id)
    if date_from is not None:
        query = query.filter(Expense.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Expense.created_at < date_to)
    return query.order_by(Expense.created_at.desc(), Expense.id.desc()).limit(limit).all()
