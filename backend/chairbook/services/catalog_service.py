# Overview: Service-layer operations for the service catalog.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationFailed
from ..models import Profile, Service
from . import audit_service
from .audit_service import ACTION_CREATE, ACTION_UPDATE, ENTITY_SERVICES
from .persistence import get_scoped


def _validate_name(name) -> str:
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationFailed("name is required")
    return name


def _validate_price(price_cents) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
        raise ValidationFailed("price_cents must be a non-negative integer")
    return price_cents


def _validate_duration(duration_min) -> int:
    if isinstance(duration_min, bool) or not isinstance(duration_min, int) or duration_min <= 0:
        raise ValidationFailed("duration_min must be a positive integer")
    return duration_min


def list_services(tenant_id: int, *, include_inactive: bool = False) -> list[Service]:
    query = db.session.query(Service).filter(Service.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.name.asc(), Service.id.asc()).all()


def create_service(actor: Profile, tenant_id: int, *, name, price_cents, duration_min) -> Service:
    service = Service(
        tenant_id=tenant_id,
        name=_validate_name(name),
        price_cents=_validate_price(price_cents),
        duration_min=_validate_duration(duration_min),
        is_active=True,
    )
    db.session.add(service)
    db.session.flush()
    audit_service.append(
        tenant_id, actor.id, ACTION_CREATE, ENTITY_SERVICES, service.id,
        {"name": service.name, "price_cents": service.price_cents, "duration_min": service.duration_min},
    )
    db.session.commit()
    return service


def update_service(actor: Profile, tenant_id: int, service_id, payload: dict) -> Service:
    """
    Edit name, price, duration or active flag.

    Existing bookings keep the price and name they were made at.
    """
    service = get_scoped(Service, service_id, tenant_id, label="Service")
    changed = {}

    if "name" in payload:
        service.name = changed["name"] = _validate_name(payload["name"])
    if "price_cents" in payload:
        service.price_cents = changed["price_cents"] = _validate_price(payload["price_cents"])
    if "duration_min" in payload:
        service.duration_min = changed["duration_min"] = _validate_duration(payload["duration_min"])
    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationFailed("is_active must be a boolean")
        service.is_active = changed["is_active"] = payload["is_active"]

    if changed:
        audit_service.append(tenant_id, actor.id, ACTION_UPDATE, ENTITY_SERVICES, service.id, changed)
        db.session.commit()
    return service
