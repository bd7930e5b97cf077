from __future__ import annotations

from ..extensions import db
from chairbook.time_utils import to_utc_z


class AuditEntry(db.Model):
    """
    Append-only log of sensitive mutations, keyed by tenant/actor/entity.

    IMMUTABLE: never updated or deleted.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_audit_entries_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)
    action = db.Column(db.String(32), nullable=False, index=True)
    entity = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "metadata": self.metadata_json or {},
            "created_at": to_utc_z(self.created_at),
        }
