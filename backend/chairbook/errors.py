"""
Domain error taxonomy.

Every error a service raises on purpose derives from DomainError and carries
a machine-readable kind, a human-readable message and the HTTP status the
routes answer with. NotFound is deliberately used for both "absent" and
"belongs to another tenant" so cross-tenant probing learns nothing.
"""

from __future__ import annotations


class DomainError(Exception):
    kind = "DomainError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(DomainError):
    """Malformed or out-of-range input."""
    kind = "ValidationFailed"
    status_code = 400


class NotFound(DomainError):
    kind = "NotFound"
    status_code = 404


class InvalidTransition(DomainError):
    kind = "InvalidTransition"
    status_code = 409


class AlreadySettled(DomainError):
    kind = "AlreadySettled"
    status_code = 409


class CancellationWindowExpired(DomainError):
    kind = "CancellationWindowExpired"
    status_code = 409


class InsufficientPoints(DomainError):
    kind = "InsufficientPoints"
    status_code = 422


class RedemptionBelowThreshold(DomainError):
    kind = "RedemptionBelowThreshold"
    status_code = 422


class PolicyDenied(DomainError):
    kind = "PolicyDenied"
    status_code = 403

    def __init__(self, message: str, redirect_to: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.redirect_to = redirect_to

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.redirect_to:
            payload["redirect_to"] = self.redirect_to
        return payload


class SessionCorrupted(DomainError):
    kind = "SessionCorrupted"
    status_code = 401


class SettlementFailed(DomainError):
    """The sale was rolled back; nothing was recorded."""
    kind = "SettlementFailed"
    status_code = 502


class PersistenceUnavailable(DomainError):
    kind = "PersistenceUnavailable"
    status_code = 502


class Conflict(DomainError):
    kind = "Conflict"
    status_code = 409
