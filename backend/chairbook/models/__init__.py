from .tenancy import Tenant
from .auth import Profile, SessionToken
from .catalog import Service
from .bookings import Booking
from .sales import Transaction, LoyaltyEvent, Expense
from .audit import AuditEntry
from .security import SecurityEvent

__all__ = [
    'Tenant',
    'Profile', 'SessionToken',
    'Service',
    'Booking',
    'Transaction', 'LoyaltyEvent', 'Expense',
    'AuditEntry',
    'SecurityEvent',
]
