"""ORM models for the completion billing core."""

from completion_billing.models.base import Base, TimestampMixin, VersionedMixin
from completion_billing.models.billing import Invoice, Transaction, Wallet
from completion_billing.models.notification import NotificationEvent
from completion_billing.models.project import Contact, Project, Task

__all__ = [
    "Base",
    "TimestampMixin",
    "VersionedMixin",
    "Contact",
    "Invoice",
    "NotificationEvent",
    "Project",
    "Task",
    "Transaction",
    "Wallet",
]
