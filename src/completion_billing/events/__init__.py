"""Notification events for completion billing."""

from completion_billing.events.context import format_money, render
from completion_billing.events.emitter import NotificationEmitter
from completion_billing.events.store import NotificationStore
from completion_billing.events.types import (
    EVENT_SPECS,
    EventCategory,
    EventSpec,
    EventType,
    dedup_key,
    get_spec,
)

__all__ = [
    "format_money",
    "render",
    "NotificationEmitter",
    "NotificationStore",
    "EVENT_SPECS",
    "EventCategory",
    "EventSpec",
    "EventType",
    "dedup_key",
    "get_spec",
]
