"""Notification event model."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from completion_billing.models.base import Base, TimestampMixin


class NotificationEvent(Base, TimestampMixin):
    """A notification delivered to one user.

    Append-only apart from ``read``. ``dedup_key`` is unique so the same
    logical event can only be stored once per recipient.
    """

    __tablename__ = "notification_event"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dedup_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
