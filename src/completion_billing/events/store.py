"""Notification store.

Persists ``NotificationEvent`` rows with idempotent appends (via the
unique ``dedup_key``) and serves the per-user notification feed.

Usage:
    store = NotificationStore(session)

    # Store one notification; None when an equal one already exists
    stored = await store.append(event)

    # Feed for a commissioner, only events from their network
    events = await store.list_for_user(34, tab="network", unread_only=True)
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.errors import NotificationNotFoundError, ValidationError
from completion_billing.models import Contact, NotificationEvent

logger = logging.getLogger(__name__)

FEED_TABS = ("all", "network")


class NotificationStore:
    """Notification persistence backed by the ORM session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, dedup_key: str) -> bool:
        result = await self._session.execute(
            select(NotificationEvent.id).where(NotificationEvent.dedup_key == dedup_key)
        )
        return result.scalar_one_or_none() is not None

    async def append(self, event: NotificationEvent) -> NotificationEvent | None:
        """Append a notification inside a savepoint.

        Returns the stored row, or None if one with the same dedup key
        exists (idempotent). A failed insert only rolls back the savepoint,
        never the surrounding transaction.
        """
        try:
            async with self._session.begin_nested():
                if await self.exists(event.dedup_key):
                    logger.debug("Notification %s already stored", event.dedup_key)
                    return None
                self._session.add(event)
        except IntegrityError:
            # Lost a race against an equal notification
            logger.debug("Notification %s stored concurrently", event.dedup_key)
            return None
        return event

    async def get(self, notification_id: str) -> NotificationEvent | None:
        return await self._session.get(NotificationEvent, notification_id)

    async def list_for_user(
        self,
        user_id: int,
        *,
        recipient_type: str | None = None,
        tab: str = "all",
        unread_only: bool = False,
        project_id: int | None = None,
        limit: int = 50,
    ) -> list[NotificationEvent]:
        """Notifications addressed to a user, newest first.

        ``tab="network"`` keeps only events whose actor is in the user's
        contact list (commissioner side).
        """
        if tab not in FEED_TABS:
            raise ValidationError(detail=f"Unknown notifications tab '{tab}'")

        stmt = select(NotificationEvent).where(NotificationEvent.target_id == user_id)
        if recipient_type is not None:
            stmt = stmt.where(NotificationEvent.recipient_type == recipient_type)
        if tab == "network":
            network = select(Contact.freelancer_id).where(Contact.commissioner_id == user_id)
            stmt = stmt.where(NotificationEvent.actor_id.in_(network))
        if unread_only:
            stmt = stmt.where(NotificationEvent.read.is_(False))
        if project_id is not None:
            stmt = stmt.where(NotificationEvent.project_id == project_id)

        stmt = stmt.order_by(
            NotificationEvent.created_at.desc(), NotificationEvent.id.desc()
        ).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_unread(self, user_id: int, recipient_type: str | None = None) -> int:
        stmt = select(func.count(NotificationEvent.id)).where(
            NotificationEvent.target_id == user_id,
            NotificationEvent.read.is_(False),
        )
        if recipient_type is not None:
            stmt = stmt.where(NotificationEvent.recipient_type == recipient_type)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def mark_read(self, notification_id: str, user_id: int) -> NotificationEvent:
        """Flip ``read`` on one of the user's notifications."""
        event = await self.get(notification_id)
        if event is None or event.target_id != user_id:
            raise NotificationNotFoundError(
                detail=f"Notification {notification_id} not found",
            )
        event.read = True
        await self._session.flush()
        return event

    async def mark_all_read(self, user_id: int, recipient_type: str | None = None) -> int:
        """Mark every unread notification of a user as read.

        Returns count of notifications changed.
        """
        stmt = (
            update(NotificationEvent)
            .where(
                NotificationEvent.target_id == user_id,
                NotificationEvent.read.is_(False),
            )
            .values(read=True)
        )
        if recipient_type is not None:
            stmt = stmt.where(NotificationEvent.recipient_type == recipient_type)
        result = await self._session.execute(stmt)
        return result.rowcount or 0
