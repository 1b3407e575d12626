"""Notification emitter.

Turns a domain transition into notification rows:

- one notification for the target of the event
- a mirrored confirmation for the actor, for event types that have one
- message text rendered from the event type's template table
- deduplication per recipient via ``dedup_key``
- error isolation: a failed notification is logged and swallowed, it never
  fails or rolls back the financial operation that triggered it

Rows are written through ``NotificationStore.append`` inside a savepoint,
so they commit or roll back together with the triggering operation.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.config import get_settings
from completion_billing.events.context import json_safe, render
from completion_billing.events.store import NotificationStore
from completion_billing.events.types import EventType, dedup_key, get_spec
from completion_billing.models import Invoice, NotificationEvent, Project, Task

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """Emit notifications for completion billing events.

    Usage:
        emitter = NotificationEmitter(session)
        await emitter.emit(
            EventType.TASK_APPROVED,
            actor_id=project.commissioner_id,
            target_id=project.freelancer_id,
            project_id=project.project_id,
            context={"taskId": task.task_id},
        )
    """

    def __init__(self, session: AsyncSession, currency: str | None = None) -> None:
        self.session = session
        self.store = NotificationStore(session)
        self.currency = currency or get_settings().currency

    async def emit(
        self,
        event_type: EventType | str,
        actor_id: int,
        target_id: int,
        project_id: int | None,
        context: dict[str, Any] | None = None,
    ) -> list[NotificationEvent]:
        """Emit an event, returning the notifications actually stored.

        Never raises.
        """
        try:
            return await self._emit(event_type, actor_id, target_id, project_id, context or {})
        except Exception:
            logger.exception(
                "Notification %s for project %s failed", event_type, project_id
            )
            return []

    async def _emit(
        self,
        event_type: EventType | str,
        actor_id: int,
        target_id: int,
        project_id: int | None,
        context: dict[str, Any],
    ) -> list[NotificationEvent]:
        spec = get_spec(event_type)
        enriched = await self.enrich(project_id, context)
        occurrence = enriched.get(spec.dedup_field) if spec.dedup_field else None

        recipients = [(target_id, spec.target_role, spec.event_type, spec.target_template)]
        if spec.mirrors_actor and actor_id != target_id:
            recipients.append(
                (
                    actor_id,
                    spec.actor_role,
                    spec.actor_copy_type or spec.event_type,
                    spec.actor_template,
                )
            )

        stored: list[NotificationEvent] = []
        payload = json_safe(enriched)
        for recipient_id, recipient_type, stored_type, template in recipients:
            try:
                event = NotificationEvent(
                    id=f"evt_{uuid4().hex}",
                    type=stored_type.value,
                    actor_id=actor_id,
                    target_id=recipient_id,
                    recipient_type=recipient_type,
                    project_id=project_id,
                    context=payload,
                    message=render(template, enriched, self.currency),
                    read=False,
                    dedup_key=dedup_key(stored_type, project_id, occurrence, recipient_id),
                )
                if await self.store.append(event) is not None:
                    stored.append(event)
            except Exception:
                # One recipient failing must not cost the other its notification
                logger.exception(
                    "Notification %s for user %s failed", stored_type.value, recipient_id
                )
        return stored

    async def enrich(self, project_id: int | None, context: dict[str, Any]) -> dict[str, Any]:
        """Fill in display fields from the project, task and invoice records.

        Values already present in ``context`` win.
        """
        enriched = dict(context)
        if project_id is None:
            return enriched
        project = await self.session.get(Project, project_id)
        if project is None:
            return enriched

        commissioner_name = project.commissioner_name or f"Commissioner #{project.commissioner_id}"
        enriched.setdefault("projectId", project.project_id)
        enriched.setdefault("projectTitle", project.title)
        enriched.setdefault("totalTasks", project.total_tasks)
        enriched.setdefault("totalBudget", project.total_budget)
        enriched.setdefault("commissionerName", commissioner_name)
        enriched.setdefault(
            "freelancerName", project.freelancer_name or f"Freelancer #{project.freelancer_id}"
        )
        enriched.setdefault("orgName", project.organization_name or commissioner_name)

        invoice = None
        if enriched.get("invoiceNumber"):
            invoice = await self.session.get(Invoice, enriched["invoiceNumber"])
            if invoice is not None:
                enriched.setdefault("amount", invoice.amount)
                enriched.setdefault("invoiceKind", invoice.kind)
                if invoice.task_id is not None:
                    enriched.setdefault("taskId", invoice.task_id)

        if enriched.get("taskId") is not None:
            task = await self.session.get(Task, enriched["taskId"])
            if task is not None:
                enriched.setdefault("taskTitle", task.title)

        if "approvedTasks" not in enriched:
            result = await self.session.execute(
                select(func.count(Task.task_id)).where(
                    Task.project_id == project.project_id,
                    Task.status == "approved",
                )
            )
            enriched["approvedTasks"] = int(result.scalar_one())

        if "remainingBudget" not in enriched:
            result = await self.session.execute(
                select(func.coalesce(func.sum(Invoice.amount), 0)).where(
                    Invoice.project_id == project.project_id
                )
            )
            invoiced = Decimal(str(result.scalar_one()))
            enriched["remainingBudget"] = project.total_budget - invoiced

        if "finalAmount" in enriched and "finalPercent" not in enriched:
            enriched["finalPercent"] = int(
                (Decimal(str(enriched["finalAmount"])) * 100 / project.total_budget)
                .to_integral_value()
            )
        return enriched
