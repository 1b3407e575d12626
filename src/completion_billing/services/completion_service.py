"""Project completion monitor."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.events import EventType, NotificationEmitter
from completion_billing.models import Invoice, Project
from completion_billing.models.base import utcnow
from completion_billing.services.invoice_service import InvoiceService
from completion_billing.services.persistence import flush_changes
from completion_billing.services.state_machine import ProjectStateMachine, ProjectStatus

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Outcome of a completion check."""

    completed: bool
    final_invoice: Invoice | None = None
    already_completed: bool = False


class CompletionService:
    """Completes a project once every task is approved.

    Completion marks the project ``completed``, raises the final invoice
    (when budget is left) and notifies both parties. Checking an already
    completed project does nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        invoices: InvoiceService | None = None,
        emitter: NotificationEmitter | None = None,
    ):
        self.session = session
        self.invoices = invoices or InvoiceService(session)
        self.emitter = emitter or NotificationEmitter(session)

    async def check_completion(self, project: Project) -> CompletionResult:
        if project.status == ProjectStatus.COMPLETED.value:
            return CompletionResult(completed=True, already_completed=True)

        unapproved = await self.invoices.count_unapproved_tasks(project.project_id)
        if unapproved:
            logger.debug(
                "Project %s has %s task(s) left to approve", project.project_id, unapproved
            )
            return CompletionResult(completed=False)

        ProjectStateMachine.validate_transition(project.status, ProjectStatus.COMPLETED)
        project.status = ProjectStatus.COMPLETED.value
        project.completed_at = utcnow()
        await flush_changes(self.session, f"Project {project.project_id}")
        logger.info("Project %s: ongoing -> completed", project.project_id)

        final_invoice = await self.invoices.create_final_invoice(project)

        for event_type in (EventType.PROJECT_COMPLETED, EventType.RATING_PROMPT):
            await self.emitter.emit(
                event_type,
                actor_id=project.commissioner_id,
                target_id=project.freelancer_id,
                project_id=project.project_id,
            )
        return CompletionResult(completed=True, final_invoice=final_invoice)
