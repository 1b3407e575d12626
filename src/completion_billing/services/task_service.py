"""Task submission and approval workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.errors import (
    ProjectNotEligibleError,
    ProjectPausedError,
    UnauthorizedError,
)
from completion_billing.events import EventType, NotificationEmitter
from completion_billing.models import Invoice, Project, Task
from completion_billing.models.base import utcnow
from completion_billing.services.completion_service import CompletionResult, CompletionService
from completion_billing.services.invoice_service import InvoiceService
from completion_billing.services.persistence import flush_changes
from completion_billing.services.state_machine import (
    ProjectStateMachine,
    ProjectStatus,
    TaskStateMachine,
    TaskStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    """What approving a task produced."""

    task: Task
    invoice: Invoice
    completion: CompletionResult


class TaskService:
    """Moves tasks through pending → submitted → approved.

    Approval triggers, in order: the task's completion invoice, the
    ``task_approved`` notification, then the project completion check.
    """

    def __init__(
        self,
        session: AsyncSession,
        invoices: InvoiceService | None = None,
        emitter: NotificationEmitter | None = None,
        completion: CompletionService | None = None,
    ):
        self.session = session
        self.invoices = invoices or InvoiceService(session)
        self.emitter = emitter or NotificationEmitter(session)
        self.completion = completion or CompletionService(session, self.invoices, self.emitter)

    async def list_tasks(self, project_id: int) -> list[Task]:
        result = await self.session.execute(
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.position, Task.task_id)
        )
        return list(result.scalars().all())

    async def submit(
        self,
        task: Task,
        freelancer_id: int,
        reference_url: str | None = None,
    ) -> Task:
        """Freelancer hands in a task for review."""
        project = await self.invoices.get_project(task.project_id)
        if freelancer_id != project.freelancer_id:
            raise UnauthorizedError(
                detail=f"User {freelancer_id} is not the freelancer on project {project.project_id}",
            )
        self._ensure_work_allowed(project)
        TaskStateMachine.validate_transition(task.status, TaskStatus.SUBMITTED)

        task.status = TaskStatus.SUBMITTED.value
        task.reference_url = reference_url
        task.submitted_at = utcnow()
        await flush_changes(self.session, f"Task {task.task_id}")
        logger.info("Task %s: pending -> submitted", task.task_id)

        await self.emitter.emit(
            EventType.TASK_SUBMITTED,
            actor_id=project.freelancer_id,
            target_id=project.commissioner_id,
            project_id=project.project_id,
            context={"taskId": task.task_id, "referenceUrl": reference_url},
        )
        return task

    async def approve(self, task: Task, commissioner_id: int) -> ApprovalResult:
        """Commissioner approves a submitted task."""
        project = await self.invoices.get_project(task.project_id)
        if commissioner_id != project.commissioner_id:
            raise UnauthorizedError(
                detail=f"User {commissioner_id} is not the commissioner on project {project.project_id}",
            )
        self._ensure_work_allowed(project)
        TaskStateMachine.validate_transition(task.status, TaskStatus.APPROVED)

        task.status = TaskStatus.APPROVED.value
        task.approved_at = utcnow()
        task.approved_by = commissioner_id
        await flush_changes(self.session, f"Task {task.task_id}")
        logger.info("Task %s: submitted -> approved", task.task_id)

        invoice = await self.invoices.create_task_completion_invoice(project, task)
        await self.emitter.emit(
            EventType.TASK_APPROVED,
            actor_id=project.commissioner_id,
            target_id=project.freelancer_id,
            project_id=project.project_id,
            context={"taskId": task.task_id, "invoiceNumber": invoice.invoice_number},
        )
        completion = await self.completion.check_completion(project)
        return ApprovalResult(task=task, invoice=invoice, completion=completion)

    def _ensure_work_allowed(self, project: Project) -> None:
        if project.status == ProjectStatus.PAUSED.value:
            raise ProjectPausedError(detail=f"Project {project.project_id} is paused")
        if not ProjectStateMachine.allows_work(project.status):
            raise ProjectNotEligibleError(
                detail=f"Project {project.project_id} is {project.status}",
            )
