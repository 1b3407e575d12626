"""Project workflows: activation, pause/resume, upfront and final payouts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.calculators import BudgetPolicy, Final, InvoiceKind, compute_upfront
from completion_billing.errors import (
    InvalidTaskCountError,
    InvoiceAlreadyPaidError,
    ProjectNotEligibleError,
    UnauthorizedError,
    ValidationError,
)
from completion_billing.events import EventType, NotificationEmitter
from completion_billing.models import Contact, Invoice, Project, Task
from completion_billing.services.invoice_service import InvoiceService
from completion_billing.services.locking_service import EntityLockRegistry
from completion_billing.services.payment_service import PaymentResult, PaymentService
from completion_billing.services.persistence import flush_changes
from completion_billing.services.state_machine import (
    ProjectStateMachine,
    ProjectStatus,
    TaskStatus,
)

logger = logging.getLogger(__name__)

INVOICING_METHODS = ("completion", "milestone")


@dataclass
class PaymentStatus:
    """Billing progress of a project."""

    project_id: int
    status: str
    total_budget: Decimal
    upfront_amount: Decimal
    upfront_paid: bool
    invoiced: Decimal
    paid: Decimal
    remaining: Decimal
    total_tasks: int
    approved_tasks: int
    invoices: list[Invoice] = field(default_factory=list)
    ready_for_final: bool = False
    reason: str | None = None

    @property
    def percent_paid(self) -> int:
        if self.total_budget <= 0:
            return 0
        return int((self.paid * 100 / self.total_budget).to_integral_value())


class ProjectService:
    """Project-level operations of completion billing."""

    def __init__(
        self,
        session: AsyncSession,
        policy: BudgetPolicy | None = None,
        emitter: NotificationEmitter | None = None,
        locks: EntityLockRegistry | None = None,
    ):
        self.session = session
        self.invoices = InvoiceService(session, policy)
        self.emitter = emitter or NotificationEmitter(session)
        self.payments = PaymentService(session, self.invoices, self.emitter, locks)

    # =========================================================================
    # Activation
    # =========================================================================

    async def create_project(
        self,
        commissioner_id: int,
        *,
        title: str,
        total_budget: Decimal,
        total_tasks: int,
        freelancer_id: int,
        description: str = "",
        organization_id: int | None = None,
        invoicing_method: str = "completion",
        task_titles: Sequence[str] | None = None,
        commissioner_name: str | None = None,
        freelancer_name: str | None = None,
        organization_name: str | None = None,
    ) -> Project:
        """Activate a project with its tasks and notify the freelancer."""
        title = (title or "").strip()
        if not title:
            raise ValidationError(detail="Project title is required")
        if invoicing_method not in INVOICING_METHODS:
            raise ValidationError(detail=f"Unknown invoicing method '{invoicing_method}'")
        if total_tasks is None or total_tasks <= 0:
            raise InvalidTaskCountError(detail=f"Total tasks must be positive, got {total_tasks}")
        if task_titles is not None and len(task_titles) != total_tasks:
            raise ValidationError(
                detail=f"Got {len(task_titles)} task titles for {total_tasks} tasks",
            )
        if freelancer_id == commissioner_id:
            raise ValidationError(detail="Commissioner and freelancer must differ")
        # Validates the budget before anything is written
        compute_upfront(total_budget, self.invoices.policy)

        project = Project(
            title=title,
            description=description,
            commissioner_id=commissioner_id,
            freelancer_id=freelancer_id,
            organization_id=organization_id,
            commissioner_name=commissioner_name,
            freelancer_name=freelancer_name,
            organization_name=organization_name,
            total_budget=Decimal(str(total_budget)),
            invoicing_method=invoicing_method,
            status=ProjectStatus.ONGOING.value,
            total_tasks=total_tasks,
            pause_count=0,
        )
        self.session.add(project)
        await flush_changes(self.session, "Project")

        for position in range(1, total_tasks + 1):
            task_title = task_titles[position - 1] if task_titles else f"Task {position}"
            self.session.add(
                Task(
                    project_id=project.project_id,
                    title=task_title,
                    position=position,
                    status=TaskStatus.PENDING.value,
                )
            )
        await flush_changes(self.session, f"Tasks of project {project.project_id}")
        await self.add_contact(commissioner_id, freelancer_id)

        logger.info(
            "Activated project %s for commissioner %s: budget %s, %s task(s)",
            project.project_id,
            commissioner_id,
            project.total_budget,
            total_tasks,
        )
        await self.emitter.emit(
            EventType.PROJECT_ACTIVATED,
            actor_id=commissioner_id,
            target_id=freelancer_id,
            project_id=project.project_id,
        )
        return project

    async def add_contact(self, commissioner_id: int, freelancer_id: int) -> Contact:
        """Put a freelancer in a commissioner's network (idempotent)."""
        result = await self.session.execute(
            select(Contact).where(
                Contact.commissioner_id == commissioner_id,
                Contact.freelancer_id == freelancer_id,
            )
        )
        contact = result.scalar_one_or_none()
        if contact is not None:
            return contact
        contact = Contact(commissioner_id=commissioner_id, freelancer_id=freelancer_id)
        try:
            async with self.session.begin_nested():
                self.session.add(contact)
        except IntegrityError:
            result = await self.session.execute(
                select(Contact).where(
                    Contact.commissioner_id == commissioner_id,
                    Contact.freelancer_id == freelancer_id,
                )
            )
            return result.scalar_one()
        return contact

    # =========================================================================
    # Pause / resume
    # =========================================================================

    async def pause(self, project_id: int, commissioner_id: int) -> Project:
        return await self._change_status(project_id, commissioner_id, ProjectStatus.PAUSED)

    async def resume(self, project_id: int, commissioner_id: int) -> Project:
        return await self._change_status(project_id, commissioner_id, ProjectStatus.ONGOING)

    async def _change_status(
        self,
        project_id: int,
        commissioner_id: int,
        to_status: ProjectStatus,
    ) -> Project:
        project = await self.invoices.get_project(project_id)
        self.require_commissioner(project, commissioner_id)
        from_status = project.status
        ProjectStateMachine.validate_transition(from_status, to_status)

        resuming = ProjectStateMachine.is_resume(from_status, to_status)
        project.status = to_status.value
        if not resuming:
            project.pause_count += 1
        await flush_changes(self.session, f"Project {project_id}")
        logger.info("Project %s: %s -> %s", project_id, from_status, to_status.value)

        await self.emitter.emit(
            EventType.PROJECT_RESUMED if resuming else EventType.PROJECT_PAUSED,
            actor_id=project.commissioner_id,
            target_id=project.freelancer_id,
            project_id=project_id,
            context={"pauseCount": project.pause_count},
        )
        return project

    # =========================================================================
    # Invoices and payouts
    # =========================================================================

    async def execute_upfront(self, project_id: int, commissioner_id: int) -> PaymentResult:
        """Create and pay the upfront deposit invoice."""
        project = await self.invoices.get_project(project_id)
        self.require_commissioner(project, commissioner_id)
        invoice = await self.invoices.create_upfront_invoice(project)
        if invoice.is_paid:
            raise InvoiceAlreadyPaidError(
                detail=f"Upfront invoice {invoice.invoice_number} is already paid",
            )
        return await self.payments.execute_payment(invoice.invoice_number, commissioner_id)

    async def create_manual_invoice(self, project_id: int, task_id: int, user_id: int) -> Invoice:
        """Invoice an approved task on the freelancer's request and notify the commissioner."""
        project = await self.invoices.get_project(project_id)
        self.require_freelancer(project, user_id)
        task = await self.invoices.get_task(task_id)
        invoice = await self.invoices.create_task_completion_invoice(project, task)
        await self.emitter.emit(
            EventType.INVOICE_RECEIVED,
            actor_id=project.freelancer_id,
            target_id=project.commissioner_id,
            project_id=project_id,
            context={"invoiceNumber": invoice.invoice_number, "taskId": task_id},
        )
        return invoice

    async def execute_final(self, project_id: int, commissioner_id: int) -> PaymentResult | None:
        """Pay the final settlement of a completed project.

        Returns None when there is nothing left to settle.
        """
        project = await self.invoices.get_project(project_id)
        self.require_commissioner(project, commissioner_id)
        if project.status != ProjectStatus.COMPLETED.value:
            raise ProjectNotEligibleError(
                detail=f"Project {project_id} is {project.status}, not completed",
            )
        invoice = await self.invoices.find(project_id, Final())
        if invoice is None:
            invoice = await self.invoices.create_final_invoice(project)
        if invoice is None:
            logger.info("Project %s has no final balance to pay", project_id)
            return None
        if invoice.is_paid:
            raise InvoiceAlreadyPaidError(
                detail=f"Final invoice {invoice.invoice_number} is already paid",
            )
        return await self.payments.execute_payment(invoice.invoice_number, commissioner_id)

    async def payment_status(self, project_id: int, user_id: int) -> PaymentStatus:
        project = await self.invoices.get_project(project_id)
        self.require_party(project, user_id)
        invoices = await self.invoices.list_invoices(project_id)
        breakdown = await self.invoices.breakdown(project)
        unapproved = await self.invoices.count_unapproved_tasks(project_id)
        upfront = next((i for i in invoices if i.kind == InvoiceKind.UPFRONT.value), None)

        ready, reason = self._final_readiness(project, invoices, unapproved)
        return PaymentStatus(
            project_id=project_id,
            status=project.status,
            total_budget=project.total_budget,
            upfront_amount=breakdown.upfront_amount,
            upfront_paid=bool(upfront and upfront.is_paid),
            invoiced=breakdown.invoiced,
            paid=breakdown.paid,
            remaining=breakdown.remaining,
            total_tasks=project.total_tasks,
            approved_tasks=project.total_tasks - unapproved,
            invoices=invoices,
            ready_for_final=ready,
            reason=reason,
        )

    @staticmethod
    def _final_readiness(
        project: Project, invoices: list[Invoice], unapproved: int
    ) -> tuple[bool, str | None]:
        if unapproved:
            return False, f"{unapproved} task(s) awaiting approval"
        if project.status != ProjectStatus.COMPLETED.value:
            return False, f"Project is {project.status}"
        final = next((i for i in invoices if i.kind == InvoiceKind.FINAL.value), None)
        if final is None:
            return False, "No final balance left to pay"
        if final.is_paid:
            return False, "Final payment already made"
        return True, None

    # =========================================================================
    # Authorization
    # =========================================================================

    @staticmethod
    def require_commissioner(project: Project, user_id: int) -> None:
        if user_id != project.commissioner_id:
            raise UnauthorizedError(
                detail=f"User {user_id} is not the commissioner on project {project.project_id}",
            )

    @staticmethod
    def require_freelancer(project: Project, user_id: int) -> None:
        if user_id != project.freelancer_id:
            raise UnauthorizedError(
                detail=f"User {user_id} is not the freelancer on project {project.project_id}",
            )

    @staticmethod
    def require_party(project: Project, user_id: int) -> None:
        if user_id not in (project.commissioner_id, project.freelancer_id):
            raise UnauthorizedError(
                detail=f"User {user_id} is not a party to project {project.project_id}",
            )

