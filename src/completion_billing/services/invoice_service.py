"""Invoice lifecycle for completion-based projects.

Three invoice kinds exist per project: one upfront deposit, one invoice
per approved task, and one final settlement. Creation is idempotent: at
most one invoice exists per ``(project, billing_key)`` and a repeated call
returns the invoice already stored.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.calculators import (
    BillingTarget,
    BudgetBreakdown,
    BudgetPolicy,
    Completion,
    Final,
    InvoiceKind,
    Upfront,
    compute_final_amount,
    compute_per_task_amount,
    compute_upfront,
)
from completion_billing.config import get_settings
from completion_billing.errors import (
    DuplicateInvoiceError,
    InvoiceNotFoundError,
    ProjectNotEligibleError,
    ProjectNotFoundError,
    ReconciliationRequiredError,
    TaskNotApprovedError,
    TaskNotFoundError,
)
from completion_billing.models import Invoice, Project, Task
from completion_billing.services.state_machine import TaskStatus

logger = logging.getLogger(__name__)


class InvoiceService:
    """Creates and looks up invoices for completion-based projects."""

    def __init__(self, session: AsyncSession, policy: BudgetPolicy | None = None):
        self.session = session
        self.policy = policy or get_settings().budget_policy()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_project(self, project_id: int) -> Project:
        project = await self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(detail=f"Project {project_id} not found")
        return project

    async def get_task(self, task_id: int) -> Task:
        task = await self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFoundError(detail=f"Task {task_id} not found")
        return task

    async def get_invoice(self, invoice_number: str) -> Invoice:
        invoice = await self.session.get(Invoice, invoice_number)
        if invoice is None:
            raise InvoiceNotFoundError(detail=f"Invoice {invoice_number} not found")
        return invoice

    async def find(self, project_id: int, target: BillingTarget) -> Invoice | None:
        """Invoice already stored for a billing target, if any."""
        result = await self.session.execute(
            select(Invoice).where(
                Invoice.project_id == project_id,
                Invoice.billing_key == target.billing_key,
            )
        )
        return result.scalar_one_or_none()

    async def list_invoices(self, project_id: int) -> list[Invoice]:
        result = await self.session.execute(
            select(Invoice)
            .where(Invoice.project_id == project_id)
            .order_by(Invoice.created_at, Invoice.invoice_number)
        )
        return list(result.scalars().all())

    async def count_unapproved_tasks(self, project_id: int) -> int:
        result = await self.session.execute(
            select(func.count(Task.task_id)).where(
                Task.project_id == project_id,
                Task.status != TaskStatus.APPROVED.value,
            )
        )
        return int(result.scalar_one())

    async def breakdown(self, project: Project) -> BudgetBreakdown:
        """How much of the project's budget is invoiced and paid."""
        invoices = await self.list_invoices(project.project_id)
        by_kind: dict[str, Decimal] = {kind.value: Decimal("0") for kind in InvoiceKind}
        paid = Decimal("0")
        for invoice in invoices:
            by_kind[invoice.kind] += invoice.amount
            if invoice.is_paid:
                paid += invoice.amount
        return BudgetBreakdown(
            total_budget=project.total_budget,
            upfront_amount=by_kind[InvoiceKind.UPFRONT.value],
            completion_invoiced=by_kind[InvoiceKind.COMPLETION.value],
            final_invoiced=by_kind[InvoiceKind.FINAL.value],
            paid=paid,
        )

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_upfront_invoice(self, project: Project) -> Invoice:
        """Create the upfront deposit invoice, or return the existing one."""
        self._ensure_completion_project(project)
        target = Upfront()
        existing = await self.find(project.project_id, target)
        if existing is not None:
            return existing
        if project.status != "ongoing":
            raise ProjectNotEligibleError(
                detail=f"Upfront invoice requires an active project, project is {project.status}",
            )

        amount = compute_upfront(project.total_budget, self.policy)
        percent = int((self.policy.upfront_rate * 100).to_integral_value())
        return await self._insert(
            project,
            target,
            amount,
            description=f"Upfront payment ({percent}%) for {project.title}",
        )

    async def create_task_completion_invoice(self, project: Project, task: Task) -> Invoice:
        """Create the invoice for an approved task, or return the existing one.

        The amount splits the budget not yet billed by the upfront and
        earlier task invoices across the tasks still awaiting approval, so
        it depends on approval order. The last task takes whatever is left.
        """
        self._ensure_completion_project(project)
        if task.project_id != project.project_id:
            raise TaskNotFoundError(
                detail=f"Task {task.task_id} does not belong to project {project.project_id}",
            )
        if task.status != TaskStatus.APPROVED.value:
            raise TaskNotApprovedError(
                detail=f"Task {task.task_id} is {task.status}, not approved",
            )

        target = Completion(task.task_id)
        existing = await self.find(project.project_id, target)
        if existing is not None:
            return existing

        upfront = await self.find(project.project_id, Upfront())
        if upfront is None:
            raise ProjectNotEligibleError(
                detail=f"Project {project.project_id} has no upfront invoice yet",
            )

        billed = await self._sum_amounts(project.project_id, InvoiceKind.COMPLETION)
        remaining = project.total_budget - upfront.amount - billed
        if remaining < 0:
            logger.error(
                "Project %s over-billed: budget %s, upfront %s, task invoices %s",
                project.project_id,
                project.total_budget,
                upfront.amount,
                billed,
            )
            raise ReconciliationRequiredError(
                detail=f"Project {project.project_id} invoices exceed its budget",
            )

        divisor = max(await self.count_unapproved_tasks(project.project_id), 1)
        amount = compute_per_task_amount(remaining, divisor, self.policy)
        if amount == 0:
            logger.warning(
                "Task %s of project %s invoiced at zero, budget already billed",
                task.task_id,
                project.project_id,
            )
        return await self._insert(
            project,
            target,
            amount,
            description=f"Completion of task: {task.title}",
        )

    async def create_final_invoice(self, project: Project) -> Invoice | None:
        """Create the final settlement invoice, or return the existing one.

        Returns None when earlier invoices already cover the whole budget.
        """
        self._ensure_completion_project(project)
        target = Final()
        existing = await self.find(project.project_id, target)
        if existing is not None:
            return existing

        unapproved = await self.count_unapproved_tasks(project.project_id)
        if unapproved:
            raise ProjectNotEligibleError(
                detail=f"Project {project.project_id} has {unapproved} unapproved task(s)",
            )

        prior = await self._sum_amounts(project.project_id)
        amount = compute_final_amount(project.total_budget, prior)
        if amount < 0:
            logger.error(
                "Project %s invoiced %s against budget %s",
                project.project_id,
                prior,
                project.total_budget,
            )
            raise ReconciliationRequiredError(
                detail=f"Project {project.project_id} invoices exceed its budget",
            )
        if amount == 0:
            logger.info(
                "Project %s fully invoiced, no final invoice needed", project.project_id
            )
            return None

        return await self._insert(
            project,
            target,
            amount,
            description=f"Final payment for {project.title}",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ensure_completion_project(self, project: Project) -> None:
        if not project.is_completion:
            raise ProjectNotEligibleError(
                detail=(
                    f"Project {project.project_id} uses {project.invoicing_method} "
                    "invoicing, not completion"
                ),
            )

    async def _sum_amounts(self, project_id: int, kind: InvoiceKind | None = None) -> Decimal:
        stmt = select(func.coalesce(func.sum(Invoice.amount), 0)).where(
            Invoice.project_id == project_id
        )
        if kind is not None:
            stmt = stmt.where(Invoice.kind == kind.value)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def _insert(
        self,
        project: Project,
        target: BillingTarget,
        amount: Decimal,
        description: str,
    ) -> Invoice:
        """Insert an invoice; a racing insert for the same target wins."""
        invoice = Invoice(
            invoice_number=target.invoice_number(project.project_id),
            project_id=project.project_id,
            kind=target.kind.value,
            task_id=target.task_id,
            billing_key=target.billing_key,
            amount=amount,
            status="unpaid",
            freelancer_id=project.freelancer_id,
            commissioner_id=project.commissioner_id,
            description=description,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(invoice)
        except IntegrityError as e:
            existing = await self.find(project.project_id, target)
            if existing is not None:
                logger.info("Invoice %s created concurrently", existing.invoice_number)
                return existing
            raise DuplicateInvoiceError(
                detail=f"Invoice {invoice.invoice_number} violates uniqueness",
            ) from e

        logger.info(
            "Created %s invoice %s for project %s: %s",
            target.kind.value,
            invoice.invoice_number,
            project.project_id,
            amount,
        )
        return invoice
