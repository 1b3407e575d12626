"""Tests for the invoice lifecycle."""

from decimal import Decimal

import pytest

from completion_billing.calculators import Completion
from completion_billing.errors import (
    ConflictError,
    ProjectNotEligibleError,
    ReconciliationRequiredError,
    StateError,
    TaskNotApprovedError,
)

from .conftest import COMMISSIONER_ID


pytestmark = pytest.mark.asyncio


class TestUpfrontInvoice:
    """Test upfront invoice creation."""

    async def test_upfront_is_twelve_percent(self, make_project, project_service):
        project = await make_project(total_budget=10000, total_tasks=4)

        invoice = await project_service.invoices.create_upfront_invoice(project)

        assert invoice.invoice_number == f"INV-{project.project_id}-UPF"
        assert invoice.kind == "upfront"
        assert invoice.task_id is None
        assert invoice.amount == Decimal("1200")
        assert invoice.status == "unpaid"
        assert invoice.freelancer_id == project.freelancer_id
        assert invoice.commissioner_id == COMMISSIONER_ID

    async def test_second_call_returns_existing(self, make_project, project_service):
        project = await make_project()
        invoices = project_service.invoices

        first = await invoices.create_upfront_invoice(project)
        second = await invoices.create_upfront_invoice(project)

        assert second is first
        assert len(await invoices.list_invoices(project.project_id)) == 1

    async def test_milestone_project_not_eligible(self, make_project, project_service):
        project = await make_project(invoicing_method="milestone")

        with pytest.raises(ProjectNotEligibleError) as exc_info:
            await project_service.invoices.create_upfront_invoice(project)

        assert isinstance(exc_info.value, StateError)
        assert exc_info.value.code == "ProjectNotEligible"


class TestTaskCompletionInvoice:
    """Test per-task invoices."""

    async def test_task_must_be_approved(self, make_project, project_service, task_service):
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]

        with pytest.raises(TaskNotApprovedError) as exc_info:
            await project_service.invoices.create_task_completion_invoice(project, task)

        assert exc_info.value.code == "TaskNotApproved"

    async def test_upfront_must_exist_first(self, make_project, approve_task, task_service):
        project = await make_project()
        task = (await task_service.list_tasks(project.project_id))[0]

        with pytest.raises(ProjectNotEligibleError):
            await approve_task(task)

    async def test_amount_uses_unapproved_count_at_call_time(
        self, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=10000, total_tasks=4)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        tasks = await task_service.list_tasks(project.project_id)

        first = await approve_task(tasks[0])
        second = await approve_task(tasks[1])

        # 8800 / 3 remaining tasks, then 5867 / 2
        assert first.invoice.amount == Decimal("2933")
        assert second.invoice.amount == Decimal("2934")
        assert first.invoice.invoice_number == f"INV-{project.project_id}-T{tasks[0].task_id}"

    async def test_idempotent_per_task(self, make_project, project_service, task_service, approve_task):
        """Calling create twice for the same approved task yields one invoice."""
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        result = await approve_task(task)

        again = await project_service.invoices.create_task_completion_invoice(project, task)

        assert again.invoice_number == result.invoice.invoice_number
        assert again.amount == result.invoice.amount
        stored = [
            i
            for i in await project_service.invoices.list_invoices(project.project_id)
            if i.kind == "completion"
        ]
        assert len(stored) == 1

    async def test_racing_insert_returns_existing(
        self, session, make_project, project_service, task_service, approve_task
    ):
        """A duplicate insert for the same billing key resolves to the stored invoice."""
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        result = await approve_task(task)

        # Forget the stored row so the insert reaches the database
        session.expunge(result.invoice)
        invoices = project_service.invoices
        existing = await invoices._insert(
            project, Completion(task.task_id), Decimal("1"), description="duplicate"
        )

        assert existing.invoice_number == result.invoice.invoice_number
        assert existing.amount == result.invoice.amount

    async def test_over_billed_project_needs_reconciliation(
        self, session, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=10000, total_tasks=2)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        tasks = await task_service.list_tasks(project.project_id)
        first = await approve_task(tasks[0])

        # Corrupt the first invoice so the budget is exceeded
        first.invoice.amount = Decimal("9000")
        await session.flush()

        with pytest.raises(ReconciliationRequiredError) as exc_info:
            await approve_task(tasks[1])

        assert isinstance(exc_info.value, ConflictError)


class TestFinalInvoice:
    """Test final settlement invoices."""

    async def test_requires_all_tasks_approved(self, make_project, project_service):
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        with pytest.raises(ProjectNotEligibleError):
            await project_service.invoices.create_final_invoice(project)

    async def test_covers_what_task_invoices_left(
        self, session, make_project, project_service, task_service
    ):
        project = await make_project(total_budget=10000, total_tasks=2)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        for task in await task_service.list_tasks(project.project_id):
            task.status = "approved"
        await session.flush()

        invoices = project_service.invoices
        final = await invoices.create_final_invoice(project)
        again = await invoices.create_final_invoice(project)

        assert final.invoice_number == f"INV-{project.project_id}-FIN"
        assert final.amount == Decimal("8800")
        assert again is final

    async def test_no_final_invoice_when_budget_used(
        self, make_project, project_service, task_service, approve_task
    ):
        """Scenario B: the single task takes the whole remaining budget."""
        project = await make_project(total_budget=5000, total_tasks=1)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]

        result = await approve_task(task)

        assert result.invoice.amount == Decimal("4400")
        assert result.completion.completed is True
        assert result.completion.final_invoice is None
        invoices = await project_service.invoices.list_invoices(project.project_id)
        assert sorted(i.amount for i in invoices) == [Decimal("600"), Decimal("4400")]

    async def test_breakdown(self, make_project, project_service, task_service, approve_task):
        project = await make_project(total_budget=10000, total_tasks=4)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        await approve_task(task)

        breakdown = await project_service.invoices.breakdown(project)

        assert breakdown.upfront_amount == Decimal("1200")
        assert breakdown.completion_invoiced == Decimal("2933")
        assert breakdown.paid == Decimal("1200")
        assert breakdown.remaining == Decimal("5867")

