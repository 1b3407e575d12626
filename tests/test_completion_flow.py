"""End-to-end completion billing flows through the services."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from completion_billing.calculators import is_conserved
from completion_billing.errors import (
    InvalidTransitionError,
    ProjectNotEligibleError,
    ProjectPausedError,
    StateError,
    UnauthorizedError,
)
from completion_billing.models import NotificationEvent

from .conftest import COMMISSIONER_ID, FREELANCER_ID


pytestmark = pytest.mark.asyncio


async def _types_for(session, project_id, target_id):
    result = await session.execute(
        select(NotificationEvent.type).where(
            NotificationEvent.project_id == project_id,
            NotificationEvent.target_id == target_id,
        )
    )
    return list(result.scalars())


class TestScenarioA:
    """10000 budget, 4 tasks."""

    async def test_invoices_reconcile_to_budget(
        self, session, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=10000, total_tasks=4)
        upfront = await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        assert upfront.invoice.amount == Decimal("1200")

        results = []
        for task in await task_service.list_tasks(project.project_id):
            results.append(await approve_task(task))

        amounts = [r.invoice.amount for r in results]
        assert amounts == [Decimal("2933"), Decimal("2934"), Decimal("2933"), Decimal("0")]

        last = results[-1]
        assert last.completion.completed is True
        # Task invoices already cover the budget, nothing is left to settle
        assert last.completion.final_invoice is None

        await session.refresh(project)
        assert project.status == "completed"
        assert project.completed_at is not None

        invoices = await project_service.invoices.list_invoices(project.project_id)
        assert sum((i.amount for i in invoices), Decimal("0")) == Decimal("10000")
        assert is_conserved(project.total_budget, [i.amount for i in invoices])

    async def test_only_last_approval_completes(
        self, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=10000, total_tasks=4)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        tasks = await task_service.list_tasks(project.project_id)

        completed = [(await approve_task(task)).completion.completed for task in tasks]

        assert completed == [False, False, False, True]


class TestFinalSettlement:
    """Final payment when task invoices left part of the budget."""

    async def test_final_payment_pays_remaining_budget(
        self, session, make_project, project_service, task_service
    ):
        project = await make_project(total_budget=10000, total_tasks=2)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        for task in await task_service.list_tasks(project.project_id):
            task.status = "approved"
        await session.flush()

        completion = await task_service.completion.check_completion(project)
        assert completion.completed is True
        assert completion.final_invoice.amount == Decimal("8800")

        result = await project_service.execute_final(project.project_id, COMMISSIONER_ID)

        assert result.invoice.invoice_number == f"INV-{project.project_id}-FIN"
        assert result.invoice.status == "paid"
        assert result.wallet.lifetime_earnings == Decimal("10000")

        final_message = (
            await session.execute(
                select(NotificationEvent.message).where(
                    NotificationEvent.type == "completion.final_payment",
                    NotificationEvent.target_id == FREELANCER_ID,
                )
            )
        ).scalar_one()
        assert final_message == (
            "Acme Corp has paid you $8,800 for Brand Identity final payment "
            "(remaining 88% of budget)."
        )

    async def test_final_requires_completed_project(self, make_project, project_service):
        project = await make_project()

        with pytest.raises(ProjectNotEligibleError):
            await project_service.execute_final(project.project_id, COMMISSIONER_ID)

    async def test_nothing_to_settle(self, make_project, project_service, task_service, approve_task):
        project = await make_project(total_budget=5000, total_tasks=1)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        await approve_task(task)

        assert await project_service.execute_final(project.project_id, COMMISSIONER_ID) is None


class TestTaskTransitions:
    """Task approval gating."""

    async def test_approving_pending_task_fails(
        self, make_project, project_service, task_service
    ):
        """Scenario D: approval without submission is an invalid transition."""
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]

        with pytest.raises(InvalidTransitionError) as exc_info:
            await task_service.approve(task, COMMISSIONER_ID)

        assert isinstance(exc_info.value, StateError)
        assert exc_info.value.code == "InvalidTransition"
        assert task.status == "pending"

    async def test_submit_records_reference(self, make_project, task_service):
        project = await make_project()
        task = (await task_service.list_tasks(project.project_id))[0]

        await task_service.submit(task, FREELANCER_ID, "https://example.com/draft")

        assert task.status == "submitted"
        assert task.reference_url == "https://example.com/draft"
        assert task.submitted_at is not None

    async def test_only_project_parties_act(self, make_project, task_service):
        project = await make_project()
        task = (await task_service.list_tasks(project.project_id))[0]

        with pytest.raises(UnauthorizedError):
            await task_service.submit(task, COMMISSIONER_ID)

        await task_service.submit(task, FREELANCER_ID)
        with pytest.raises(UnauthorizedError):
            await task_service.approve(task, FREELANCER_ID)

    async def test_only_freelancer_sends_manual_invoice(
        self, make_project, project_service, task_service, approve_task
    ):
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        await approve_task(task)

        with pytest.raises(UnauthorizedError):
            await project_service.create_manual_invoice(
                project.project_id, task.task_id, COMMISSIONER_ID
            )

    async def test_completed_project_is_monotonic(
        self, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=5000, total_tasks=1)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        await approve_task(task)

        again = await task_service.completion.check_completion(project)
        assert again.already_completed is True
        assert again.final_invoice is None

        with pytest.raises((InvalidTransitionError, ProjectNotEligibleError)):
            await task_service.submit(task, FREELANCER_ID)
        assert task.status == "approved"


class TestPauseResume:
    """Pausing blocks work on a project."""

    async def test_paused_project_rejects_work(self, make_project, project_service, task_service):
        project = await make_project()
        task = (await task_service.list_tasks(project.project_id))[0]

        await project_service.pause(project.project_id, COMMISSIONER_ID)
        assert project.status == "paused"
        assert project.pause_count == 1

        with pytest.raises(ProjectPausedError) as exc_info:
            await task_service.submit(task, FREELANCER_ID)
        assert exc_info.value.code == "ProjectPaused"

        await project_service.resume(project.project_id, COMMISSIONER_ID)
        await task_service.submit(task, FREELANCER_ID)
        assert task.status == "submitted"

    async def test_only_commissioner_pauses(self, make_project, project_service):
        project = await make_project()

        with pytest.raises(UnauthorizedError):
            await project_service.pause(project.project_id, FREELANCER_ID)

    async def test_cannot_resume_ongoing_project(self, make_project, project_service):
        project = await make_project()

        with pytest.raises(InvalidTransitionError):
            await project_service.resume(project.project_id, COMMISSIONER_ID)

    async def test_each_pause_notifies(self, session, make_project, project_service):
        project = await make_project()

        for _ in range(2):
            await project_service.pause(project.project_id, COMMISSIONER_ID)
            await project_service.resume(project.project_id, COMMISSIONER_ID)

        types = await _types_for(session, project.project_id, FREELANCER_ID)
        assert types.count("completion.project_paused") == 2
        assert types.count("completion.project_resumed") == 2

    async def test_resume_keeps_pause_count(self, make_project, project_service):
        project = await make_project()

        await project_service.pause(project.project_id, COMMISSIONER_ID)
        await project_service.resume(project.project_id, COMMISSIONER_ID)

        assert project.status == "ongoing"
        assert project.pause_count == 1


class TestProjectCreation:
    """Project activation."""

    async def test_creates_tasks_and_contact(self, session, make_project, task_service):
        project = await make_project(total_tasks=3, task_titles=["Logo", "Palette", "Guide"])

        tasks = await task_service.list_tasks(project.project_id)
        assert [t.title for t in tasks] == ["Logo", "Palette", "Guide"]
        assert all(t.status == "pending" for t in tasks)

        types = await _types_for(session, project.project_id, FREELANCER_ID)
        assert types == ["completion.project_activated"]

    async def test_default_task_titles(self, make_project, task_service):
        project = await make_project(total_tasks=2)

        tasks = await task_service.list_tasks(project.project_id)
        assert [t.title for t in tasks] == ["Task 1", "Task 2"]

    @pytest.mark.parametrize(
        "kwargs, code",
        [
            ({"total_budget": 0}, "InvalidBudget"),
            ({"total_tasks": 0}, "InvalidTaskCount"),
            ({"title": "  "}, "ValidationError"),
            ({"total_tasks": 2, "task_titles": ["Only one"]}, "ValidationError"),
            ({"freelancer_id": COMMISSIONER_ID}, "ValidationError"),
        ],
    )
    async def test_rejects_bad_input(self, make_project, kwargs, code):
        with pytest.raises(Exception) as exc_info:
            await make_project(**kwargs)

        assert exc_info.value.code == code
