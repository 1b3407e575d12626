"""Task submission and approval endpoints."""

from fastapi import APIRouter

from completion_billing.api.dependencies import CurrentCaller, DbSession, Locks
from completion_billing.api.schemas import (
    ErrorResponse,
    InvoiceResponse,
    TaskActionRequest,
    TaskActionResponse,
)
from completion_billing.errors import UnauthorizedError
from completion_billing.models import Task
from completion_billing.services import InvoiceService, TaskService, commit_changes

router = APIRouter(prefix="/project-tasks", tags=["tasks"])


@router.post(
    "/completion/submit",
    response_model=TaskActionResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def task_action(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: TaskActionRequest,
) -> TaskActionResponse:
    """Submit a task (freelancer) or approve it (commissioner).

    Approval invoices the task and completes the project when it was the
    last one outstanding.
    """
    invoices = InvoiceService(db)
    project_id = (await invoices.get_task(payload.task_id)).project_id
    # End the lookup's transaction so a waiting request holds no database lock
    await db.rollback()
    service = TaskService(db, invoices)

    async with locks.hold("project", project_id):
        # Reload under the lock, another request may have moved the task on
        task = await db.get(Task, payload.task_id, populate_existing=True)

        if payload.action == "submit":
            if not caller.is_freelancer:
                raise UnauthorizedError(detail="Only the freelancer can submit tasks")
            await service.submit(task, caller.user_id, payload.reference_url)
            await commit_changes(db, f"Task {task.task_id}")
            return TaskActionResponse(task_id=task.task_id, status=task.status)

        if not caller.is_commissioner:
            raise UnauthorizedError(detail="Only the commissioner can approve tasks")
        result = await service.approve(task, caller.user_id)
        await commit_changes(db, f"Approval of task {task.task_id}")

    final_invoice = result.completion.final_invoice
    return TaskActionResponse(
        task_id=task.task_id,
        status=task.status,
        invoice=InvoiceResponse.model_validate(result.invoice),
        project_completed=result.completion.completed,
        final_invoice=InvoiceResponse.model_validate(final_invoice) if final_invoice else None,
    )
