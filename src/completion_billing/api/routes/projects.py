"""Project API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from completion_billing.api.dependencies import CurrentCaller, DbSession, Locks
from completion_billing.api.schemas import (
    ErrorResponse,
    InvoiceListResponse,
    InvoiceResponse,
    PaymentStatusResponse,
    ProjectCreate,
    ProjectCreatedResponse,
    ProjectDetailResponse,
    ProjectResponse,
    ReconciliationResponse,
    TaskResponse,
)
from completion_billing.errors import UnauthorizedError, ValidationError
from completion_billing.services import (
    ProjectService,
    ReconciliationService,
    TaskService,
    commit_changes,
)

router = APIRouter(prefix="/projects", tags=["projects"])

ProjectId = Annotated[int, Path(ge=1)]


@router.post(
    "/completion/create",
    response_model=ProjectCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_project(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: ProjectCreate,
) -> ProjectCreatedResponse:
    """Activate a completion-based project and its tasks."""
    if not caller.is_commissioner:
        raise UnauthorizedError(detail="Only commissioners can create projects")
    if payload.commissioner_id is not None and payload.commissioner_id != caller.user_id:
        raise ValidationError(detail="commissionerId must match the caller")

    service = ProjectService(db, locks=locks)
    project = await service.create_project(
        caller.user_id,
        title=payload.title,
        total_budget=payload.total_budget,
        total_tasks=payload.total_tasks,
        freelancer_id=payload.freelancer_id,
        description=payload.description,
        organization_id=payload.organization_id,
        invoicing_method=payload.invoicing_method,
        task_titles=payload.task_titles,
        commissioner_name=payload.commissioner_name,
        freelancer_name=payload.freelancer_name,
        organization_name=payload.organization_name,
    )
    tasks = await TaskService(db, service.invoices, service.emitter).list_tasks(project.project_id)
    await commit_changes(db, f"Project {project.project_id}")
    return ProjectCreatedResponse(
        project_id=project.project_id,
        status=project.status,
        task_ids=[t.task_id for t in tasks],
    )


@router.get(
    "/{project_id}",
    response_model=ProjectDetailResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project(
    db: DbSession,
    caller: CurrentCaller,
    project_id: ProjectId,
) -> ProjectDetailResponse:
    """Get a project with its tasks."""
    service = ProjectService(db)
    project = await service.invoices.get_project(project_id)
    service.require_party(project, caller.user_id)
    tasks = await TaskService(db, service.invoices, service.emitter).list_tasks(project_id)
    response = ProjectDetailResponse.model_validate(project)
    response.tasks = [TaskResponse.model_validate(t) for t in tasks]
    return response


@router.post(
    "/{project_id}/pause",
    response_model=ProjectResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def pause_project(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    project_id: ProjectId,
) -> ProjectResponse:
    """Pause an ongoing project (commissioner only)."""
    async with locks.hold("project", project_id):
        project = await ProjectService(db, locks=locks).pause(project_id, caller.user_id)
        await commit_changes(db, f"Project {project_id}")
    return ProjectResponse.model_validate(project)


@router.post(
    "/{project_id}/resume",
    response_model=ProjectResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resume_project(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    project_id: ProjectId,
) -> ProjectResponse:
    """Resume a paused project (commissioner only)."""
    async with locks.hold("project", project_id):
        project = await ProjectService(db, locks=locks).resume(project_id, caller.user_id)
        await commit_changes(db, f"Project {project_id}")
    return ProjectResponse.model_validate(project)


@router.get(
    "/{project_id}/payment-status",
    response_model=PaymentStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_payment_status(
    db: DbSession,
    caller: CurrentCaller,
    project_id: ProjectId,
) -> PaymentStatusResponse:
    """Budget, invoiced, paid and remaining amounts of a project."""
    payment_status = await ProjectService(db).payment_status(project_id, caller.user_id)
    return PaymentStatusResponse(
        project_id=payment_status.project_id,
        status=payment_status.status,
        total_budget=payment_status.total_budget,
        upfront_amount=payment_status.upfront_amount,
        upfront_paid=payment_status.upfront_paid,
        invoiced=payment_status.invoiced,
        paid=payment_status.paid,
        remaining=payment_status.remaining,
        percent_paid=payment_status.percent_paid,
        total_tasks=payment_status.total_tasks,
        approved_tasks=payment_status.approved_tasks,
        ready_for_final=payment_status.ready_for_final,
        reason=payment_status.reason,
        invoices=[InvoiceResponse.model_validate(i) for i in payment_status.invoices],
    )


@router.get(
    "/{project_id}/invoices",
    response_model=InvoiceListResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_project_invoices(
    db: DbSession,
    caller: CurrentCaller,
    project_id: ProjectId,
) -> InvoiceListResponse:
    """List a project's invoices."""
    service = ProjectService(db)
    project = await service.invoices.get_project(project_id)
    service.require_party(project, caller.user_id)
    invoices = await service.invoices.list_invoices(project_id)
    return InvoiceListResponse(
        items=[InvoiceResponse.model_validate(i) for i in invoices],
        total=len(invoices),
    )


@router.get(
    "/{project_id}/reconciliation",
    response_model=ReconciliationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def reconcile_project(
    db: DbSession,
    caller: CurrentCaller,
    project_id: ProjectId,
) -> ReconciliationResponse:
    """Check a project's invoices, transactions and wallet for consistency."""
    service = ProjectService(db)
    project = await service.invoices.get_project(project_id)
    service.require_party(project, caller.user_id)
    result = await ReconciliationService(db).reconcile_project(project)
    return ReconciliationResponse(
        project_id=result.project_id,
        success=result.success,
        invoices_checked=result.invoices_checked,
        transactions_checked=result.transactions_checked,
        invoiced_total=result.invoiced_total,
        paid_total=result.paid_total,
        errors=result.errors,
    )
