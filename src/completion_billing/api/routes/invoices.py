"""Invoice endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from completion_billing.api.dependencies import CurrentCaller, DbSession, Locks
from completion_billing.api.schemas import (
    ErrorResponse,
    InvoiceResponse,
    ManualInvoiceRequest,
)
from completion_billing.errors import UnauthorizedError
from completion_billing.services import ProjectService, commit_changes

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post(
    "/completion/create-manual",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_manual_invoice(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: ManualInvoiceRequest,
) -> InvoiceResponse:
    """Invoice an approved task. Returns the existing invoice if there is one."""
    if not caller.is_freelancer:
        raise UnauthorizedError(detail="Only the freelancer can send invoices")
    async with locks.hold("project", payload.project_id):
        invoice = await ProjectService(db, locks=locks).create_manual_invoice(
            payload.project_id, payload.task_id, caller.user_id
        )
        await commit_changes(db, f"Invoice for task {payload.task_id}")
    return InvoiceResponse.model_validate(invoice)


@router.get(
    "/{invoice_number}",
    response_model=InvoiceResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_invoice(
    db: DbSession,
    caller: CurrentCaller,
    invoice_number: Annotated[str, Path(min_length=1)],
) -> InvoiceResponse:
    """Get an invoice by number."""
    invoice = await ProjectService(db).invoices.get_invoice(invoice_number)
    if caller.user_id not in (invoice.commissioner_id, invoice.freelancer_id):
        raise UnauthorizedError(detail=f"User {caller.user_id} cannot view invoice {invoice_number}")
    return InvoiceResponse.model_validate(invoice)
