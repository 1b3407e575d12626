"""Payment endpoints for completion-based projects."""

from fastapi import APIRouter

from completion_billing.api.dependencies import CurrentCaller, DbSession, Locks
from completion_billing.api.schemas import (
    ErrorResponse,
    InvoicePaymentRequest,
    PaymentResponse,
    ProjectPaymentRequest,
)
from completion_billing.services import PaymentResult, ProjectService, commit_changes

router = APIRouter(prefix="/payments/completion", tags=["payments"])

PAYMENT_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _payment_response(result: PaymentResult) -> PaymentResponse:
    return PaymentResponse(
        invoice_number=result.invoice.invoice_number,
        amount=result.invoice.amount,
        status=result.invoice.status,
        transaction_id=result.transaction.transaction_id,
        paid_at=result.invoice.paid_at,
    )


@router.post("/execute-upfront", response_model=PaymentResponse, responses=PAYMENT_ERRORS)
async def execute_upfront(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: ProjectPaymentRequest,
) -> PaymentResponse:
    """Create and pay the upfront deposit of a project."""
    async with locks.hold("project", payload.project_id):
        result = await ProjectService(db, locks=locks).execute_upfront(
            payload.project_id, caller.user_id
        )
        await commit_changes(db, f"Upfront payment of project {payload.project_id}")
    return _payment_response(result)


@router.post("/execute-manual", response_model=PaymentResponse, responses=PAYMENT_ERRORS)
async def execute_manual(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: InvoicePaymentRequest,
) -> PaymentResponse:
    """Pay one invoice."""
    service = ProjectService(db, locks=locks)
    project_id = (await service.invoices.get_invoice(payload.invoice_number)).project_id
    # End the lookup's transaction so a waiting request holds no database lock
    await db.rollback()
    async with locks.hold("project", project_id):
        result = await service.payments.execute_payment(payload.invoice_number, caller.user_id)
        await commit_changes(db, f"Payment of invoice {payload.invoice_number}")
    return _payment_response(result)


@router.post("/execute-final", response_model=PaymentResponse, responses=PAYMENT_ERRORS)
async def execute_final(
    db: DbSession,
    caller: CurrentCaller,
    locks: Locks,
    payload: ProjectPaymentRequest,
) -> PaymentResponse:
    """Pay the final settlement of a completed project."""
    async with locks.hold("project", payload.project_id):
        result = await ProjectService(db, locks=locks).execute_final(
            payload.project_id, caller.user_id
        )
        await commit_changes(db, f"Final payment of project {payload.project_id}")
    if result is None:
        return PaymentResponse(
            status="skipped",
            skipped=True,
            reason="Earlier invoices already cover the whole budget",
        )
    return _payment_response(result)
