"""Tests for billing reconciliation."""

from decimal import Decimal

import pytest
from sqlalchemy import delete

from completion_billing.models import Transaction
from completion_billing.services import ReconciliationService, WalletService

from .conftest import COMMISSIONER_ID, FREELANCER_ID, POLICY


pytestmark = pytest.mark.asyncio


@pytest.fixture
def reconciler(session):
    return ReconciliationService(session, POLICY)


async def _paid_project(make_project, project_service):
    project = await make_project(total_budget=10000, total_tasks=4)
    result = await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
    return project, result


def _codes(result):
    return [e["code"] for e in result.errors]


async def test_consistent_project(make_project, project_service, reconciler):
    project, _ = await _paid_project(make_project, project_service)

    result = await reconciler.reconcile_project(project)

    assert result.success is True
    assert result.invoices_checked == 1
    assert result.transactions_checked == 1
    assert result.invoiced_total == Decimal("1200")
    assert result.paid_total == Decimal("1200")


async def test_completed_project_is_conserved(
    make_project, project_service, task_service, approve_task, reconciler
):
    project, _ = await _paid_project(make_project, project_service)
    for task in await task_service.list_tasks(project.project_id):
        approval = await approve_task(task)
        await project_service.payments.execute_payment(
            approval.invoice.invoice_number, COMMISSIONER_ID
        )

    result = await reconciler.reconcile_project(project)

    assert project.status == "completed"
    assert result.success is True
    assert result.invoiced_total == result.paid_total == Decimal("10000")


async def test_amount_mismatch(session, make_project, project_service, reconciler):
    project, payment = await _paid_project(make_project, project_service)
    payment.transaction.amount = Decimal("1100")
    await session.flush()

    result = await reconciler.reconcile_project(project)

    assert "AmountMismatch" in _codes(result)
    assert result.errors[0]["invoiceNumber"] == payment.invoice.invoice_number


async def test_missing_transaction(session, make_project, project_service, reconciler):
    project, payment = await _paid_project(make_project, project_service)
    await session.execute(
        delete(Transaction).where(
            Transaction.transaction_id == payment.transaction.transaction_id
        )
    )

    result = await reconciler.reconcile_project(project)

    assert "MissingTransaction" in _codes(result)
    # The wallet still holds the credit the transaction no longer explains
    assert "WalletMismatch" in _codes(result)


async def test_transaction_for_unpaid_invoice(
    session, make_project, project_service, reconciler
):
    project, payment = await _paid_project(make_project, project_service)
    payment.invoice.status = "unpaid"
    await session.flush()

    result = await reconciler.reconcile_project(project)

    assert _codes(result) == ["UnpaidInvoiceWithTransaction"]


async def test_wallet_mismatch(session, locks, make_project, project_service, reconciler):
    project, _ = await _paid_project(make_project, project_service)
    await WalletService(session, locks).credit(FREELANCER_ID, "freelancer", Decimal("50"))

    result = await reconciler.reconcile_project(project)

    assert _codes(result) == ["WalletMismatch"]
    assert result.errors[0]["userId"] == FREELANCER_ID


async def test_over_invoiced(session, make_project, project_service, reconciler):
    project, payment = await _paid_project(make_project, project_service)
    payment.invoice.amount = Decimal("12000")
    payment.transaction.amount = Decimal("12000")
    payment.wallet.lifetime_earnings = Decimal("12000")
    await session.flush()

    result = await reconciler.reconcile_project(project)

    assert _codes(result) == ["OverInvoiced"]
