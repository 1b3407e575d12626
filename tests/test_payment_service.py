"""Tests for the payment executor and wallets."""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from completion_billing.errors import (
    ConcurrentModificationError,
    ConflictError,
    InvoiceAlreadyPaidError,
    InvoiceNotFoundError,
    ReconciliationRequiredError,
    UnauthorizedError,
    ValidationError,
)
from completion_billing.models import Transaction
from completion_billing.services import (
    EntityLockRegistry,
    PaymentService,
    WalletService,
    commit_changes,
    entity_locks,
    flush_changes,
)

from .conftest import COMMISSIONER_ID, FREELANCER_ID, OTHER_USER_ID


pytestmark = pytest.mark.asyncio


class TestExecutePayment:
    """Test paying invoices."""

    async def test_upfront_payment_writes_all_records(self, make_project, project_service):
        project = await make_project(total_budget=10000, total_tasks=4)

        result = await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        invoice_number = f"INV-{project.project_id}-UPF"
        assert result.invoice.invoice_number == invoice_number
        assert result.invoice.status == "paid"
        assert result.invoice.paid_at is not None

        assert result.transaction.transaction_id == f"TXN-{invoice_number}"
        assert result.transaction.amount == result.invoice.amount == Decimal("1200")
        assert result.transaction.payer_id == COMMISSIONER_ID
        assert result.transaction.payee_id == FREELANCER_ID
        assert result.transaction.status == "paid"

        assert result.wallet.user_id == FREELANCER_ID
        assert result.wallet.user_type == "freelancer"
        assert result.wallet.available_balance == Decimal("1200")
        assert result.wallet.lifetime_earnings == Decimal("1200")

    async def test_paying_twice_is_a_conflict(self, make_project, project_service):
        """Scenario C: an already paid invoice cannot be paid again."""
        project = await make_project()
        result = await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        with pytest.raises(InvoiceAlreadyPaidError) as exc_info:
            await project_service.payments.execute_payment(
                result.invoice.invoice_number, COMMISSIONER_ID
            )

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.code == "InvoiceAlreadyPaid"
        assert str(exc_info.value).startswith("InvoiceAlreadyPaid")

    async def test_execute_upfront_twice_is_a_conflict(self, make_project, project_service):
        project = await make_project()
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        with pytest.raises(InvoiceAlreadyPaidError):
            await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

    async def test_only_commissioner_can_pay(self, make_project, project_service):
        project = await make_project()
        invoice = await project_service.invoices.create_upfront_invoice(project)

        with pytest.raises(UnauthorizedError):
            await project_service.payments.execute_payment(invoice.invoice_number, FREELANCER_ID)
        with pytest.raises(UnauthorizedError):
            await project_service.payments.execute_payment(invoice.invoice_number, OTHER_USER_ID)

        assert invoice.status == "unpaid"

    async def test_unknown_invoice(self, project_service):
        with pytest.raises(InvoiceNotFoundError) as exc_info:
            await project_service.payments.execute_payment("INV-404-UPF", COMMISSIONER_ID)

        assert exc_info.value.code == "InvoiceNotFound"

    async def test_wallet_failure_needs_reconciliation(
        self, monkeypatch, make_project, project_service
    ):
        project = await make_project()

        async def failing_credit(user_id, user_type, amount):
            raise ConcurrentModificationError(detail="wallet changed underneath")

        monkeypatch.setattr(project_service.payments.wallets, "credit", failing_credit)

        with pytest.raises(ReconciliationRequiredError) as exc_info:
            await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        assert exc_info.value.code == "ReconciliationRequired"
        assert exc_info.value.context["invoice_number"] == f"INV-{project.project_id}-UPF"

    async def test_database_failure_needs_reconciliation(
        self, monkeypatch, make_project, project_service
    ):
        project = await make_project()

        async def locked_credit(user_id, user_type, amount):
            raise OperationalError("UPDATE wallets", {}, Exception("database is locked"))

        monkeypatch.setattr(project_service.payments.wallets, "credit", locked_credit)

        with pytest.raises(ReconciliationRequiredError) as exc_info:
            await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)

        assert isinstance(exc_info.value.__cause__, OperationalError)

    async def test_task_invoice_payment(
        self, session, make_project, project_service, task_service, approve_task
    ):
        project = await make_project(total_budget=10000, total_tasks=4)
        await project_service.execute_upfront(project.project_id, COMMISSIONER_ID)
        task = (await task_service.list_tasks(project.project_id))[0]
        approval = await approve_task(task)

        result = await project_service.payments.execute_payment(
            approval.invoice.invoice_number, COMMISSIONER_ID
        )

        assert result.wallet.available_balance == Decimal("4133")
        transactions = (
            await session.execute(
                select(Transaction).where(Transaction.project_id == project.project_id)
            )
        ).scalars().all()
        assert sorted(t.amount for t in transactions) == [Decimal("1200"), Decimal("2933")]


class TestWallets:
    """Test wallet credits."""

    async def test_credits_from_different_projects_accumulate(self, make_project, project_service):
        first = await make_project(total_budget=10000, total_tasks=2)
        second = await make_project(total_budget=5000, total_tasks=1, title="Landing Page")

        await project_service.execute_upfront(first.project_id, COMMISSIONER_ID)
        result = await project_service.execute_upfront(second.project_id, COMMISSIONER_ID)

        assert result.wallet.available_balance == Decimal("1800")
        assert result.wallet.lifetime_earnings == Decimal("1800")

    async def test_credit_creates_wallet(self, session, locks):
        wallets = WalletService(session, locks)

        wallet = await wallets.credit(501, "freelancer", Decimal("250"))
        wallet = await wallets.credit(501, "freelancer", Decimal("50"))

        assert wallet.available_balance == Decimal("300")
        assert wallet.lifetime_earnings == Decimal("300")
        assert wallet.currency == "USD"
        assert await wallets.transaction_total(501) == Decimal("0")

    async def test_credit_rejects_negative_amount(self, session, locks):
        with pytest.raises(ValidationError):
            await WalletService(session, locks).credit(501, "freelancer", Decimal("-1"))

    async def test_lock_released_after_credit(self, session, locks):
        await WalletService(session, locks).credit(501, "freelancer", Decimal("10"))

        assert not locks.is_locked("wallet", "freelancer", 501)
        assert len(locks) == 1

    async def test_uses_given_registry(self, session, locks):
        assert len(locks) == 0

        assert WalletService(session, locks).locks is locks
        assert PaymentService(session, locks=locks).wallets.locks is locks

    async def test_default_registry(self, session):
        assert WalletService(session).locks is entity_locks
        assert WalletService(session, EntityLockRegistry()).locks is not entity_locks


class TestFlushChanges:
    """Database collisions become billing errors."""

    async def test_locked_database_on_flush(self, monkeypatch, session):
        async def locked_flush(*args, **kwargs):
            raise OperationalError("UPDATE invoices", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "flush", locked_flush)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await flush_changes(session, "Invoice INV-1-UPF")

        assert exc_info.value.code == "ConcurrentModification"
        assert isinstance(exc_info.value, ConflictError)

    async def test_locked_database_on_commit(self, monkeypatch, session):
        async def locked_commit(*args, **kwargs):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "commit", locked_commit)

        with pytest.raises(ConcurrentModificationError):
            await commit_changes(session, "Approval of task 1")
