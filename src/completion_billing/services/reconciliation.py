"""Billing reconciliation.

Checks a project's invoices, transactions and wallets against each other
and reports every inconsistency a partial payment could have left:

1. paid invoices without a transaction
2. transactions whose amount differs from their invoice
3. transactions for invoices that are not marked paid
4. invoice totals that break budget conservation
5. freelancer wallets whose lifetime earnings differ from their transactions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.calculators import BudgetPolicy, is_conserved
from completion_billing.config import get_settings
from completion_billing.models import Invoice, Project, Transaction
from completion_billing.services.state_machine import ProjectStatus
from completion_billing.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Result of reconciling one project."""

    project_id: int
    invoices_checked: int = 0
    transactions_checked: int = 0
    invoiced_total: Decimal = Decimal("0")
    paid_total: Decimal = Decimal("0")
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether the project's records are consistent."""
        return len(self.errors) == 0

    def add_error(self, code: str, message: str, **details: Any) -> None:
        self.errors.append({"code": code, "message": message, **details})


class ReconciliationService:
    """Consistency checks across invoices, transactions and wallets."""

    def __init__(self, session: AsyncSession, policy: BudgetPolicy | None = None):
        self.session = session
        self.policy = policy or get_settings().budget_policy()
        self.wallets = WalletService(session)

    async def reconcile_project(self, project: Project) -> ReconciliationResult:
        result = ReconciliationResult(project_id=project.project_id)

        invoices = list(
            (
                await self.session.execute(
                    select(Invoice).where(Invoice.project_id == project.project_id)
                )
            ).scalars()
        )
        transactions = {
            t.invoice_number: t
            for t in (
                await self.session.execute(
                    select(Transaction).where(Transaction.project_id == project.project_id)
                )
            ).scalars()
        }
        result.invoices_checked = len(invoices)
        result.transactions_checked = len(transactions)

        for invoice in invoices:
            result.invoiced_total += invoice.amount
            transaction = transactions.get(invoice.invoice_number)
            if invoice.is_paid:
                result.paid_total += invoice.amount
                if transaction is None:
                    result.add_error(
                        "MissingTransaction",
                        f"Invoice {invoice.invoice_number} is paid but has no transaction",
                        invoiceNumber=invoice.invoice_number,
                    )
            elif transaction is not None:
                result.add_error(
                    "UnpaidInvoiceWithTransaction",
                    f"Invoice {invoice.invoice_number} has a transaction but is unpaid",
                    invoiceNumber=invoice.invoice_number,
                )
            if transaction is not None and transaction.amount != invoice.amount:
                result.add_error(
                    "AmountMismatch",
                    (
                        f"Transaction {transaction.transaction_id} amount "
                        f"{transaction.amount} differs from invoice amount {invoice.amount}"
                    ),
                    invoiceNumber=invoice.invoice_number,
                    transactionId=transaction.transaction_id,
                )

        if result.invoiced_total - project.total_budget > self.policy.tolerance:
            result.add_error(
                "OverInvoiced",
                f"Invoices total {result.invoiced_total}, budget is {project.total_budget}",
            )
        elif project.status == ProjectStatus.COMPLETED.value and not is_conserved(
            project.total_budget,
            (i.amount for i in invoices),
            self.policy,
        ):
            result.add_error(
                "ConservationBroken",
                (
                    f"Completed project invoices total {result.invoiced_total}, "
                    f"budget is {project.total_budget}"
                ),
            )

        await self._check_wallet(project.freelancer_id, result)

        if not result.success:
            logger.error(
                "Project %s needs reconciliation: %s",
                project.project_id,
                [e["code"] for e in result.errors],
            )
        return result

    async def _check_wallet(self, freelancer_id: int, result: ReconciliationResult) -> None:
        wallet = await self.wallets.get(freelancer_id, "freelancer")
        paid_to_freelancer = await self.wallets.transaction_total(freelancer_id)
        earned = wallet.lifetime_earnings if wallet is not None else Decimal("0")
        if earned != paid_to_freelancer:
            result.add_error(
                "WalletMismatch",
                (
                    f"Freelancer {freelancer_id} lifetime earnings {earned} differ "
                    f"from transactions total {paid_to_freelancer}"
                ),
                userId=freelancer_id,
            )
