"""Payment executor.

Pays an invoice in three writes, always in this order:

1. invoice ``unpaid -> paid``
2. a Transaction record (``TXN-<invoiceNumber>``)
3. the freelancer's wallet credit

then emits the payment notification for the invoice kind. A failure after
step 1 is logged and raised as ``ReconciliationRequiredError``; the request
transaction rolls back and the reconciliation report picks up anything a
partial write left behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.calculators import InvoiceKind
from completion_billing.errors import (
    BillingError,
    InvoiceAlreadyPaidError,
    ReconciliationRequiredError,
    UnauthorizedError,
)
from completion_billing.events import EventType, NotificationEmitter
from completion_billing.models import Invoice, Transaction, Wallet
from completion_billing.models.base import utcnow
from completion_billing.services.invoice_service import InvoiceService
from completion_billing.services.locking_service import EntityLockRegistry, entity_locks
from completion_billing.services.persistence import flush_changes
from completion_billing.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

PAYMENT_EVENTS = {
    InvoiceKind.UPFRONT.value: EventType.UPFRONT_PAYMENT,
    InvoiceKind.COMPLETION.value: EventType.INVOICE_PAID,
    InvoiceKind.FINAL.value: EventType.FINAL_PAYMENT,
}


def transaction_id_for(invoice_number: str) -> str:
    return f"TXN-{invoice_number}"


@dataclass
class PaymentResult:
    """Records written by one payment."""

    invoice: Invoice
    transaction: Transaction
    wallet: Wallet


class PaymentService:
    """Executes payments against invoices."""

    def __init__(
        self,
        session: AsyncSession,
        invoices: InvoiceService | None = None,
        emitter: NotificationEmitter | None = None,
        locks: EntityLockRegistry | None = None,
    ):
        self.session = session
        self.invoices = invoices or InvoiceService(session)
        self.emitter = emitter or NotificationEmitter(session)
        self.wallets = WalletService(session, locks if locks is not None else entity_locks)

    async def execute_payment(self, invoice_number: str, payer_id: int) -> PaymentResult:
        """Pay an unpaid invoice on behalf of its commissioner."""
        invoice = await self.invoices.get_invoice(invoice_number)
        if payer_id != invoice.commissioner_id:
            logger.warning(
                "User %s tried to pay invoice %s of commissioner %s",
                payer_id,
                invoice_number,
                invoice.commissioner_id,
            )
            raise UnauthorizedError(
                detail=f"User {payer_id} cannot pay invoice {invoice_number}",
            )
        if invoice.is_paid:
            raise InvoiceAlreadyPaidError(detail=f"Invoice {invoice_number} is already paid")

        paid_at = utcnow()
        invoice.status = "paid"
        invoice.paid_at = paid_at
        await flush_changes(self.session, f"Invoice {invoice_number}")
        logger.info("Invoice %s: unpaid -> paid (%s)", invoice_number, invoice.amount)

        try:
            transaction = await self._record_transaction(invoice, paid_at)
            wallet = await self.wallets.credit(
                invoice.freelancer_id, "freelancer", invoice.amount
            )
        except (BillingError, SQLAlchemyError) as e:
            logger.exception(
                "Payment of invoice %s stopped after marking it paid", invoice_number
            )
            raise ReconciliationRequiredError(
                detail=f"Payment of invoice {invoice_number} did not complete: {e}",
                invoice_number=invoice_number,
            ) from e

        await self._notify(invoice)
        return PaymentResult(invoice=invoice, transaction=transaction, wallet=wallet)

    async def _record_transaction(self, invoice: Invoice, paid_at) -> Transaction:
        transaction = Transaction(
            transaction_id=transaction_id_for(invoice.invoice_number),
            invoice_number=invoice.invoice_number,
            project_id=invoice.project_id,
            payer_id=invoice.commissioner_id,
            payee_id=invoice.freelancer_id,
            amount=invoice.amount,
            status="paid",
            timestamp=paid_at,
        )
        self.session.add(transaction)
        await flush_changes(self.session, f"Transaction for invoice {invoice.invoice_number}")
        logger.info(
            "Recorded transaction %s: %s from %s to %s",
            transaction.transaction_id,
            transaction.amount,
            transaction.payer_id,
            transaction.payee_id,
        )
        return transaction

    async def _notify(self, invoice: Invoice) -> None:
        event_type = PAYMENT_EVENTS[invoice.kind]
        context: dict = {"invoiceNumber": invoice.invoice_number}
        if invoice.kind == InvoiceKind.UPFRONT.value:
            context["upfrontAmount"] = invoice.amount
        elif invoice.kind == InvoiceKind.FINAL.value:
            context["finalAmount"] = invoice.amount
        else:
            context["taskId"] = invoice.task_id
            context["amount"] = invoice.amount
        await self.emitter.emit(
            event_type,
            actor_id=invoice.commissioner_id,
            target_id=invoice.freelancer_id,
            project_id=invoice.project_id,
            context=context,
        )
