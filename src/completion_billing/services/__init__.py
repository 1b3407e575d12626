"""Completion billing services."""

from completion_billing.services.completion_service import CompletionResult, CompletionService
from completion_billing.services.invoice_service import InvoiceService
from completion_billing.services.locking_service import EntityLockRegistry, entity_locks
from completion_billing.services.payment_service import PaymentResult, PaymentService
from completion_billing.services.persistence import commit_changes, flush_changes
from completion_billing.services.project_service import PaymentStatus, ProjectService
from completion_billing.services.reconciliation import (
    ReconciliationResult,
    ReconciliationService,
)
from completion_billing.services.state_machine import (
    ProjectStateMachine,
    ProjectStatus,
    TaskStateMachine,
    TaskStatus,
)
from completion_billing.services.task_service import ApprovalResult, TaskService
from completion_billing.services.wallet_service import WalletService

__all__ = [
    "ApprovalResult",
    "CompletionResult",
    "CompletionService",
    "commit_changes",
    "EntityLockRegistry",
    "entity_locks",
    "flush_changes",
    "InvoiceService",
    "PaymentResult",
    "PaymentService",
    "PaymentStatus",
    "ProjectService",
    "ReconciliationResult",
    "ReconciliationService",
    "ProjectStateMachine",
    "ProjectStatus",
    "TaskStateMachine",
    "TaskStatus",
    "TaskService",
    "WalletService",
]
