"""Budget calculations for completion-based invoicing."""

from completion_billing.calculators.budget import (
    BudgetBreakdown,
    compute_final_amount,
    compute_per_task_amount,
    compute_remaining,
    compute_upfront,
    is_conserved,
)
from completion_billing.calculators.types import (
    DEFAULT_POLICY,
    BillingTarget,
    BudgetPolicy,
    Completion,
    Final,
    InvoiceKind,
    Upfront,
    billing_target,
)

__all__ = [
    "BudgetBreakdown",
    "compute_final_amount",
    "compute_per_task_amount",
    "compute_remaining",
    "compute_upfront",
    "is_conserved",
    "DEFAULT_POLICY",
    "BillingTarget",
    "BudgetPolicy",
    "Completion",
    "Final",
    "InvoiceKind",
    "Upfront",
    "billing_target",
]
