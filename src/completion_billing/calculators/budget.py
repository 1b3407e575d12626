"""Budget calculator for completion-based projects.

Pure functions. The project budget is split into an upfront deposit
(12% by default) and a remaining balance billed task by task as work is
approved. The final settlement is always derived from what has already
been invoiced, never from a fixed percentage, so that

    upfront + sum(per-task invoices) + final == total budget

holds exactly whatever rounding happened on the way.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from completion_billing.calculators.types import DEFAULT_POLICY, BudgetPolicy
from completion_billing.errors import InvalidBudgetError, InvalidTaskCountError


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise along
    return Decimal(str(value))


def _validate_budget(total_budget: Decimal) -> None:
    if total_budget <= 0:
        raise InvalidBudgetError(detail=f"Total budget must be positive, got {total_budget}")


def compute_upfront(
    total_budget: Decimal | int | float | str,
    policy: BudgetPolicy = DEFAULT_POLICY,
) -> Decimal:
    """Upfront deposit: ``round(total_budget * upfront_rate)``."""
    total = _as_decimal(total_budget)
    _validate_budget(total)
    return policy.round(total * policy.upfront_rate)


def compute_remaining(
    total_budget: Decimal | int | float | str,
    upfront: Decimal | int | float | str,
) -> Decimal:
    """Budget left after the upfront deposit."""
    total = _as_decimal(total_budget)
    _validate_budget(total)
    return total - _as_decimal(upfront)


def compute_per_task_amount(
    remaining: Decimal | int | float | str,
    remaining_task_count: int,
    policy: BudgetPolicy = DEFAULT_POLICY,
) -> Decimal:
    """Amount for one task: ``round(remaining / remaining_task_count)``.

    With a single task left the whole remaining balance is returned
    unrounded, which absorbs any drift from earlier divisions.
    """
    if remaining_task_count <= 0:
        raise InvalidTaskCountError(
            detail=f"Remaining task count must be positive, got {remaining_task_count}"
        )
    remaining = _as_decimal(remaining)
    if remaining_task_count == 1:
        return remaining
    return policy.round(remaining / remaining_task_count)


def compute_final_amount(
    total_budget: Decimal | int | float | str,
    sum_of_prior_invoices: Decimal | int | float | str,
) -> Decimal:
    """Final settlement: whatever the prior invoices have not covered."""
    total = _as_decimal(total_budget)
    _validate_budget(total)
    return total - _as_decimal(sum_of_prior_invoices)


def is_conserved(
    total_budget: Decimal | int | float | str,
    invoice_amounts: Iterable[Decimal | int | float | str],
    policy: BudgetPolicy = DEFAULT_POLICY,
) -> bool:
    """Check that invoice amounts add up to the budget within tolerance."""
    total = _as_decimal(total_budget)
    invoiced = sum((_as_decimal(a) for a in invoice_amounts), Decimal("0"))
    return abs(total - invoiced) <= policy.tolerance


@dataclass(frozen=True)
class BudgetBreakdown:
    """Snapshot of how a project's budget has been billed so far."""

    total_budget: Decimal
    upfront_amount: Decimal
    completion_invoiced: Decimal
    final_invoiced: Decimal
    paid: Decimal

    @property
    def invoiced(self) -> Decimal:
        return self.upfront_amount + self.completion_invoiced + self.final_invoiced

    @property
    def remaining(self) -> Decimal:
        """Budget not yet covered by any invoice."""
        return self.total_budget - self.invoiced

    @property
    def unpaid(self) -> Decimal:
        return self.invoiced - self.paid

    def percent_of_budget(self, amount: Decimal) -> int:
        """Whole-number percentage of the budget an amount represents."""
        if self.total_budget <= 0:
            return 0
        return int((amount * 100 / self.total_budget).to_integral_value())
