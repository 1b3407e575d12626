"""Type definitions for completion billing calculations."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Union


class InvoiceKind(str, Enum):
    """Invoice kinds in a completion-based project."""

    UPFRONT = "upfront"
    COMPLETION = "completion"
    FINAL = "final"


@dataclass(frozen=True)
class Upfront:
    """The single deposit invoice raised at activation."""

    kind = InvoiceKind.UPFRONT

    @property
    def billing_key(self) -> str:
        return "upfront"

    @property
    def task_id(self) -> int | None:
        return None

    def invoice_number(self, project_id: int) -> str:
        return f"INV-{project_id}-UPF"


@dataclass(frozen=True)
class Completion:
    """Per-task invoice raised when a task is approved."""

    task: int
    kind = InvoiceKind.COMPLETION

    @property
    def billing_key(self) -> str:
        return f"task:{self.task}"

    @property
    def task_id(self) -> int | None:
        return self.task

    def invoice_number(self, project_id: int) -> str:
        return f"INV-{project_id}-T{self.task}"


@dataclass(frozen=True)
class Final:
    """Settlement invoice for whatever budget the other invoices left."""

    kind = InvoiceKind.FINAL

    @property
    def billing_key(self) -> str:
        return "final"

    @property
    def task_id(self) -> int | None:
        return None

    def invoice_number(self, project_id: int) -> str:
        return f"INV-{project_id}-FIN"


# At most one invoice exists per (project, billing_key)
BillingTarget = Union[Upfront, Completion, Final]


def billing_target(kind: InvoiceKind | str, task_id: int | None = None) -> BillingTarget:
    """Build the tagged billing target for a kind/task pair."""
    kind = InvoiceKind(kind)
    if kind is InvoiceKind.UPFRONT:
        return Upfront()
    if kind is InvoiceKind.FINAL:
        return Final()
    if task_id is None:
        raise ValueError("Completion invoices require a task id")
    return Completion(task_id)


@dataclass(frozen=True)
class BudgetPolicy:
    """Rates and rounding rules applied to a project budget.

    Attributes:
        upfront_rate: Share of the budget paid as the upfront deposit.
        quantum: Smallest currency unit amounts are rounded to
            (``Decimal("1")`` for whole units, ``Decimal("0.01")`` for cents).
        tolerance: Largest residue accepted when checking conservation.
    """

    upfront_rate: Decimal = Decimal("0.12")
    quantum: Decimal = Decimal("1")
    tolerance: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if not Decimal("0") < self.upfront_rate < Decimal("1"):
            raise ValueError("upfront_rate must be between 0 and 1")
        if self.quantum <= 0:
            raise ValueError("quantum must be positive")
        if self.tolerance < 0:
            raise ValueError("tolerance cannot be negative")

    def round(self, amount: Decimal) -> Decimal:
        """Round half-up to the policy's currency unit."""
        return Decimal(amount).quantize(self.quantum, rounding=ROUND_HALF_UP)


DEFAULT_POLICY = BudgetPolicy()
