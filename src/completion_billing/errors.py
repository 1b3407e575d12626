"""Error taxonomy for the billing core.

Every failure the core raises is a ``BillingError`` of one of five kinds:

- ValidationError: malformed or missing input
- StateError: the entity is not in a state that permits the operation
- ConflictError: duplicate write, concurrent modification, or a ledger
  inconsistency that needs reconciliation
- NotFoundError: unknown project, task or invoice
- AuthorizationError: the caller may not act on this project

Each concrete error carries a machine-readable ``code`` that the API layer
returns alongside the kind.
"""

from __future__ import annotations

from typing import Any


class BillingError(Exception):
    """Base class for all billing core errors."""

    kind: str = "BillingError"
    status_code: int = 400
    default_code: str = "BillingError"

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        **context: Any,
    ):
        self.code = code or self.default_code
        self.detail = detail
        self.context = context
        msg = self.code
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "code": self.code,
            "kind": self.kind,
            "detail": self.detail or self.code,
        }


class ValidationError(BillingError):
    """Malformed or missing input."""

    kind = "ValidationError"
    status_code = 422
    default_code = "ValidationError"


class StateError(BillingError):
    """Operation not permitted in the entity's current state."""

    kind = "StateError"
    status_code = 409
    default_code = "StateError"


class ConflictError(BillingError):
    """Duplicate write, concurrent collision, or reconciliation needed."""

    kind = "ConflictError"
    status_code = 409
    default_code = "ConflictError"


class NotFoundError(BillingError):
    """Referenced entity does not exist."""

    kind = "NotFoundError"
    status_code = 404
    default_code = "NotFound"


class AuthorizationError(BillingError):
    """Caller is not permitted to act on this entity."""

    kind = "AuthorizationError"
    status_code = 403
    default_code = "Unauthorized"


# =============================================================================
# Budget errors
# =============================================================================


class InvalidBudgetError(ValidationError):
    default_code = "InvalidBudget"


class InvalidTaskCountError(ValidationError):
    default_code = "InvalidTaskCount"


# =============================================================================
# State errors
# =============================================================================


class InvalidTransitionError(StateError):
    """Raised when an invalid state transition is attempted."""

    default_code = "InvalidTransition"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(detail=msg)


class TaskNotApprovedError(StateError):
    default_code = "TaskNotApproved"


class ProjectNotEligibleError(StateError):
    default_code = "ProjectNotEligible"


class ProjectPausedError(StateError):
    default_code = "ProjectPaused"


# =============================================================================
# Conflict errors
# =============================================================================


class DuplicateInvoiceError(ConflictError):
    default_code = "DuplicateInvoice"


class InvoiceAlreadyPaidError(ConflictError):
    default_code = "InvoiceAlreadyPaid"


class ConcurrentModificationError(ConflictError):
    default_code = "ConcurrentModification"


class ReconciliationRequiredError(ConflictError):
    """A multi-record write stopped half way; records need reconciling."""

    default_code = "ReconciliationRequired"


# =============================================================================
# Not found errors
# =============================================================================


class ProjectNotFoundError(NotFoundError):
    default_code = "ProjectNotFound"


class TaskNotFoundError(NotFoundError):
    default_code = "TaskNotFound"


class InvoiceNotFoundError(NotFoundError):
    default_code = "InvoiceNotFound"


class NotificationNotFoundError(NotFoundError):
    default_code = "NotificationNotFound"


class UnauthorizedError(AuthorizationError):
    default_code = "Unauthorized"
