"""Pydantic schemas for API request/response models.

JSON bodies use camelCase field names; amounts are serialized as numbers.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(ApiModel):
    """Error body returned for every billing failure."""

    detail: str
    code: str
    kind: str | None = None


# ============================================================================
# Project schemas
# ============================================================================


class ProjectCreate(ApiModel):
    """Schema for activating a completion-based project."""

    title: str
    total_budget: Decimal
    total_tasks: int
    freelancer_id: int
    commissioner_id: int | None = None
    description: str = ""
    organization_id: int | None = None
    invoicing_method: Literal["completion", "milestone"] = "completion"
    task_titles: list[str] | None = None
    commissioner_name: str | None = None
    freelancer_name: str | None = None
    organization_name: str | None = None


class TaskResponse(ApiModel):
    """Schema for task response."""

    task_id: int
    project_id: int
    title: str
    position: int
    status: str
    due_date: date | None = None
    reference_url: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None


class ProjectResponse(ApiModel):
    """Schema for project response."""

    project_id: int
    title: str
    description: str
    commissioner_id: int
    freelancer_id: int
    organization_id: int | None = None
    total_budget: Amount
    invoicing_method: str
    status: str
    total_tasks: int
    completed_at: datetime | None = None
    created_at: datetime


class ProjectCreatedResponse(ApiModel):
    """Schema returned when a project is activated."""

    project_id: int
    status: str
    task_ids: list[int]


class ProjectDetailResponse(ProjectResponse):
    """Project with its tasks."""

    tasks: list[TaskResponse] = Field(default_factory=list)


# ============================================================================
# Invoice schemas
# ============================================================================


class InvoiceResponse(ApiModel):
    """Schema for invoice response."""

    invoice_number: str
    project_id: int
    kind: str
    task_id: int | None = None
    amount: Amount
    status: str
    freelancer_id: int
    commissioner_id: int
    description: str
    created_at: datetime
    paid_at: datetime | None = None


class InvoiceListResponse(ApiModel):
    """Schema for listing a project's invoices."""

    items: list[InvoiceResponse]
    total: int


class ManualInvoiceRequest(ApiModel):
    """Request to invoice an approved task."""

    project_id: int
    task_id: int


# ============================================================================
# Task action schemas
# ============================================================================


class TaskActionRequest(ApiModel):
    """Submit or approve a task."""

    task_id: int
    action: Literal["submit", "approve"]
    reference_url: str | None = None


class TaskActionResponse(ApiModel):
    """Result of a task action."""

    task_id: int
    status: str
    invoice: InvoiceResponse | None = None
    project_completed: bool = False
    final_invoice: InvoiceResponse | None = None


# ============================================================================
# Payment schemas
# ============================================================================


class ProjectPaymentRequest(ApiModel):
    """Request naming the project to pay upfront or settle."""

    project_id: int


class InvoicePaymentRequest(ApiModel):
    """Request naming the invoice to pay."""

    invoice_number: str


class PaymentResponse(ApiModel):
    """Result of a payment."""

    invoice_number: str | None = None
    amount: Amount = Decimal("0")
    status: str
    transaction_id: str | None = None
    paid_at: datetime | None = None
    skipped: bool = False
    reason: str | None = None


class PaymentStatusResponse(ApiModel):
    """Billing progress of a project."""

    project_id: int
    status: str
    total_budget: Amount
    upfront_amount: Amount
    upfront_paid: bool
    invoiced: Amount
    paid: Amount
    remaining: Amount
    percent_paid: int
    total_tasks: int
    approved_tasks: int
    ready_for_final: bool
    reason: str | None = None
    invoices: list[InvoiceResponse]


class ReconciliationResponse(ApiModel):
    """Consistency report for a project."""

    project_id: int
    success: bool
    invoices_checked: int
    transactions_checked: int
    invoiced_total: Amount
    paid_total: Amount
    errors: list[dict[str, Any]]


# ============================================================================
# Wallet schemas
# ============================================================================


class WalletResponse(ApiModel):
    """Schema for wallet response."""

    user_id: int
    user_type: str
    currency: str
    available_balance: Amount
    lifetime_earnings: Amount
    updated_at: datetime


# ============================================================================
# Notification schemas
# ============================================================================


class NotificationResponse(ApiModel):
    """Schema for notification response."""

    id: str
    type: str
    actor_id: int
    target_id: int
    recipient_type: str
    project_id: int | None = None
    context: dict[str, Any]
    message: str
    read: bool
    created_at: datetime


class NotificationListResponse(ApiModel):
    """Schema for a user's notification feed."""

    items: list[NotificationResponse]
    unread_count: int


class MarkReadResponse(ApiModel):
    """Result of marking notifications read."""

    updated: int
