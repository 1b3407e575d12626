"""Invoice, transaction and wallet models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from completion_billing.models.base import Base, TimestampMixin, VersionedMixin, utcnow


class Invoice(Base, TimestampMixin, VersionedMixin):
    """An amount billed to the commissioner for a project.

    ``billing_key`` is ``upfront``, ``final`` or ``task:<task_id>``; the
    unique constraint on ``(project_id, billing_key)`` is what stops a
    project being billed twice for the same thing.
    """

    __tablename__ = "invoice"

    invoice_number: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("project.project_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    task_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("task.task_id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    billing_key: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")
    freelancer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    commissioner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "billing_key", name="invoice_one_per_billing_key"),
        CheckConstraint("amount >= 0", name="invoice_amount_non_negative"),
        CheckConstraint(
            "kind IN ('upfront', 'completion', 'final')",
            name="invoice_kind_check",
        ),
        CheckConstraint("status IN ('unpaid', 'paid')", name="invoice_status_check"),
        CheckConstraint(
            "(kind = 'completion') = (task_id IS NOT NULL)",
            name="invoice_task_only_for_completion",
        ),
    )

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


class Transaction(Base):
    """Immutable record of money moving for a paid invoice."""

    __tablename__ = "payment_transaction"

    transaction_id: Mapped[str] = mapped_column(String(80), primary_key=True)
    invoice_number: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("invoice.invoice_number", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    project_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    payee_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="paid")
    timestamp: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="transaction_amount_non_negative"),
    )


class Wallet(Base, TimestampMixin, VersionedMixin):
    """Balance held by a user on the platform."""

    __tablename__ = "wallet"

    wallet_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    available_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    lifetime_earnings: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("user_id", "user_type", name="wallet_one_per_user"),
        CheckConstraint(
            "user_type IN ('freelancer', 'commissioner')",
            name="wallet_user_type_check",
        ),
        CheckConstraint("available_balance >= 0", name="wallet_balance_non_negative"),
    )
