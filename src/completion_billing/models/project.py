"""Project, task and commissioner network models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from completion_billing.models.base import Base, TimestampMixin, VersionedMixin


class Project(Base, TimestampMixin, VersionedMixin):
    """A commissioned project billed on completion."""

    __tablename__ = "project"

    project_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    commissioner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    freelancer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    organization_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Display names used in notification messages; ids are used when absent
    commissioner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    freelancer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    organization_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    total_budget: Mapped[Decimal] = mapped_column(nullable=False)
    invoicing_method: Mapped[str] = mapped_column(String(20), nullable=False, default="completion")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ongoing")
    total_tasks: Mapped[int] = mapped_column(Integer, nullable=False)
    pause_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("total_budget > 0", name="project_budget_positive"),
        CheckConstraint("total_tasks > 0", name="project_tasks_positive"),
        CheckConstraint(
            "status IN ('ongoing', 'paused', 'completed')",
            name="project_status_check",
        ),
        CheckConstraint(
            "invoicing_method IN ('completion', 'milestone')",
            name="project_invoicing_method_check",
        ),
    )

    @property
    def is_completion(self) -> bool:
        return self.invoicing_method == "completion"


class Task(Base, TimestampMixin, VersionedMixin):
    """A unit of work inside a project."""

    __tablename__ = "task"

    task_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'submitted', 'approved')",
            name="task_status_check",
        ),
    )


class Contact(Base, TimestampMixin):
    """A freelancer in a commissioner's network."""

    __tablename__ = "contact"

    contact_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    commissioner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    freelancer_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("commissioner_id", "freelancer_id", name="contact_unique_pair"),
    )
