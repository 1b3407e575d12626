"""Notification event types and their message templates.

Every financial or approval transition maps to one ``EventSpec``. A spec
says who receives the notification (the target), whether the actor gets a
mirrored confirmation, which context field identifies the occurrence for
deduplication, and the message templates for both recipients.

Templates are ``str.format`` strings filled from the enriched event
context (see ``completion_billing.events.context``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventType(str, Enum):
    """Domain event tags."""

    PROJECT_ACTIVATED = "completion.project_activated"
    UPFRONT_PAYMENT = "completion.upfront_payment"
    TASK_SUBMITTED = "completion.task_submitted"
    TASK_APPROVED = "completion.task_approved"
    INVOICE_RECEIVED = "completion.invoice_received"
    INVOICE_PAID = "completion.invoice_paid"
    COMMISSIONER_PAYMENT = "completion.commissioner_payment"
    PROJECT_COMPLETED = "completion.project_completed"
    FINAL_PAYMENT = "completion.final_payment"
    RATING_PROMPT = "completion.rating_prompt"
    PROJECT_PAUSED = "completion.project_paused"
    PROJECT_RESUMED = "completion.project_resumed"


class EventCategory(str, Enum):
    """Event categories for filtering."""

    PROJECT = "project"
    TASK = "task"
    INVOICE = "invoice"
    PAYMENT = "payment"


@dataclass(frozen=True)
class EventSpec:
    """How one event type turns into notifications."""

    event_type: EventType
    category: EventCategory
    target_role: str
    target_template: str
    actor_template: str | None = None
    dedup_field: str | None = None
    # Type stored on the actor's copy when it differs from the event type
    actor_copy_type: EventType | None = None

    @property
    def actor_role(self) -> str:
        return "freelancer" if self.target_role == "commissioner" else "commissioner"

    @property
    def mirrors_actor(self) -> bool:
        return self.actor_template is not None


_SPECS = [
    EventSpec(
        EventType.PROJECT_ACTIVATED,
        EventCategory.PROJECT,
        target_role="freelancer",
        target_template=(
            "{commissionerName} accepted your application for {projectTitle}. "
            "This project is now active and includes {totalTasks} tasks."
        ),
        actor_template=(
            "You accepted {freelancerName}'s application for {projectTitle}. "
            "This project is now active and includes {totalTasks} tasks."
        ),
    ),
    EventSpec(
        EventType.UPFRONT_PAYMENT,
        EventCategory.PAYMENT,
        target_role="freelancer",
        target_template=(
            "{orgName} has paid {upfrontAmount} upfront for your newly activated "
            "{projectTitle} project. This project has a budget of {remainingBudget} left."
        ),
        actor_template=(
            "You paid {freelancerName} {upfrontAmount} upfront for {projectTitle}. "
            "This project has a budget of {remainingBudget} left."
        ),
        dedup_field="invoiceNumber",
    ),
    EventSpec(
        EventType.TASK_SUBMITTED,
        EventCategory.TASK,
        target_role="commissioner",
        target_template=(
            '{freelancerName} submitted "{taskTitle}" for {projectTitle}. '
            "Review the submission to approve it."
        ),
        dedup_field="taskId",
    ),
    EventSpec(
        EventType.TASK_APPROVED,
        EventCategory.TASK,
        target_role="freelancer",
        target_template=(
            '{commissionerName} has approved your submission for "{taskTitle}" '
            "in {projectTitle}. {approvedTasks} of {totalTasks} tasks are now approved."
        ),
        actor_template=(
            'You approved {freelancerName}\'s submission for "{taskTitle}" '
            "in {projectTitle}. {approvedTasks} of {totalTasks} tasks are now approved."
        ),
        dedup_field="taskId",
    ),
    EventSpec(
        EventType.INVOICE_RECEIVED,
        EventCategory.INVOICE,
        target_role="commissioner",
        target_template=(
            "{freelancerName} sent you a {amount} invoice for {taskTitle} "
            "({invoiceNumber})."
        ),
        actor_template=(
            "You sent {commissionerName} a {amount} invoice for {taskTitle} "
            "({invoiceNumber})."
        ),
        dedup_field="invoiceNumber",
    ),
    EventSpec(
        EventType.INVOICE_PAID,
        EventCategory.PAYMENT,
        target_role="freelancer",
        target_template=(
            "{orgName} has paid you {amount} for {taskTitle} in {projectTitle}. "
            "This project has a remaining budget of {remainingBudget}."
        ),
        actor_template=(
            "You just paid {freelancerName} {amount} for {taskTitle} in {projectTitle}. "
            "Remaining budget: {remainingBudget}."
        ),
        dedup_field="invoiceNumber",
        actor_copy_type=EventType.COMMISSIONER_PAYMENT,
    ),
    EventSpec(
        EventType.PROJECT_COMPLETED,
        EventCategory.PROJECT,
        target_role="freelancer",
        target_template=(
            "{commissionerName} approved every task in {projectTitle}. "
            "The project is now complete."
        ),
        actor_template=(
            "You approved every task in {projectTitle}. The project is now complete "
            "and {freelancerName} will receive the final payment."
        ),
    ),
    EventSpec(
        EventType.FINAL_PAYMENT,
        EventCategory.PAYMENT,
        target_role="freelancer",
        target_template=(
            "{orgName} has paid you {finalAmount} for {projectTitle} final payment "
            "(remaining {finalPercent}% of budget)."
        ),
        actor_template=(
            "You paid {freelancerName} {finalAmount} as the final payment for "
            "{projectTitle} ({finalPercent}% of budget)."
        ),
        dedup_field="invoiceNumber",
    ),
    EventSpec(
        EventType.RATING_PROMPT,
        EventCategory.PROJECT,
        target_role="freelancer",
        target_template=(
            "Rate your experience with {commissionerName}. All tasks for "
            "{projectTitle} have been approved."
        ),
        actor_template=(
            "Rate your experience with {freelancerName}. {projectTitle} is complete."
        ),
    ),
    EventSpec(
        EventType.PROJECT_PAUSED,
        EventCategory.PROJECT,
        target_role="freelancer",
        target_template=(
            "{commissionerName} has paused {projectTitle}. You will be notified "
            "when work can continue."
        ),
        actor_template="You paused {projectTitle}. {freelancerName} has been notified.",
        dedup_field="pauseCount",
    ),
    EventSpec(
        EventType.PROJECT_RESUMED,
        EventCategory.PROJECT,
        target_role="freelancer",
        target_template="{commissionerName} has resumed {projectTitle}. Work can continue.",
        actor_template="You resumed {projectTitle}. {freelancerName} has been notified.",
        dedup_field="pauseCount",
    ),
]

EVENT_SPECS: dict[EventType, EventSpec] = {spec.event_type: spec for spec in _SPECS}


def get_spec(event_type: EventType | str) -> EventSpec:
    """Look up how an event type is delivered; ValueError if the type is unknown."""
    return EVENT_SPECS[EventType(event_type)]


def dedup_key(
    event_type: EventType | str,
    project_id: int | None,
    occurrence: object | None,
    recipient_id: int,
) -> str:
    """Key that identifies one stored notification.

    ``type:project:occurrence:recipient``: the target copy and the actor's
    mirrored copy differ by recipient, a re-emit of the same event does not.
    """
    event_type = EventType(event_type).value
    occurrence_part = "-" if occurrence is None else str(occurrence)
    project_part = "-" if project_id is None else str(project_id)
    return f"{event_type}:{project_part}:{occurrence_part}:{recipient_id}"
