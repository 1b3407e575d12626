"""Task and project state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from completion_billing.errors import InvalidTransitionError


class TaskStatus(str, Enum):
    """Task status values."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"


class ProjectStatus(str, Enum):
    """Project status values."""

    ONGOING = "ongoing"
    PAUSED = "paused"
    COMPLETED = "completed"


class TaskStateMachine:
    """State machine for task status transitions.

    Allowed transitions:
    - pending → submitted
    - submitted → approved

    Submission is mandatory: a pending task cannot be approved directly.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TaskStatus.PENDING: [TaskStatus.SUBMITTED],
        TaskStatus.SUBMITTED: [TaskStatus.APPROVED],
        TaskStatus.APPROVED: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = None
            if from_status == TaskStatus.PENDING and to_status == TaskStatus.APPROVED:
                reason = "task must be submitted before approval"
            elif from_status == TaskStatus.APPROVED:
                reason = "approved tasks are final"
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status, [])


class ProjectStateMachine:
    """State machine for project status transitions.

    Allowed transitions:
    - ongoing → paused
    - paused → ongoing (resume)
    - ongoing → completed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ProjectStatus.ONGOING: [ProjectStatus.PAUSED, ProjectStatus.COMPLETED],
        ProjectStatus.PAUSED: [ProjectStatus.ONGOING],
        ProjectStatus.COMPLETED: [],  # Terminal state
    }

    # Statuses in which tasks can be submitted and approved
    WORK_ALLOWED = {ProjectStatus.ONGOING}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "completed projects are final" if from_status == ProjectStatus.COMPLETED else None
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def allows_work(cls, status: str) -> bool:
        """Check if task submission/approval is allowed in this status."""
        return status in cls.WORK_ALLOWED

    @classmethod
    def is_resume(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a resume (paused → ongoing)."""
        return from_status == ProjectStatus.PAUSED and to_status == ProjectStatus.ONGOING


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status
