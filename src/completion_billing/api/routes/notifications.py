"""Notification feed endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Path, Query

from completion_billing.api.dependencies import CurrentCaller, DbSession
from completion_billing.api.schemas import (
    ErrorResponse,
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from completion_billing.errors import UnauthorizedError, ValidationError
from completion_billing.events import NotificationStore
from completion_billing.services import commit_changes

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def list_notifications(
    db: DbSession,
    caller: CurrentCaller,
    commissioner_id: Annotated[int | None, Query(alias="commissionerId")] = None,
    freelancer_id: Annotated[int | None, Query(alias="freelancerId")] = None,
    tab: Annotated[Literal["all", "network"], Query()] = "all",
    unread_only: Annotated[bool, Query(alias="unreadOnly")] = False,
    project_id: Annotated[int | None, Query(alias="projectId")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> NotificationListResponse:
    """Notifications for a commissioner or a freelancer, newest first."""
    if (commissioner_id is None) == (freelancer_id is None):
        raise ValidationError(detail="Pass exactly one of commissionerId or freelancerId")
    if commissioner_id is not None:
        user_id, recipient_type = commissioner_id, "commissioner"
    else:
        user_id, recipient_type = freelancer_id, "freelancer"
        if tab == "network":
            raise ValidationError(detail="The network tab is only available to commissioners")
    if (user_id, recipient_type) != (caller.user_id, caller.user_type):
        raise UnauthorizedError(
            detail=f"User {caller.user_id} cannot read notifications of {recipient_type} {user_id}",
        )

    store = NotificationStore(db)
    events = await store.list_for_user(
        user_id,
        recipient_type=recipient_type,
        tab=tab,
        unread_only=unread_only,
        project_id=project_id,
        limit=limit,
    )
    unread = await store.count_unread(user_id, recipient_type)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(e) for e in events],
        unread_count=unread,
    )


@router.post(
    "/read-all",
    response_model=MarkReadResponse,
)
async def mark_all_read(db: DbSession, caller: CurrentCaller) -> MarkReadResponse:
    """Mark all of the caller's notifications read."""
    updated = await NotificationStore(db).mark_all_read(caller.user_id, caller.user_type)
    await commit_changes(db, "Notifications")
    return MarkReadResponse(updated=updated)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def mark_read(
    db: DbSession,
    caller: CurrentCaller,
    notification_id: Annotated[str, Path(min_length=1)],
) -> NotificationResponse:
    """Mark one of the caller's notifications read."""
    event = await NotificationStore(db).mark_read(notification_id, caller.user_id)
    await commit_changes(db, f"Notification {notification_id}")
    return NotificationResponse.model_validate(event)
