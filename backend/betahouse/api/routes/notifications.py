"""Notification routes: listing, read-state, deletion and admin test sends."""

from typing import Annotated

from core.auth_helper import get_current_account, require_roles
from core.dependencies import get_notification_dispatcher
from core.errors import NotFound
from core.logging import logger
from fastapi import APIRouter, Depends, Query
from models.auth import Account, Role
from schemas.auth import MessageResponse
from schemas.notifications import (
    AdminNotificationRequest,
    AdminNotificationResponse,
    MarkAllRead,
    NotificationOut,
    NotificationPage,
)
from services.notifications import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationPage)
async def list_notifications(
    account: Annotated[Account, Depends(get_current_account)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Return the caller's notifications, newest first.

    Args:
        account: Authenticated recipient.
        page: 1-based page number.
        limit: Page size.

    Returns:
        NotificationPage: The page plus `total` and `pages` counters.
    """
    return NotificationPage(**await dispatcher.list_for(account.id, page, limit))


# NOTE: Declared before "/{notification_id}/read" so "read-all" is not parsed as an id.
@router.patch("/read-all", response_model=MarkAllRead)
async def mark_all_read(
    account: Annotated[Account, Depends(get_current_account)],
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    updated = await dispatcher.mark_all_read(account.id)
    return MarkAllRead(message="All notifications marked as read", updated=updated)


@router.patch("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: int,
    account: Annotated[Account, Depends(get_current_account)],
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await dispatcher.mark_read(account.id, notification_id)
    return MessageResponse(message="Notification marked as read")


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int,
    account: Annotated[Account, Depends(get_current_account)],
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await dispatcher.delete(account.id, notification_id)
    return MessageResponse(message="Notification deleted successfully")


@router.post("/test", response_model=AdminNotificationResponse)
async def send_test_notification(
    body: AdminNotificationRequest,
    admin: Annotated[Account, Depends(require_roles(Role.admin))],
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Send an ad-hoc notification to any account (admins only).

    `delivered` reports whether the recipient had a live connection.
    """
    if await dispatcher.db.get(Account, body.user_id) is None:
        raise NotFound("User not found")

    online = dispatcher.presence.is_online(body.user_id)
    notification = await dispatcher.notify(
        body.user_id,
        body.category,
        body.content,
        related=body.related,
        title=body.title,
    )
    logger.info("Admin id={} sent test notification to account_id={}", admin.id, body.user_id)
    return AdminNotificationResponse(
        notification=NotificationOut.from_row(notification), delivered=online
    )
