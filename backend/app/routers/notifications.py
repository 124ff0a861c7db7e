"""Notification endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..database import get_db
from ..schemas import (
    MarkReadOut,
    NotificationCreate,
    NotificationIdsRequest,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountOut,
)
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.notification_use_cases import (
    create_notification_use_case,
    delete_notification_use_case,
    get_notification_use_case,
    list_for_current_user,
    list_for_feedback,
    list_for_recipient,
    mark_all_read_use_case,
    mark_many_read_use_case,
    mark_read_use_case,
    send_notification_email_use_case,
    unread_count_use_case,
)

router = APIRouter(tags=["notifications"])


@router.post("/notifications", response_model=NotificationResponse, status_code=201)
def create_notification(
    data: NotificationCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canManageNotifications")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    return create_notification_use_case(db=db, data=data, current_user=current_user, channels=channels)


@router.get("/notifications/me", response_model=NotificationListResponse)
def list_my_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Notifications addressed to the caller or to one of the caller's roles."""
    result = list_for_current_user(
        db=db,
        current_user=current_user,
        unread_only=unread_only,
        page=page,
        limit=limit,
    )
    return {"items": result.items, "pagination": result.pagination()}


@router.get("/notifications/me/unread-count", response_model=UnreadCountOut)
def get_unread_count(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"unread": unread_count_use_case(db=db, current_user=current_user)}


@router.post("/notifications/me/read-all", response_model=MarkReadOut)
def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"updated": mark_all_read_use_case(db=db, current_user=current_user)}


@router.post("/notifications/read", response_model=MarkReadOut)
def mark_many_read(
    data: NotificationIdsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = mark_many_read_use_case(db=db, notification_pks=data.ids, current_user=current_user)
    return {"updated": updated}


@router.get("/notifications/recipient", response_model=list[NotificationResponse])
def list_recipient_notifications(
    recipient_id: Optional[str] = None,
    recipient_role: Optional[str] = None,
    unread_only: bool = False,
    current_user: CurrentUser = Depends(PermissionChecker("canManageNotifications")),
    db: Session = Depends(get_db),
):
    return list_for_recipient(
        db=db,
        recipient_id=recipient_id,
        recipient_role=recipient_role,
        unread_only=unread_only,
    )


@router.get("/feedback/{feedback_pk}/notifications", response_model=list[NotificationResponse])
def list_feedback_notifications(
    feedback_pk: int,
    current_user: CurrentUser = Depends(PermissionChecker("canManageNotifications")),
    db: Session = Depends(get_db),
):
    return list_for_feedback(db=db, feedback_pk=feedback_pk)


@router.get("/notifications/{notification_pk}", response_model=NotificationResponse)
def get_notification(
    notification_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_notification_use_case(db=db, notification_pk=notification_pk, current_user=current_user)


@router.post("/notifications/{notification_pk}/read", response_model=NotificationResponse)
def mark_read(
    notification_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return mark_read_use_case(db=db, notification_pk=notification_pk, current_user=current_user)


@router.post("/notifications/{notification_pk}/send-email", response_model=NotificationResponse)
def send_notification_email(
    notification_pk: int,
    current_user: CurrentUser = Depends(PermissionChecker("canManageNotifications")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Send (or re-send) a notification by email."""
    return send_notification_email_use_case(db=db, notification_pk=notification_pk, channels=channels)


@router.delete("/notifications/{notification_pk}", status_code=204)
def delete_notification(
    notification_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    delete_notification_use_case(db=db, notification_pk=notification_pk, current_user=current_user)
    return Response(status_code=204)
