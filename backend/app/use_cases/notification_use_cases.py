"""Notification queries and read-state use-cases scoped to the caller."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..auth import CurrentUser, check_permission
from ..domain_errors import DomainError, forbidden, not_found, upstream_failure
from ..models import FeedbackNotification
from ..schemas import NotificationCreate
from ..services.clock import utcnow
from ..services.notification_dispatcher import NotificationIntent, deliver_email, dispatch
from ..services.pagination import Page, paginate
from ..services.side_effects import SideEffectChannels
from .feedback_lifecycle import get_feedback_or_404


def visible_to_user(current_user: CurrentUser):
    """Addressed to the user directly or to any role the user holds."""
    return or_(
        and_(
            FeedbackNotification.recipient_type == "user",
            FeedbackNotification.recipient_id == current_user.id,
        ),
        and_(
            FeedbackNotification.recipient_type == "role",
            FeedbackNotification.recipient_role.in_(current_user.all_roles),
        ),
    )


def is_visible_to(notification: FeedbackNotification, current_user: CurrentUser) -> bool:
    if notification.recipient_type == "user":
        return notification.recipient_id == current_user.id
    if notification.recipient_type == "role":
        return current_user.has_role(notification.recipient_role)
    return False


def _get_notification(db: Session, notification_pk: int) -> FeedbackNotification:
    notification = db.query(FeedbackNotification).filter(FeedbackNotification.id == notification_pk).first()
    if not notification:
        raise not_found("notification", notification_pk)
    return notification


def get_notification_use_case(
    *,
    db: Session,
    notification_pk: int,
    current_user: CurrentUser,
) -> FeedbackNotification:
    notification = _get_notification(db, notification_pk)
    if not is_visible_to(notification, current_user) and not check_permission(current_user, "canManageNotifications"):
        raise forbidden("NOTIFICATION_FORBIDDEN", "Notification is not addressed to you")
    return notification


def list_for_feedback(*, db: Session, feedback_pk: int) -> list[FeedbackNotification]:
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return (
        db.query(FeedbackNotification)
        .filter(FeedbackNotification.feedback_id == feedback_pk)
        .order_by(FeedbackNotification.created_at.desc(), FeedbackNotification.id.desc())
        .all()
    )


def list_for_current_user(
    *,
    db: Session,
    current_user: CurrentUser,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Page:
    query = db.query(FeedbackNotification).filter(visible_to_user(current_user))
    if unread_only:
        query = query.filter(FeedbackNotification.is_read.is_(False))
    query = query.order_by(FeedbackNotification.created_at.desc(), FeedbackNotification.id.desc())
    return paginate(query, page=page, limit=limit)


def list_for_recipient(
    *,
    db: Session,
    recipient_id: Optional[str] = None,
    recipient_role: Optional[str] = None,
    unread_only: bool = False,
) -> list[FeedbackNotification]:
    """Privileged lookup: direct user and/or role recipients, OR-combined."""
    clauses = []
    if recipient_id:
        clauses.append(
            and_(
                FeedbackNotification.recipient_type.in_(("user", "email")),
                FeedbackNotification.recipient_id == recipient_id,
            )
        )
    if recipient_role:
        clauses.append(
            and_(
                FeedbackNotification.recipient_type == "role",
                FeedbackNotification.recipient_role == recipient_role,
            )
        )
    if not clauses:
        raise DomainError(
            code="NOTIFICATION_RECIPIENT_REQUIRED",
            http_status=400,
            message="recipient_id or recipient_role is required",
        )

    query = db.query(FeedbackNotification).filter(or_(*clauses))
    if unread_only:
        query = query.filter(FeedbackNotification.is_read.is_(False))
    return query.order_by(FeedbackNotification.created_at.desc(), FeedbackNotification.id.desc()).all()


def unread_count_use_case(*, db: Session, current_user: CurrentUser) -> int:
    return (
        db.query(FeedbackNotification)
        .filter(visible_to_user(current_user), FeedbackNotification.is_read.is_(False))
        .count()
    )


def mark_read_use_case(*, db: Session, notification_pk: int, current_user: CurrentUser) -> FeedbackNotification:
    notification = _get_notification(db, notification_pk)
    if not is_visible_to(notification, current_user):
        raise forbidden("NOTIFICATION_FORBIDDEN", "Notification is not addressed to you")

    # Idempotent.
    if notification.is_read:
        return notification

    notification.is_read = True
    notification.read_at = utcnow()
    db.commit()
    db.refresh(notification)
    return notification


def mark_many_read_use_case(*, db: Session, notification_pks: list[int], current_user: CurrentUser) -> int:
    """Mark the visible subset of `notification_pks`; others are skipped."""
    updated = (
        db.query(FeedbackNotification)
        .filter(
            FeedbackNotification.id.in_(notification_pks),
            FeedbackNotification.is_read.is_(False),
            visible_to_user(current_user),
        )
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )
    db.commit()
    return int(updated)


def mark_all_read_use_case(*, db: Session, current_user: CurrentUser) -> int:
    updated = (
        db.query(FeedbackNotification)
        .filter(FeedbackNotification.is_read.is_(False), visible_to_user(current_user))
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )
    db.commit()
    return int(updated)


def delete_notification_use_case(*, db: Session, notification_pk: int, current_user: CurrentUser) -> None:
    notification = _get_notification(db, notification_pk)
    if not is_visible_to(notification, current_user) and not check_permission(current_user, "canManageNotifications"):
        raise forbidden("NOTIFICATION_FORBIDDEN", "Only the recipient or a notification manager can delete this")
    db.delete(notification)
    db.commit()


def create_notification_use_case(
    *,
    db: Session,
    data: NotificationCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> FeedbackNotification:
    """Manual notification created by a privileged user."""
    if data.feedback_id is not None:
        get_feedback_or_404(db=db, feedback_pk=data.feedback_id)
    if data.recipient_type == "role" and not data.recipient_role:
        raise DomainError(
            code="NOTIFICATION_RECIPIENT_REQUIRED",
            http_status=400,
            message="recipient_role is required for role notifications",
        )
    if data.recipient_type in ("user", "email") and not data.recipient_id:
        raise DomainError(
            code="NOTIFICATION_RECIPIENT_REQUIRED",
            http_status=400,
            message="recipient_id is required for user and email notifications",
        )

    intent = NotificationIntent(
        type=data.type,
        title=data.title,
        message=data.message,
        recipient_type=data.recipient_type,
        feedback_id=data.feedback_id,
        recipient_id=data.recipient_id,
        recipient_role=data.recipient_role,
        priority=data.priority,
        delivery_method=data.delivery_method,
        created_by=current_user.id,
    )
    notification = dispatch(db, intent, email_channel=channels.email)
    db.refresh(notification)
    return notification


def send_notification_email_use_case(
    *,
    db: Session,
    notification_pk: int,
    channels: SideEffectChannels,
) -> FeedbackNotification:
    """Manual (re)send of an existing notification by email."""
    notification = _get_notification(db, notification_pk)
    delivered, error = deliver_email(db, notification, channels.email)
    if not delivered:
        raise upstream_failure(
            "EMAIL_DELIVERY_FAILED",
            "Email delivery failed",
            {"notification_id": notification.notification_id, "error": error},
        )
    db.refresh(notification)
    return notification
