"""Turns domain events into notification rows and optional email delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..models import FeedbackComment, FeedbackNotification, ProductionFeedback, ProductionIssue, QualityCheck
from .clock import utcnow
from .email_channel import EmailChannel
from .identifiers import NOTIFICATION_PREFIX, generate_unique_id

logger = logging.getLogger(__name__)

MANAGER_ROLE = "production_manager"

STATUS_MESSAGES: dict[str, str] = {
    "pending": "Production is waiting to start",
    "in_progress": "Production has started",
    "completed": "Production has finished",
    "failed": "Production has failed",
    "cancelled": "Production has been cancelled",
}


@dataclass(frozen=True)
class NotificationIntent:
    """A notification to be created once the triggering write has committed."""

    type: str
    title: str
    message: str
    recipient_type: str
    feedback_id: Optional[int] = None
    recipient_id: Optional[str] = None
    recipient_role: Optional[str] = None
    priority: str = "medium"
    delivery_method: str = "in_app"
    created_by: Optional[str] = None

    @property
    def wants_email(self) -> bool:
        return self.delivery_method in ("email", "both")


def _feedback_label(feedback: ProductionFeedback) -> str:
    if feedback.batch_id:
        return f"{feedback.product_name} (batch {feedback.batch_id})"
    return f"{feedback.product_name} (production {feedback.production_id})"


def comment_intent(
    comment: FeedbackComment,
    feedback: ProductionFeedback,
    parent: Optional[FeedbackComment] = None,
) -> NotificationIntent:
    """Replies go to the parent author, everything else to the production managers."""
    title = "New Important Comment" if comment.is_important else "New Comment"
    author = comment.user_name or comment.user_id
    priority = "high" if comment.is_important else "medium"

    if parent is not None and parent.user_id and parent.user_id != comment.user_id:
        return NotificationIntent(
            type="comment",
            title=title,
            message=f"{author} replied to your comment on {_feedback_label(feedback)}",
            recipient_type="user",
            recipient_id=parent.user_id,
            feedback_id=feedback.id,
            priority=priority,
            created_by=comment.user_id,
        )
    return NotificationIntent(
        type="comment",
        title=title,
        message=f"{author} commented on {_feedback_label(feedback)}",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority=priority,
        created_by=comment.user_id,
    )


def status_change_intent(
    feedback: ProductionFeedback,
    new_status: str,
    *,
    created_by: Optional[str] = None,
) -> NotificationIntent:
    message = STATUS_MESSAGES.get(new_status, f"Production status changed to {new_status}")
    return NotificationIntent(
        type="completion" if new_status == "completed" else "status_update",
        title=f"Production Status: {new_status.upper()}",
        message=f"{message}: {_feedback_label(feedback)}",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority="high" if new_status == "failed" else "medium",
        created_by=created_by,
    )


def issue_intent(issue: ProductionIssue, feedback: ProductionFeedback) -> NotificationIntent:
    return NotificationIntent(
        type="issue",
        title=f"Production Issue Reported - {issue.issue_type}",
        message=f"[{issue.severity}] {issue.description} ({_feedback_label(feedback)})",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority="high" if issue.severity == "critical" else "medium",
        created_by=issue.reported_by,
    )


def quality_issue_intent(
    check: QualityCheck,
    feedback: ProductionFeedback,
    *,
    created_by: Optional[str] = None,
) -> NotificationIntent:
    return NotificationIntent(
        type="quality_issue",
        title="Quality Issue Detected",
        message=f"Quality check \"{check.check_name}\" failed on {_feedback_label(feedback)}",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority="high",
        created_by=created_by,
    )


def quality_batch_issue_intent(
    failed: int,
    total: int,
    feedback: ProductionFeedback,
    *,
    created_by: Optional[str] = None,
) -> NotificationIntent:
    """One alert for a batch of checks with at least one failure."""
    return NotificationIntent(
        type="quality_issue",
        title="Multiple Quality Issues Detected",
        message=f"{failed} of {total} quality checks failed on {_feedback_label(feedback)}",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority="high",
        created_by=created_by,
    )


def feedback_created_intent(feedback: ProductionFeedback) -> NotificationIntent:
    return NotificationIntent(
        type="other",
        title="New Production Feedback",
        message=f"Feedback {feedback.feedback_id} opened for {_feedback_label(feedback)}",
        recipient_type="role",
        recipient_role=MANAGER_ROLE,
        feedback_id=feedback.id,
        priority="low",
        created_by=feedback.created_by,
    )


def render_email_body(notification: FeedbackNotification) -> str:
    lines = [f"<h2>{notification.title}</h2>", f"<p>{notification.message}</p>"]
    feedback = notification.feedback
    if feedback is not None:
        lines.append(f"<p>Related production: {_feedback_label(feedback)}</p>")
    lines.append("<p>Sign in to the system to see the details.</p>")
    return "\n".join(lines)


def deliver_email(
    db: Session,
    notification: FeedbackNotification,
    email_channel: EmailChannel,
) -> tuple[bool, str | None]:
    """Attempt email delivery and record the outcome on the row."""
    recipient = notification.recipient_id or notification.recipient_role
    delivered, error = email_channel.send(
        recipient_type=notification.recipient_type,
        recipient_id=recipient,
        subject=notification.title,
        body=render_email_body(notification),
        priority=notification.priority,
    )
    if delivered:
        notification.is_delivered = True
        notification.delivered_at = utcnow()
        notification.delivery_error = None
        logger.info("Notification %s delivered by email", notification.notification_id)
    else:
        notification.delivery_error = error
        logger.warning("Email delivery failed for notification %s: %s", notification.notification_id, error)
    db.commit()
    return delivered, error


def dispatch(
    db: Session,
    intent: NotificationIntent,
    *,
    email_channel: EmailChannel,
) -> FeedbackNotification:
    """Create the notification row, then attempt email delivery when requested."""
    notification = FeedbackNotification(
        notification_id=generate_unique_id(NOTIFICATION_PREFIX),
        feedback_id=intent.feedback_id,
        type=intent.type,
        title=intent.title,
        message=intent.message,
        recipient_type=intent.recipient_type,
        recipient_id=intent.recipient_id,
        recipient_role=intent.recipient_role,
        priority=intent.priority,
        delivery_method=intent.delivery_method,
        is_read=False,
        is_delivered=False,
        created_by=intent.created_by,
    )
    db.add(notification)
    db.commit()

    if intent.wants_email:
        deliver_email(db, notification, email_channel)
    return notification
