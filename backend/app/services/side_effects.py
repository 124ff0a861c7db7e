"""Post-commit notification and marketplace intents collected by use cases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ..models import TERMINAL_FEEDBACK_STATUSES, ProductionFeedback
from .email_channel import EmailChannel
from .marketplace_sync import MarketplaceClient, MarketplaceUpdateResult, sync_feedback
from .notification_dispatcher import NotificationIntent, dispatch, status_change_intent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectChannels:
    email: EmailChannel
    marketplace: MarketplaceClient


def get_side_effect_channels() -> SideEffectChannels:
    """FastAPI dependency; overridden in tests."""
    return SideEffectChannels(
        email=EmailChannel.from_settings(),
        marketplace=MarketplaceClient.from_settings(),
    )


@dataclass
class PostCommitEffects:
    notifications: list[NotificationIntent] = field(default_factory=list)
    sync_feedback_ids: list[int] = field(default_factory=list)

    def notify(self, intent: NotificationIntent) -> None:
        self.notifications.append(intent)

    def sync(self, feedback_id: int) -> None:
        if feedback_id not in self.sync_feedback_ids:
            self.sync_feedback_ids.append(feedback_id)

    def merge(self, other: "PostCommitEffects") -> None:
        self.notifications.extend(other.notifications)
        for feedback_id in other.sync_feedback_ids:
            self.sync(feedback_id)

    def __bool__(self) -> bool:
        return bool(self.notifications or self.sync_feedback_ids)


@dataclass
class PostCommitReport:
    notification_ids: list[str] = field(default_factory=list)
    marketplace_update: Optional[MarketplaceUpdateResult] = None
    errors: list[str] = field(default_factory=list)


def status_change_effects(
    feedback: ProductionFeedback,
    *,
    old_status: str,
    new_status: str,
    actor_id: Optional[str] = None,
) -> PostCommitEffects:
    """Notify on any change; sync when the new status is terminal."""
    effects = PostCommitEffects()
    if old_status == new_status:
        return effects
    effects.notify(status_change_intent(feedback, new_status, created_by=actor_id))
    if new_status in TERMINAL_FEEDBACK_STATUSES:
        effects.sync(feedback.id)
    return effects


def run_post_commit_effects(
    db: Session,
    effects: PostCommitEffects,
    *,
    channels: SideEffectChannels,
) -> PostCommitReport:
    """Run each effect in isolation after the primary write has committed."""
    report = PostCommitReport()

    for intent in effects.notifications:
        try:
            notification = dispatch(db, intent, email_channel=channels.email)
            report.notification_ids.append(notification.notification_id)
        except Exception as e:
            db.rollback()
            logger.error("Failed to create %s notification for feedback %s", intent.type, intent.feedback_id, exc_info=True)
            report.errors.append(f"notification:{intent.type}: {e}")

    for feedback_id in effects.sync_feedback_ids:
        try:
            feedback = db.query(ProductionFeedback).filter(ProductionFeedback.id == feedback_id).first()
            if feedback is None:
                continue
            report.marketplace_update = sync_feedback(db, feedback, channels.marketplace)
        except Exception as e:
            db.rollback()
            logger.error("Marketplace sync crashed for feedback %s", feedback_id, exc_info=True)
            report.errors.append(f"marketplace:{feedback_id}: {e}")
            report.marketplace_update = MarketplaceUpdateResult(
                success=False,
                attempted=True,
                message="Marketplace update failed",
                error=str(e),
            )

    return report
