"""Helpers for keeping ProductionFeedback status/completion consistent with its steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..domain_errors import not_found
from ..models import ProductionStep
from .clock import utcnow
from .feedback_locks import feedback_lock, lock_feedback_row

logger = logging.getLogger(__name__)


def rounded_percentage(part: int, total: int) -> int:
    """round(100 * part / total) with halves rounded up."""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


@dataclass(frozen=True)
class FeedbackProgress:
    status: str
    completion_percentage: int
    quantity_produced: int
    quantity_rejected: int
    total_steps: int
    completed_steps: int


@dataclass(frozen=True)
class StatusRecomputeResult:
    feedback_id: int
    old_status: str
    new_status: str
    progress: Optional[FeedbackProgress] = None

    @property
    def status_changed(self) -> bool:
        return self.old_status != self.new_status


def _derive_status(statuses: list[str]) -> str:
    if any(s == "in_progress" for s in statuses):
        return "in_progress"
    if all(s == "completed" for s in statuses):
        return "completed"
    if any(s == "failed" for s in statuses):
        return "failed"
    return "pending"


def compute_feedback_progress(steps: Iterable) -> Optional[FeedbackProgress]:
    """Derive status, completion and quantities from a feedback's steps (None when there are none)."""
    steps = list(steps)
    if not steps:
        return None

    statuses = [str(step.status) for step in steps]
    completed = sum(1 for s in statuses if s == "completed")
    return FeedbackProgress(
        status=_derive_status(statuses),
        completion_percentage=rounded_percentage(completed, len(steps)),
        quantity_produced=sum(int(step.quantity_passed or 0) for step in steps),
        quantity_rejected=sum(int(step.quantity_rejected or 0) for step in steps),
        total_steps=len(steps),
        completed_steps=completed,
    )


def apply_feedback_progress(feedback, progress: FeedbackProgress, *, now: datetime) -> None:
    """Write derived fields onto the feedback. A cancelled feedback keeps its status."""
    feedback.completion_percentage = progress.completion_percentage
    if progress.quantity_produced > 0:
        feedback.quantity_produced = progress.quantity_produced
    if progress.quantity_rejected > 0:
        feedback.quantity_rejected = progress.quantity_rejected

    if feedback.status == "cancelled":
        return

    if progress.status == "completed" and feedback.end_date is None:
        feedback.end_date = now
    feedback.status = progress.status


def recompute_feedback_status(
    db: Session,
    *,
    feedback_id: int,
    now: Optional[datetime] = None,
) -> StatusRecomputeResult:
    """Recompute and persist derived fields of one feedback under its lock."""
    with feedback_lock(feedback_id):
        feedback = lock_feedback_row(db, feedback_id)
        if feedback is None:
            raise not_found("feedback", feedback_id)

        steps = (
            db.query(ProductionStep)
            .filter(ProductionStep.feedback_id == feedback_id)
            .order_by(ProductionStep.step_order)
            .all()
        )
        old_status = feedback.status
        progress = compute_feedback_progress(steps)
        if progress is not None:
            apply_feedback_progress(feedback, progress, now=now or utcnow())
        # Read under the lock; the row expires on commit.
        new_status = feedback.status
        external_id = feedback.feedback_id
        completion = feedback.completion_percentage
        db.commit()

    if new_status != old_status:
        logger.info(
            "Feedback %s status %s -> %s (%s%% complete)",
            external_id,
            old_status,
            new_status,
            completion,
        )
    return StatusRecomputeResult(
        feedback_id=feedback_id,
        old_status=old_status,
        new_status=new_status,
        progress=progress,
    )
