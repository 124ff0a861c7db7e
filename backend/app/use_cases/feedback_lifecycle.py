"""Feedback record lifecycle use-cases used by feedback router endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..domain_errors import DomainError, conflict, not_found
from ..models import FEEDBACK_STATUSES, TERMINAL_FEEDBACK_STATUSES, ProductionFeedback
from ..schemas import FeedbackCreate, FeedbackUpdate
from ..services.clock import utcnow
from ..services.feedback_locks import feedback_lock, lock_feedback_row
from ..services.identifiers import FEEDBACK_PREFIX, generate_unique_id
from ..services.marketplace_sync import MarketplaceUpdateResult, sync_feedback
from ..services.notification_dispatcher import feedback_created_intent
from ..services.pagination import Page, paginate
from ..services.side_effects import (
    PostCommitEffects,
    SideEffectChannels,
    run_post_commit_effects,
    status_change_effects,
)

logger = logging.getLogger(__name__)

_REQUIRED_FEEDBACK_FIELDS = frozenset({"product_name", "quantity_ordered"})


@dataclass(frozen=True)
class FeedbackMutationResult:
    feedback: ProductionFeedback
    marketplace_update: Optional[MarketplaceUpdateResult] = None


def get_feedback_or_404(*, db: Session, feedback_pk: int) -> ProductionFeedback:
    feedback = db.query(ProductionFeedback).filter(ProductionFeedback.id == feedback_pk).first()
    if not feedback:
        raise not_found("feedback", feedback_pk)
    return feedback


def get_feedback_by_external_id(*, db: Session, feedback_id: str) -> ProductionFeedback:
    feedback = db.query(ProductionFeedback).filter(ProductionFeedback.feedback_id == feedback_id).first()
    if not feedback:
        raise not_found("feedback", feedback_id)
    return feedback


def get_feedback_by_production_id(*, db: Session, production_id: str) -> ProductionFeedback:
    feedback = db.query(ProductionFeedback).filter(ProductionFeedback.production_id == production_id).first()
    if not feedback:
        raise not_found("feedback", production_id)
    return feedback


def list_feedback_by_batch(*, db: Session, batch_id: str) -> list[ProductionFeedback]:
    return (
        db.query(ProductionFeedback)
        .filter(ProductionFeedback.batch_id == batch_id)
        .order_by(ProductionFeedback.created_at.desc(), ProductionFeedback.id.desc())
        .all()
    )


def create_feedback_use_case(
    *,
    db: Session,
    data: FeedbackCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> ProductionFeedback:
    """Open a feedback record for one production run."""
    existing = db.query(ProductionFeedback.id).filter(
        ProductionFeedback.production_id == data.production_id,
    ).first()
    if existing:
        raise conflict(
            "FEEDBACK_ALREADY_EXISTS",
            "Feedback already exists for this production",
            {"production_id": data.production_id},
        )

    feedback = ProductionFeedback(
        feedback_id=generate_unique_id(FEEDBACK_PREFIX),
        production_id=data.production_id,
        batch_id=data.batch_id,
        product_id=data.product_id,
        product_name=data.product_name,
        quantity_ordered=data.quantity_ordered,
        status="pending",
        completion_percentage=0,
        quantity_produced=0,
        quantity_rejected=0,
        start_date=data.start_date or utcnow(),
        end_date=data.end_date,
        notes=data.notes,
        customer_notes=data.customer_notes,
        created_by=current_user.id,
        updated_by=current_user.id,
    )
    db.add(feedback)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise conflict(
            "FEEDBACK_ALREADY_EXISTS",
            "Feedback already exists for this production",
            {"production_id": data.production_id},
        )

    effects = PostCommitEffects()
    effects.notify(feedback_created_intent(feedback))
    run_post_commit_effects(db, effects, channels=channels)
    db.refresh(feedback)
    return feedback


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def list_feedback_use_case(
    *,
    db: Session,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    product_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Page:
    """Filtered, paginated listing (newest first)."""
    if status is not None and status not in FEEDBACK_STATUSES:
        raise DomainError(
            code="FEEDBACK_INVALID_STATUS_FILTER",
            http_status=400,
            message=f"Unknown status filter: {status}",
        )

    query = db.query(ProductionFeedback)
    if status:
        query = query.filter(ProductionFeedback.status == status)
    if start_date:
        query = query.filter(ProductionFeedback.created_at >= _day_start(start_date))
    if end_date:
        # Inclusive of the whole end day.
        query = query.filter(ProductionFeedback.created_at < _day_start(end_date) + timedelta(days=1))
    if product_id:
        query = query.filter(ProductionFeedback.product_id.ilike(f"%{product_id}%"))
    if batch_id:
        query = query.filter(ProductionFeedback.batch_id.ilike(f"%{batch_id}%"))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                ProductionFeedback.feedback_id.ilike(pattern),
                ProductionFeedback.production_id.ilike(pattern),
                ProductionFeedback.batch_id.ilike(pattern),
                ProductionFeedback.product_id.ilike(pattern),
                ProductionFeedback.product_name.ilike(pattern),
            )
        )

    query = query.order_by(ProductionFeedback.created_at.desc(), ProductionFeedback.id.desc())
    return paginate(query, page=page, limit=limit)


def update_feedback_use_case(
    *,
    db: Session,
    feedback_pk: int,
    data: FeedbackUpdate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> FeedbackMutationResult:
    """Update user-settable fields; re-push to the marketplace when already terminal."""
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)

    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        if value is None and field_name in _REQUIRED_FEEDBACK_FIELDS:
            continue
        setattr(feedback, field_name, value)
    feedback.updated_by = current_user.id
    db.commit()

    marketplace_update = None
    if feedback.status in TERMINAL_FEEDBACK_STATUSES:
        effects = PostCommitEffects()
        effects.sync(feedback.id)
        marketplace_update = run_post_commit_effects(db, effects, channels=channels).marketplace_update

    db.refresh(feedback)
    return FeedbackMutationResult(feedback=feedback, marketplace_update=marketplace_update)


def cancel_feedback_use_case(
    *,
    db: Session,
    feedback_pk: int,
    current_user: CurrentUser,
    channels: SideEffectChannels,
    reason: Optional[str] = None,
) -> FeedbackMutationResult:
    """Soft-delete: mark cancelled and append a note. Idempotent."""
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)

    with feedback_lock(feedback_pk):
        feedback = lock_feedback_row(db, feedback_pk)
        old_status = feedback.status
        if old_status == "cancelled":
            db.commit()
            return FeedbackMutationResult(feedback=feedback)

        stamp = utcnow().strftime("%Y-%m-%d %H:%M UTC")
        note = f"[{stamp}] Cancelled by {current_user.username}"
        if reason:
            note = f"{note}: {reason}"
        feedback.notes = f"{feedback.notes}\n{note}" if feedback.notes else note
        feedback.status = "cancelled"
        feedback.updated_by = current_user.id
        db.commit()

    logger.info("Feedback %s cancelled by %s", feedback.feedback_id, current_user.id)
    effects = status_change_effects(
        feedback,
        old_status=old_status,
        new_status="cancelled",
        actor_id=current_user.id,
    )
    report = run_post_commit_effects(db, effects, channels=channels)
    db.refresh(feedback)
    return FeedbackMutationResult(feedback=feedback, marketplace_update=report.marketplace_update)


def production_summary_use_case(*, db: Session, now: Optional[datetime] = None) -> dict:
    """Counts by status plus quantity totals and average completion."""
    now = now or utcnow()
    status_counts = {status: 0 for status in FEEDBACK_STATUSES}
    for status, count in (
        db.query(ProductionFeedback.status, func.count(ProductionFeedback.id))
        .group_by(ProductionFeedback.status)
        .all()
    ):
        status_counts[status] = int(count)

    completed_recent = db.query(func.count(ProductionFeedback.id)).filter(
        ProductionFeedback.status == "completed",
        ProductionFeedback.end_date >= now - timedelta(days=30),
    ).scalar()

    totals = db.query(
        func.coalesce(func.sum(ProductionFeedback.quantity_ordered), 0),
        func.coalesce(func.sum(ProductionFeedback.quantity_produced), 0),
        func.coalesce(func.sum(ProductionFeedback.quantity_rejected), 0),
    ).one()

    average_completion = db.query(func.avg(ProductionFeedback.completion_percentage)).filter(
        ProductionFeedback.status != "cancelled",
    ).scalar()

    return {
        "total": sum(status_counts.values()),
        "status_counts": status_counts,
        "completed_last_30_days": int(completed_recent or 0),
        "total_quantity_ordered": int(totals[0]),
        "total_quantity_produced": int(totals[1]),
        "total_quantity_rejected": int(totals[2]),
        "average_completion": round(float(average_completion or 0), 2),
    }


def send_marketplace_update_use_case(
    *,
    db: Session,
    feedback_pk: int,
    channels: SideEffectChannels,
) -> MarketplaceUpdateResult:
    """Operator-initiated (re)send regardless of the previous sync outcome."""
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return sync_feedback(db, feedback, channels.marketplace)


def list_failed_sync_feedback_ids(*, db: Session) -> list[int]:
    rows = (
        db.query(ProductionFeedback.id)
        .filter(ProductionFeedback.marketplace_update_status == "failed")
        .order_by(ProductionFeedback.marketplace_last_update)
        .all()
    )
    return [row.id for row in rows]
