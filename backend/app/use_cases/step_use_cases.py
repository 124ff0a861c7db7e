"""Production step use-cases; every mutation re-runs the status aggregator."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..domain_errors import DomainError, conflict, not_found, validation_error
from ..models import ProductionFeedback, ProductionStep, QualityCheck
from ..schemas import StepCreate, StepUpdate
from ..services.clock import utcnow
from ..services.identifiers import STEP_PREFIX, generate_unique_id
from ..services.marketplace_sync import MarketplaceUpdateResult
from ..services.side_effects import (
    PostCommitEffects,
    SideEffectChannels,
    run_post_commit_effects,
    status_change_effects,
)
from ..services.status_aggregator import recompute_feedback_status
from ..services.step_rules import append_note, apply_status_timestamps, duplicate_orders
from .feedback_lifecycle import get_feedback_or_404

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepMutationResult:
    feedback: ProductionFeedback
    steps: list[ProductionStep] = field(default_factory=list)
    marketplace_update: Optional[MarketplaceUpdateResult] = None
    recompute_error: Optional[str] = None


def get_step_or_404(*, db: Session, step_pk: int) -> ProductionStep:
    step = db.query(ProductionStep).filter(ProductionStep.id == step_pk).first()
    if not step:
        raise not_found("step", step_pk)
    return step


def get_step_by_external_id(*, db: Session, step_id: str) -> ProductionStep:
    step = db.query(ProductionStep).filter(ProductionStep.step_id == step_id).first()
    if not step:
        raise not_found("step", step_id)
    return step


def list_steps_for_feedback(*, db: Session, feedback_pk: int) -> list[ProductionStep]:
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return (
        db.query(ProductionStep)
        .filter(ProductionStep.feedback_id == feedback_pk)
        .order_by(ProductionStep.step_order)
        .all()
    )


def list_steps_by_machine(*, db: Session, machine_id: str) -> list[ProductionStep]:
    return (
        db.query(ProductionStep)
        .filter(ProductionStep.machine_id == machine_id)
        .order_by(ProductionStep.start_time.desc(), ProductionStep.id.desc())
        .all()
    )


def list_steps_by_operator(*, db: Session, operator_id: str) -> list[ProductionStep]:
    return (
        db.query(ProductionStep)
        .filter(ProductionStep.operator_id == operator_id)
        .order_by(ProductionStep.start_time.desc(), ProductionStep.id.desc())
        .all()
    )


def _existing_orders(db: Session, feedback_pk: int, *, exclude_step_pk: int | None = None) -> list[int]:
    query = db.query(ProductionStep.step_order).filter(ProductionStep.feedback_id == feedback_pk)
    if exclude_step_pk is not None:
        query = query.filter(ProductionStep.id != exclude_step_pk)
    return [row.step_order for row in query.all()]


def _order_conflict(orders: list[int]) -> DomainError:
    return conflict(
        "STEP_ORDER_CONFLICT",
        "Step order must be unique within a feedback",
        {"duplicate_orders": orders},
    )


def _stamp(step: ProductionStep, *, keep_end_time: bool = False) -> None:
    try:
        apply_status_timestamps(step, now=utcnow(), keep_end_time=keep_end_time)
    except ValueError as exc:
        raise validation_error("STEP_INVALID_TIMES", str(exc))


def _commit_step_write(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        # Another writer took the same order between our check and commit.
        db.rollback()
        raise _order_conflict([])


def refresh_feedback_after_step_write(
    *,
    db: Session,
    feedback_pk: int,
    channels: SideEffectChannels,
    actor_id: Optional[str] = None,
) -> tuple[ProductionFeedback, Optional[MarketplaceUpdateResult], Optional[str]]:
    """Recompute derived state; the already-committed step write survives a failure here."""
    recompute_error = None
    effects = PostCommitEffects()
    try:
        result = recompute_feedback_status(db, feedback_id=feedback_pk)
    except Exception as exc:
        db.rollback()
        logger.exception("Status recompute failed for feedback %s", feedback_pk)
        recompute_error = f"{type(exc).__name__}: {exc}"
    else:
        if result.status_changed:
            feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
            effects = status_change_effects(
                feedback,
                old_status=result.old_status,
                new_status=result.new_status,
                actor_id=actor_id,
            )

    report = run_post_commit_effects(db, effects, channels=channels)
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return feedback, report.marketplace_update, recompute_error


def _result(
    *,
    db: Session,
    feedback_pk: int,
    steps: list[ProductionStep],
    channels: SideEffectChannels,
    current_user: CurrentUser,
) -> StepMutationResult:
    feedback, marketplace_update, recompute_error = refresh_feedback_after_step_write(
        db=db,
        feedback_pk=feedback_pk,
        channels=channels,
        actor_id=current_user.id,
    )
    for step in steps:
        if step in db:
            db.refresh(step)
    return StepMutationResult(
        feedback=feedback,
        steps=steps,
        marketplace_update=marketplace_update,
        recompute_error=recompute_error,
    )


def _new_step(feedback_pk: int, data: StepCreate) -> ProductionStep:
    step = ProductionStep(
        step_id=generate_unique_id(STEP_PREFIX),
        feedback_id=feedback_pk,
        **data.model_dump(),
    )
    _stamp(step, keep_end_time=data.end_time is not None)
    return step


def create_step_use_case(
    *,
    db: Session,
    feedback_pk: int,
    data: StepCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> StepMutationResult:
    """Record one step."""
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)

    clashes = duplicate_orders([data.step_order], existing=_existing_orders(db, feedback_pk))
    if clashes:
        raise _order_conflict(clashes)

    step = _new_step(feedback_pk, data)
    db.add(step)
    _commit_step_write(db)
    return _result(db=db, feedback_pk=feedback_pk, steps=[step], channels=channels, current_user=current_user)


def create_steps_batch_use_case(
    *,
    db: Session,
    feedback_pk: int,
    steps_data: list[StepCreate],
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> StepMutationResult:
    """Record several steps atomically; rejects duplicate orders within the batch or against existing steps."""
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    if not steps_data:
        raise validation_error("STEP_BATCH_EMPTY", "At least one step is required")

    clashes = duplicate_orders(
        [item.step_order for item in steps_data],
        existing=_existing_orders(db, feedback_pk),
    )
    if clashes:
        raise _order_conflict(clashes)

    steps = [_new_step(feedback_pk, item) for item in steps_data]
    db.add_all(steps)
    _commit_step_write(db)
    return _result(db=db, feedback_pk=feedback_pk, steps=steps, channels=channels, current_user=current_user)


def update_step_use_case(
    *,
    db: Session,
    step_pk: int,
    data: StepUpdate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> StepMutationResult:
    step = get_step_or_404(db=db, step_pk=step_pk)
    changes = data.model_dump(exclude_unset=True)

    new_order = changes.get("step_order")
    if new_order is not None and new_order != step.step_order:
        clashes = duplicate_orders(
            [new_order],
            existing=_existing_orders(db, step.feedback_id, exclude_step_pk=step.id),
        )
        if clashes:
            raise _order_conflict(clashes)

    for field_name, value in changes.items():
        if value is None and field_name in ("step_name", "step_order", "status"):
            continue
        setattr(step, field_name, value)
    _stamp(step, keep_end_time="end_time" in changes)
    _commit_step_write(db)
    return _result(db=db, feedback_pk=step.feedback_id, steps=[step], channels=channels, current_user=current_user)


def update_step_status_use_case(
    *,
    db: Session,
    step_pk: int,
    status: str,
    notes: Optional[str],
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> StepMutationResult:
    """Status-only transition with automatic start/end timestamps."""
    step = get_step_or_404(db=db, step_pk=step_pk)
    step.status = status
    step.notes = append_note(step.notes, notes)
    _stamp(step)
    db.commit()
    return _result(db=db, feedback_pk=step.feedback_id, steps=[step], channels=channels, current_user=current_user)


def delete_step_use_case(
    *,
    db: Session,
    step_pk: int,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> StepMutationResult:
    step = get_step_or_404(db=db, step_pk=step_pk)
    feedback_pk = step.feedback_id

    db.query(QualityCheck).filter(QualityCheck.step_id == step.id).update(
        {QualityCheck.step_id: None},
        synchronize_session=False,
    )
    db.delete(step)
    db.commit()
    return _result(db=db, feedback_pk=feedback_pk, steps=[], channels=channels, current_user=current_user)
