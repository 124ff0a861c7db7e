"""Quality check use-cases; every mutation re-runs the quality score calculator."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..domain_errors import not_found, validation_error
from ..models import ProductionStep, QualityCheck
from ..schemas import QualityCheckCreate, QualityCheckUpdate
from ..services.clock import utcnow
from ..services.identifiers import QUALITY_CHECK_PREFIX, generate_unique_id
from ..services.notification_dispatcher import quality_batch_issue_intent, quality_issue_intent
from ..services.quality_score import build_quality_summary, determine_check_result, recompute_quality_score
from ..services.side_effects import PostCommitEffects, SideEffectChannels, run_post_commit_effects
from ..services.step_rules import append_note
from .feedback_lifecycle import get_feedback_or_404

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityMutationResult:
    checks: list[QualityCheck] = field(default_factory=list)
    quality_score: Optional[int] = None
    recompute_error: Optional[str] = None


def get_check_or_404(*, db: Session, check_pk: int) -> QualityCheck:
    check = db.query(QualityCheck).filter(QualityCheck.id == check_pk).first()
    if not check:
        raise not_found("quality_check", check_pk)
    return check


def get_check_by_external_id(*, db: Session, check_id: str) -> QualityCheck:
    check = db.query(QualityCheck).filter(QualityCheck.check_id == check_id).first()
    if not check:
        raise not_found("quality_check", check_id)
    return check


def list_checks_for_feedback(*, db: Session, feedback_pk: int) -> list[QualityCheck]:
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return (
        db.query(QualityCheck)
        .filter(QualityCheck.feedback_id == feedback_pk)
        .order_by(QualityCheck.check_date.desc(), QualityCheck.id.desc())
        .all()
    )


def list_checks_for_step(*, db: Session, step_pk: int) -> list[QualityCheck]:
    if not db.query(ProductionStep.id).filter(ProductionStep.id == step_pk).first():
        raise not_found("step", step_pk)
    return (
        db.query(QualityCheck)
        .filter(QualityCheck.step_id == step_pk)
        .order_by(QualityCheck.check_date.desc(), QualityCheck.id.desc())
        .all()
    )


def _ensure_step_belongs(db: Session, *, feedback_pk: int, step_pk: Optional[int]) -> None:
    if step_pk is None:
        return
    step = db.query(ProductionStep).filter(ProductionStep.id == step_pk).first()
    if not step:
        raise not_found("step", step_pk)
    if step.feedback_id != feedback_pk:
        raise validation_error(
            "QUALITY_CHECK_STEP_MISMATCH",
            "Step does not belong to this feedback",
            {"step_id": step_pk, "feedback_id": feedback_pk},
        )


def _new_check(feedback_pk: int, data: QualityCheckCreate) -> QualityCheck:
    values = data.model_dump()
    values["result"] = determine_check_result(
        result=data.result,
        measurement_value=data.measurement_value,
        tolerance_min=data.tolerance_min,
        tolerance_max=data.tolerance_max,
    ) or "pending"
    values["check_date"] = data.check_date or utcnow()
    return QualityCheck(
        check_id=generate_unique_id(QUALITY_CHECK_PREFIX),
        feedback_id=feedback_pk,
        **values,
    )


def _refresh_score(*, db: Session, feedback_pk: int, checks: list[QualityCheck]) -> QualityMutationResult:
    recompute_error = None
    score = None
    try:
        score = recompute_quality_score(db, feedback_id=feedback_pk)
    except Exception as exc:
        db.rollback()
        logger.exception("Quality score recompute failed for feedback %s", feedback_pk)
        recompute_error = f"{type(exc).__name__}: {exc}"
        score = get_feedback_or_404(db=db, feedback_pk=feedback_pk).quality_score

    for check in checks:
        if check in db:
            db.refresh(check)
    return QualityMutationResult(checks=checks, quality_score=score, recompute_error=recompute_error)


def _alert_on_failure(
    *,
    db: Session,
    check: QualityCheck,
    previous_result: Optional[str],
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> None:
    if check.result != "failed" or previous_result == "failed":
        return
    feedback = get_feedback_or_404(db=db, feedback_pk=check.feedback_id)
    effects = PostCommitEffects()
    effects.notify(quality_issue_intent(check, feedback, created_by=current_user.id))
    run_post_commit_effects(db, effects, channels=channels)


def create_check_use_case(
    *,
    db: Session,
    feedback_pk: int,
    data: QualityCheckCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> QualityMutationResult:
    """Record one check; a failing result alerts the production managers."""
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    _ensure_step_belongs(db, feedback_pk=feedback_pk, step_pk=data.step_id)

    check = _new_check(feedback_pk, data)
    db.add(check)
    db.commit()
    result = _refresh_score(db=db, feedback_pk=feedback_pk, checks=[check])
    _alert_on_failure(db=db, check=check, previous_result=None, current_user=current_user, channels=channels)
    return result


def create_checks_batch_use_case(
    *,
    db: Session,
    feedback_pk: int,
    checks_data: list[QualityCheckCreate],
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> QualityMutationResult:
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    if not checks_data:
        raise validation_error("QUALITY_BATCH_EMPTY", "At least one check is required")
    for item in checks_data:
        _ensure_step_belongs(db, feedback_pk=feedback_pk, step_pk=item.step_id)

    checks = [_new_check(feedback_pk, item) for item in checks_data]
    db.add_all(checks)
    db.commit()
    result = _refresh_score(db=db, feedback_pk=feedback_pk, checks=checks)

    failed = sum(1 for check in checks if check.result == "failed")
    if failed:
        effects = PostCommitEffects()
        effects.notify(
            quality_batch_issue_intent(
                failed,
                len(checks),
                get_feedback_or_404(db=db, feedback_pk=feedback_pk),
                created_by=current_user.id,
            )
        )
        run_post_commit_effects(db, effects, channels=channels)
    return result


def update_check_use_case(
    *,
    db: Session,
    check_pk: int,
    data: QualityCheckUpdate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> QualityMutationResult:
    """Update fields; re-derive the result from the measurement when no explicit result is given."""
    check = get_check_or_404(db=db, check_pk=check_pk)
    previous_result = check.result
    changes = data.model_dump(exclude_unset=True)

    for field_name, value in changes.items():
        if value is None and field_name in ("check_type", "check_name", "result", "check_date"):
            continue
        setattr(check, field_name, value)

    if changes.get("result") is None and changes.keys() & {"measurement_value", "tolerance_min", "tolerance_max"}:
        derived = determine_check_result(
            result=None,
            measurement_value=check.measurement_value,
            tolerance_min=check.tolerance_min,
            tolerance_max=check.tolerance_max,
        )
        if derived is not None:
            check.result = derived

    db.commit()
    result = _refresh_score(db=db, feedback_pk=check.feedback_id, checks=[check])
    _alert_on_failure(db=db, check=check, previous_result=previous_result, current_user=current_user, channels=channels)
    return result


def update_check_result_use_case(
    *,
    db: Session,
    check_pk: int,
    result: str,
    current_user: CurrentUser,
    channels: SideEffectChannels,
    notes: Optional[str] = None,
) -> QualityMutationResult:
    check = get_check_or_404(db=db, check_pk=check_pk)
    previous_result = check.result
    check.result = result
    check.notes = append_note(check.notes, notes)
    db.commit()
    mutation = _refresh_score(db=db, feedback_pk=check.feedback_id, checks=[check])
    _alert_on_failure(db=db, check=check, previous_result=previous_result, current_user=current_user, channels=channels)
    return mutation


def delete_check_use_case(*, db: Session, check_pk: int) -> QualityMutationResult:
    check = get_check_or_404(db=db, check_pk=check_pk)
    feedback_pk = check.feedback_id
    db.delete(check)
    db.commit()
    return _refresh_score(db=db, feedback_pk=feedback_pk, checks=[])


def quality_summary_use_case(*, db: Session, feedback_pk: int) -> dict:
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    checks = db.query(QualityCheck).filter(QualityCheck.feedback_id == feedback_pk).all()
    summary = build_quality_summary(checks)
    summary["feedback_id"] = feedback.feedback_id
    return summary
