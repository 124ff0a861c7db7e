from __future__ import annotations

import pytest

from app.domain_errors import DomainError
from app.models import FeedbackNotification, ProductionStep, QualityCheck
from app.schemas import QualityCheckCreate, StepCreate, StepUpdate
from app.use_cases import step_use_cases
from app.use_cases.quality_use_cases import create_check_use_case
from app.use_cases.step_use_cases import (
    create_step_use_case,
    create_steps_batch_use_case,
    delete_step_use_case,
    list_steps_for_feedback,
    update_step_status_use_case,
    update_step_use_case,
)
from conftest import open_feedback


def _step(order: int, status: str = "pending", **extra) -> StepCreate:
    return StepCreate(step_name=f"Step {order}", step_order=order, status=status, **extra)


def _status_notifications(db, feedback_pk: int) -> list[FeedbackNotification]:
    return (
        db.query(FeedbackNotification)
        .filter(
            FeedbackNotification.feedback_id == feedback_pk,
            FeedbackNotification.type.in_(("status_update", "completion")),
        )
        .order_by(FeedbackNotification.id)
        .all()
    )


def test_first_step_in_progress_moves_feedback_in_progress(db, channels, manager, feedback) -> None:
    result = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "in_progress"),
        current_user=manager,
        channels=channels,
    )

    assert result.recompute_error is None
    assert result.feedback.status == "in_progress"
    assert result.feedback.completion_percentage == 0
    assert result.steps[0].start_time is not None
    assert result.marketplace_update is None
    notifications = _status_notifications(db, feedback.id)
    assert [n.title for n in notifications] == ["Production Status: IN_PROGRESS"]


def test_batch_derives_completion_and_quantities(db, channels, manager, feedback) -> None:
    result = create_steps_batch_use_case(
        db=db,
        feedback_pk=feedback.id,
        steps_data=[
            _step(1, "completed", quantity_passed=40, quantity_rejected=2),
            _step(2, "completed", quantity_passed=38, quantity_rejected=1),
            _step(3, "pending"),
        ],
        current_user=manager,
        channels=channels,
    )

    assert len(result.steps) == 3
    assert result.feedback.status == "pending"
    assert result.feedback.completion_percentage == 67
    assert result.feedback.quantity_produced == 78
    assert result.feedback.quantity_rejected == 3


def test_duplicate_order_is_rejected(db, channels, manager, feedback) -> None:
    create_step_use_case(db=db, feedback_pk=feedback.id, data=_step(1), current_user=manager, channels=channels)

    with pytest.raises(DomainError, match="Step order must be unique") as exc:
        create_step_use_case(db=db, feedback_pk=feedback.id, data=_step(1), current_user=manager, channels=channels)

    assert exc.value.code == "STEP_ORDER_CONFLICT"
    assert exc.value.http_status == 409
    assert exc.value.details == {"duplicate_orders": [1]}


def test_batch_with_internal_duplicates_writes_nothing(db, channels, manager, feedback) -> None:
    with pytest.raises(DomainError) as exc:
        create_steps_batch_use_case(
            db=db,
            feedback_pk=feedback.id,
            steps_data=[_step(1), _step(2), _step(2)],
            current_user=manager,
            channels=channels,
        )

    assert exc.value.details == {"duplicate_orders": [2]}
    assert db.query(ProductionStep).count() == 0


def test_same_order_allowed_on_different_feedbacks(db, channels, manager, feedback) -> None:
    other = open_feedback(db, channels, production_id="PRD-200")

    create_step_use_case(db=db, feedback_pk=feedback.id, data=_step(1), current_user=manager, channels=channels)
    create_step_use_case(db=db, feedback_pk=other.id, data=_step(1), current_user=manager, channels=channels)

    assert db.query(ProductionStep).count() == 2


def test_completing_all_steps_notifies_and_syncs(db, channels, manager, marketplace, feedback) -> None:
    result = create_steps_batch_use_case(
        db=db,
        feedback_pk=feedback.id,
        steps_data=[_step(1, "completed", quantity_passed=50), _step(2, "in_progress")],
        current_user=manager,
        channels=channels,
    )
    second = result.steps[1]

    result = update_step_status_use_case(
        db=db,
        step_pk=second.id,
        status="completed",
        notes="done",
        current_user=manager,
        channels=channels,
    )

    assert result.feedback.status == "completed"
    assert result.feedback.completion_percentage == 100
    assert result.feedback.end_date is not None
    assert result.steps[0].end_time is not None
    assert result.steps[0].duration_minutes is not None
    assert result.marketplace_update.success is True
    assert result.feedback.marketplace_update_status == "sent"
    assert len(marketplace.payloads) == 1
    assert marketplace.payloads[0]["status"] == "completed"
    titles = [n.title for n in _status_notifications(db, feedback.id)]
    assert titles == ["Production Status: IN_PROGRESS", "Production Status: COMPLETED"]


def test_terminal_without_batch_skips_marketplace(db, channels, manager, marketplace) -> None:
    feedback = open_feedback(db, channels, production_id="PRD-300", batch_id=None)

    result = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "failed"),
        current_user=manager,
        channels=channels,
    )

    assert result.feedback.status == "failed"
    assert result.marketplace_update.attempted is False
    assert result.feedback.marketplace_update_status is None
    assert marketplace.payloads == []
    assert _status_notifications(db, feedback.id)[0].priority == "high"


def test_marketplace_failure_does_not_undo_step(db, channels, manager, marketplace, feedback) -> None:
    marketplace.ok = False

    result = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "completed"),
        current_user=manager,
        channels=channels,
    )

    assert result.feedback.status == "completed"
    assert result.feedback.marketplace_update_status == "failed"
    assert result.marketplace_update.success is False
    assert db.query(ProductionStep).count() == 1


def test_unchanged_status_has_no_side_effects(db, channels, manager, feedback) -> None:
    first = create_step_use_case(
        db=db, feedback_pk=feedback.id, data=_step(1), current_user=manager, channels=channels
    )
    update_step_use_case(
        db=db,
        step_pk=first.steps[0].id,
        data=StepUpdate(quantity_processed=5),
        current_user=manager,
        channels=channels,
    )

    assert _status_notifications(db, feedback.id) == []


def test_recompute_failure_keeps_step_and_reports_error(db, channels, manager, feedback, monkeypatch) -> None:
    def _boom(*args, **kwargs):
        raise RuntimeError("aggregator down")

    monkeypatch.setattr(step_use_cases, "recompute_feedback_status", _boom)

    result = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "completed"),
        current_user=manager,
        channels=channels,
    )

    assert result.recompute_error == "RuntimeError: aggregator down"
    assert result.feedback.status == "pending"
    assert db.query(ProductionStep).count() == 1


def test_end_before_start_is_rejected(db, channels, manager, feedback) -> None:
    from datetime import datetime, timezone

    with pytest.raises(DomainError, match="before its start") as exc:
        create_step_use_case(
            db=db,
            feedback_pk=feedback.id,
            data=_step(
                1,
                start_time=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
                end_time=datetime(2026, 10, 19, 11, 0, tzinfo=timezone.utc),
            ),
            current_user=manager,
            channels=channels,
        )

    assert exc.value.code == "STEP_INVALID_TIMES"


def test_reorder_onto_taken_order_conflicts(db, channels, manager, feedback) -> None:
    result = create_steps_batch_use_case(
        db=db,
        feedback_pk=feedback.id,
        steps_data=[_step(1), _step(2)],
        current_user=manager,
        channels=channels,
    )

    with pytest.raises(DomainError, match="Step order must be unique"):
        update_step_use_case(
            db=db,
            step_pk=result.steps[1].id,
            data=StepUpdate(step_order=1),
            current_user=manager,
            channels=channels,
        )


def test_delete_step_detaches_quality_checks_and_recomputes(db, channels, manager, feedback) -> None:
    result = create_steps_batch_use_case(
        db=db,
        feedback_pk=feedback.id,
        steps_data=[_step(1, "completed"), _step(2, "pending")],
        current_user=manager,
        channels=channels,
    )
    pending_step = result.steps[1]
    create_check_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=QualityCheckCreate(check_type="visual", check_name="Finish", step_id=pending_step.id, result="passed"),
        current_user=manager,
        channels=channels,
    )

    result = delete_step_use_case(db=db, step_pk=pending_step.id, current_user=manager, channels=channels)

    assert result.feedback.status == "completed"
    assert result.feedback.completion_percentage == 100
    assert [s.step_order for s in list_steps_for_feedback(db=db, feedback_pk=feedback.id)] == [1]
    assert db.query(QualityCheck).one().step_id is None


def test_missing_feedback_is_404(db, channels, manager) -> None:
    with pytest.raises(DomainError, match="not found") as exc:
        create_step_use_case(db=db, feedback_pk=999, data=_step(1), current_user=manager, channels=channels)

    assert exc.value.http_status == 404
    assert exc.value.code == "FEEDBACK_NOT_FOUND"


def test_reopening_completed_step_clears_end_time(db, channels, manager, feedback) -> None:
    step = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "in_progress"),
        current_user=manager,
        channels=channels,
    ).steps[0]
    update_step_status_use_case(
        db=db, step_pk=step.id, status="completed", notes=None, current_user=manager, channels=channels
    )
    assert step.end_time is not None

    result = update_step_status_use_case(
        db=db, step_pk=step.id, status="in_progress", notes="rework", current_user=manager, channels=channels
    )

    reopened = result.steps[0]
    assert reopened.end_time is None
    assert reopened.duration_minutes is None
    assert reopened.start_time is not None
    assert result.feedback.status == "in_progress"


def test_update_keeps_caller_supplied_end_time(db, channels, manager, feedback) -> None:
    from datetime import datetime, timezone

    step = create_step_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=_step(1, "completed", start_time=datetime(2020, 1, 6, 10, 0, tzinfo=timezone.utc)),
        current_user=manager,
        channels=channels,
    ).steps[0]

    result = update_step_use_case(
        db=db,
        step_pk=step.id,
        data=StepUpdate(status="failed", end_time=datetime(2020, 1, 6, 11, 0, tzinfo=timezone.utc)),
        current_user=manager,
        channels=channels,
    )

    assert result.steps[0].end_time is not None
    assert result.steps[0].duration_minutes == 60
