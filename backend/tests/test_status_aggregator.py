from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.services.status_aggregator import (
    apply_feedback_progress,
    compute_feedback_progress,
    rounded_percentage,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _step(status: str, passed: int = 0, rejected: int = 0) -> SimpleNamespace:
    return SimpleNamespace(status=status, quantity_passed=passed, quantity_rejected=rejected)


def _feedback(**overrides) -> SimpleNamespace:
    values = {
        "status": "pending",
        "completion_percentage": 0,
        "quantity_produced": 0,
        "quantity_rejected": 0,
        "end_date": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_zero_steps_is_noop() -> None:
    assert compute_feedback_progress([]) is None


@pytest.mark.parametrize(
    ("statuses", "expected"),
    [
        (["completed", "failed", "in_progress"], "in_progress"),
        (["completed", "completed", "completed", "completed"], "completed"),
        (["completed", "failed", "pending"], "failed"),
        (["completed", "pending"], "pending"),
        (["pending"], "pending"),
    ],
)
def test_status_precedence(statuses: list[str], expected: str) -> None:
    progress = compute_feedback_progress([_step(s) for s in statuses])

    assert progress is not None
    assert progress.status == expected


def test_completion_rounds_half_up() -> None:
    assert rounded_percentage(1, 3) == 33
    assert rounded_percentage(2, 3) == 67
    assert rounded_percentage(1, 8) == 13
    assert rounded_percentage(0, 5) == 0
    assert rounded_percentage(5, 5) == 100


def test_quantities_are_sums_of_step_quantities() -> None:
    progress = compute_feedback_progress([
        _step("completed", passed=40, rejected=2),
        _step("in_progress", passed=10, rejected=1),
    ])

    assert progress.quantity_produced == 50
    assert progress.quantity_rejected == 3
    assert progress.completion_percentage == 50


def test_all_completed_sets_end_date_once() -> None:
    feedback = _feedback(status="in_progress")
    progress = compute_feedback_progress([_step("completed") for _ in range(4)])

    apply_feedback_progress(feedback, progress, now=NOW)

    assert feedback.status == "completed"
    assert feedback.completion_percentage == 100
    assert feedback.end_date == NOW

    later = datetime(2026, 10, 20, tzinfo=timezone.utc)
    apply_feedback_progress(feedback, progress, now=later)
    assert feedback.end_date == NOW


def test_existing_end_date_is_kept() -> None:
    existing = datetime(2026, 10, 1, tzinfo=timezone.utc)
    feedback = _feedback(end_date=existing)

    apply_feedback_progress(feedback, compute_feedback_progress([_step("completed")]), now=NOW)

    assert feedback.end_date == existing


def test_zero_quantity_sums_leave_previous_values() -> None:
    feedback = _feedback(quantity_produced=12, quantity_rejected=3)

    apply_feedback_progress(feedback, compute_feedback_progress([_step("pending")]), now=NOW)

    assert feedback.quantity_produced == 12
    assert feedback.quantity_rejected == 3


def test_apply_is_idempotent() -> None:
    steps = [_step("completed", 5, 1), _step("failed", 0, 4), _step("pending")]
    feedback = _feedback()

    apply_feedback_progress(feedback, compute_feedback_progress(steps), now=NOW)
    first = dict(vars(feedback))
    apply_feedback_progress(feedback, compute_feedback_progress(steps), now=NOW)

    assert vars(feedback) == first
    assert feedback.status == "failed"
    assert feedback.completion_percentage == 33


def test_cancelled_feedback_keeps_status_but_refreshes_progress() -> None:
    feedback = _feedback(status="cancelled")

    apply_feedback_progress(
        feedback,
        compute_feedback_progress([_step("completed", 7), _step("in_progress")]),
        now=NOW,
    )

    assert feedback.status == "cancelled"
    assert feedback.completion_percentage == 50
    assert feedback.quantity_produced == 7
