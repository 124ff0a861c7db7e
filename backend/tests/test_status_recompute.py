from __future__ import annotations

from contextlib import contextmanager

from app.models import ProductionFeedback, ProductionStep
from app.services import feedback_locks, status_aggregator
from app.services.status_aggregator import recompute_feedback_status


def _add_step(db, feedback_pk: int, status: str) -> ProductionStep:
    step = ProductionStep(step_id="STEP-1", feedback_id=feedback_pk, step_name="Cut", step_order=1, status=status)
    db.add(step)
    db.commit()
    return step


def test_recompute_persists_and_reports_transition(db, feedback) -> None:
    _add_step(db, feedback.id, "in_progress")

    result = recompute_feedback_status(db, feedback_id=feedback.id)

    assert (result.old_status, result.new_status) == ("pending", "in_progress")
    assert result.status_changed is True
    assert db.get(ProductionFeedback, feedback.id).status == "in_progress"


def test_reported_transition_is_the_one_written_under_the_lock(db, feedback, session_factory, monkeypatch) -> None:
    step = _add_step(db, feedback.id, "in_progress")
    step_pk = step.id
    later_results = []
    fired = []

    @contextmanager
    def _lock_then_next_writer(feedback_id: int):
        with feedback_locks.feedback_lock(feedback_id):
            yield
        if fired:
            return
        fired.append(feedback_id)
        other = session_factory()
        try:
            other.get(ProductionStep, step_pk).status = "completed"
            other.commit()
            later_results.append(recompute_feedback_status(other, feedback_id=feedback_id))
        finally:
            other.close()

    monkeypatch.setattr(status_aggregator, "feedback_lock", _lock_then_next_writer)

    result = recompute_feedback_status(db, feedback_id=feedback.id)

    assert (result.old_status, result.new_status) == ("pending", "in_progress")
    assert (later_results[0].old_status, later_results[0].new_status) == ("in_progress", "completed")
    db.expire_all()
    assert db.get(ProductionFeedback, feedback.id).status == "completed"
