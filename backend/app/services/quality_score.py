"""Quality score calculation and per-feedback quality summaries."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..domain_errors import not_found
from ..models import CHECK_RESULTS, CHECK_TYPES, QualityCheck
from .clock import as_utc
from .feedback_locks import feedback_lock, lock_feedback_row
from .status_aggregator import rounded_percentage

logger = logging.getLogger(__name__)


def determine_check_result(
    *,
    result: Optional[str],
    measurement_value: Optional[float],
    tolerance_min: Optional[float],
    tolerance_max: Optional[float],
) -> Optional[str]:
    """Explicit result wins; otherwise pass/fail from measurement against [min, max]."""
    if result is not None:
        return result
    if measurement_value is None or tolerance_min is None or tolerance_max is None:
        return None
    if tolerance_min <= measurement_value <= tolerance_max:
        return "passed"
    return "failed"


def compute_quality_score(checks: Iterable) -> Optional[int]:
    checks = list(checks)
    if not checks:
        return None
    passed = sum(1 for check in checks if check.result == "passed")
    return rounded_percentage(passed, len(checks))


def recompute_quality_score(db: Session, *, feedback_id: int) -> Optional[int]:
    """Persist the feedback's quality score under its lock (None when no checks remain)."""
    with feedback_lock(feedback_id):
        feedback = lock_feedback_row(db, feedback_id)
        if feedback is None:
            raise not_found("feedback", feedback_id)

        checks = db.query(QualityCheck).filter(QualityCheck.feedback_id == feedback_id).all()
        score = compute_quality_score(checks)
        feedback.quality_score = score
        external_id = feedback.feedback_id
        db.commit()

    logger.debug("Feedback %s quality score = %s over %d checks", external_id, score, len(checks))
    return score


def build_quality_summary(checks: Iterable) -> dict:
    """Counts by result and type, quantity totals, score (0 when empty) and last check date."""
    checks = list(checks)
    by_result = {result: 0 for result in CHECK_RESULTS}
    by_type: dict[str, dict[str, int]] = {}
    last_check_date = None

    for check in checks:
        by_result[check.result] = by_result.get(check.result, 0) + 1
        bucket = by_type.setdefault(
            check.check_type,
            {"total": 0, "passed": 0, "failed": 0, "pending": 0, "waived": 0},
        )
        bucket["total"] += 1
        bucket[check.result] = bucket.get(check.result, 0) + 1

        check_date = as_utc(check.check_date)
        if check_date is not None and (last_check_date is None or check_date > last_check_date):
            last_check_date = check_date

    score = compute_quality_score(checks)
    return {
        "total_checks": len(checks),
        "checks_by_result": by_result,
        "checks_by_type": {t: by_type[t] for t in CHECK_TYPES if t in by_type},
        "quantity_checked": sum(int(c.quantity_checked or 0) for c in checks),
        "quantity_passed": sum(int(c.quantity_passed or 0) for c in checks),
        "quantity_rejected": sum(int(c.quantity_rejected or 0) for c in checks),
        "quality_score": score if score is not None else 0,
        "last_check_date": last_check_date,
    }
