from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.services.quality_score import build_quality_summary, compute_quality_score, determine_check_result


def _check(result: str, check_type: str = "visual", **overrides) -> SimpleNamespace:
    values = {
        "result": result,
        "check_type": check_type,
        "quantity_checked": 10,
        "quantity_passed": 9,
        "quantity_rejected": 1,
        "check_date": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_zero_checks_leave_score_unset() -> None:
    assert compute_quality_score([]) is None


def test_two_of_three_passed_scores_67() -> None:
    checks = [_check("passed"), _check("passed"), _check("failed")]

    assert compute_quality_score(checks) == 67
    assert compute_quality_score(checks) == 67


def test_waived_and_pending_count_as_not_passed() -> None:
    assert compute_quality_score([_check("passed"), _check("waived"), _check("pending"), _check("passed")]) == 50


@pytest.mark.parametrize(
    ("value", "expected"),
    [(9.9, "failed"), (10.0, "passed"), (12.5, "passed"), (15.0, "passed"), (15.01, "failed")],
)
def test_measurement_inside_tolerance_passes(value: float, expected: str) -> None:
    assert determine_check_result(
        result=None,
        measurement_value=value,
        tolerance_min=10.0,
        tolerance_max=15.0,
    ) == expected


def test_explicit_result_wins_over_measurement() -> None:
    assert determine_check_result(
        result="waived",
        measurement_value=100.0,
        tolerance_min=0.0,
        tolerance_max=1.0,
    ) == "waived"


def test_missing_bound_means_no_derived_result() -> None:
    assert determine_check_result(
        result=None,
        measurement_value=5.0,
        tolerance_min=None,
        tolerance_max=10.0,
    ) is None


def test_summary_counts_by_result_and_type() -> None:
    early = datetime(2026, 10, 1, tzinfo=timezone.utc)
    late = datetime(2026, 10, 5, tzinfo=timezone.utc)
    checks = [
        _check("passed", "visual", check_date=early),
        _check("failed", "visual", check_date=late.replace(tzinfo=None)),
        _check("waived", "safety"),
    ]

    summary = build_quality_summary(checks)

    assert summary["total_checks"] == 3
    assert summary["checks_by_result"] == {"pending": 0, "passed": 1, "failed": 1, "waived": 1}
    assert summary["checks_by_type"]["visual"] == {"total": 2, "passed": 1, "failed": 1, "pending": 0, "waived": 0}
    assert summary["checks_by_type"]["safety"]["waived"] == 1
    assert summary["quantity_checked"] == 30
    assert summary["quality_score"] == 33
    assert summary["last_check_date"] == late


def test_empty_summary_reports_zero_score() -> None:
    summary = build_quality_summary([])

    assert summary["quality_score"] == 0
    assert summary["last_check_date"] is None
    assert summary["checks_by_type"] == {}
