"""Production step timestamp, duration and ordering rules."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from .clock import as_utc


def apply_status_timestamps(step, *, now: datetime, keep_end_time: bool = False) -> None:
    """Stamp start on in_progress and end on completed when missing, then refresh duration.

    A step that is not completed loses its end time unless `keep_end_time` says
    the caller set it explicitly.
    """
    if step.status == "in_progress" and step.start_time is None:
        step.start_time = now
    if step.status == "completed" and step.end_time is None:
        step.end_time = now
    elif step.status != "completed" and not keep_end_time:
        step.end_time = None
    step.duration_minutes = compute_duration_minutes(step.start_time, step.end_time)


def compute_duration_minutes(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    start, end = as_utc(start), as_utc(end)
    if start is None or end is None:
        return None
    seconds = (end - start).total_seconds()
    if seconds < 0:
        raise ValueError("Step end time is before its start time")
    return int((seconds + 30) // 60)


def append_note(existing: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


def duplicate_orders(orders: Iterable[int], *, existing: Iterable[int] = ()) -> list[int]:
    """Orders that repeat within `orders` or collide with `existing`, sorted."""
    taken = set(existing)
    seen: set[int] = set()
    duplicates: set[int] = set()
    for order in orders:
        if order in taken or order in seen:
            duplicates.add(order)
        seen.add(order)
    return sorted(duplicates)
