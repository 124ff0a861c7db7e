"""Per-feedback serialization of derived-field recomputation."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from ..models import ProductionFeedback

_registry_guard = threading.Lock()
# feedback id -> [lock, number of holders/waiters]
_locks: dict[int, list] = {}


@contextmanager
def feedback_lock(feedback_id: int) -> Iterator[None]:
    """Serialize read-recompute-write for one feedback within this process."""
    with _registry_guard:
        entry = _locks.setdefault(feedback_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(feedback_id, None)


def lock_feedback_row(db: Session, feedback_id: int) -> ProductionFeedback | None:
    """Load the feedback row with SELECT ... FOR UPDATE (no-op on SQLite)."""
    return (
        db.query(ProductionFeedback)
        .filter(ProductionFeedback.id == feedback_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def active_lock_count() -> int:
    with _registry_guard:
        return len(_locks)
