"""External identifier generation for feedback entities."""
from __future__ import annotations

import secrets
import string
import time

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

FEEDBACK_PREFIX = "FB"
STEP_PREFIX = "STEP"
QUALITY_CHECK_PREFIX = "QC"
COMMENT_PREFIX = "COMM"
NOTIFICATION_PREFIX = "NOTIF"
ISSUE_PREFIX = "ISSUE"


def generate_unique_id(prefix: str, *, suffix_length: int = 6) -> str:
    """Return `<PREFIX>-<last 8 digits of epoch ms>-<random suffix>`."""
    stamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{stamp}-{suffix}"
