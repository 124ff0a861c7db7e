"""Pushes feedback summaries to the external marketplace and tracks sync status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import requests
from sqlalchemy.orm import Session

from ..config import settings
from ..models import ProductionFeedback
from .clock import as_utc, utcnow

logger = logging.getLogger(__name__)

NOT_READY_MESSAGE = "Feedback is not ready for marketplace update (missing batch id or still pending)"


@dataclass(frozen=True)
class MarketplaceUpdateResult:
    success: bool
    attempted: bool
    message: str
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "attempted": self.attempted,
            "message": self.message,
            "error": self.error,
        }


class MarketplaceClient:
    """HTTP client for `POST {base_url}/production/update`."""

    def __init__(self, base_url: Optional[str], api_key: Optional[str], timeout: float = 10.0):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "MarketplaceClient":
        return cls(settings.MARKETPLACE_API_URL, settings.MARKETPLACE_API_KEY, settings.MARKETPLACE_TIMEOUT_SECONDS)

    def post_update(self, payload: dict[str, Any]) -> tuple[bool, str | None]:
        """Returns (ok, error). Network errors and non-2xx responses are failures."""
        if not self.base_url:
            return False, "MARKETPLACE_NOT_CONFIGURED"

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = requests.post(
                f"{self.base_url}/production/update",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return False, f"EXCEPTION: {str(e)}"

        if 200 <= response.status_code < 300:
            return True, None
        return False, f"HTTP_{response.status_code}: {response.text[:200]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def is_ready_for_sync(feedback: ProductionFeedback) -> bool:
    return bool(feedback.batch_id) and feedback.status != "pending"


def build_marketplace_payload(feedback: ProductionFeedback) -> dict[str, Any]:
    return {
        "production_id": feedback.production_id,
        "batch_id": feedback.batch_id,
        "product_id": feedback.product_id,
        "status": feedback.status,
        "completion_percentage": feedback.completion_percentage,
        "quantity_produced": feedback.quantity_produced,
        "quantity_rejected": feedback.quantity_rejected,
        "estimated_completion": _iso(feedback.end_date),
        "notes": feedback.customer_notes or feedback.notes,
    }


def sync_feedback(
    db: Session,
    feedback: ProductionFeedback,
    client: MarketplaceClient,
) -> MarketplaceUpdateResult:
    """Push one feedback and record the outcome. Never raises for transport failures."""
    if not is_ready_for_sync(feedback):
        return MarketplaceUpdateResult(success=False, attempted=False, message=NOT_READY_MESSAGE)

    ok, error = client.post_update(build_marketplace_payload(feedback))
    feedback.marketplace_update_status = "sent" if ok else "failed"
    feedback.marketplace_last_update = utcnow()
    db.commit()

    if ok:
        logger.info("Marketplace updated for feedback %s (status=%s)", feedback.feedback_id, feedback.status)
        return MarketplaceUpdateResult(success=True, attempted=True, message="Marketplace updated")

    logger.warning("Marketplace update failed for feedback %s: %s", feedback.feedback_id, error)
    return MarketplaceUpdateResult(
        success=False,
        attempted=True,
        message="Marketplace update failed",
        error=error,
    )
