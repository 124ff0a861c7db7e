"""Email delivery through the user service relay."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from ..config import settings

logger = logging.getLogger(__name__)


class EmailChannel:
    """POSTs notifications to `{base_url}/api/notifications/send-email`."""

    def __init__(self, base_url: Optional[str], api_key: Optional[str], timeout: float = 10.0):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "EmailChannel":
        return cls(settings.EMAIL_SERVICE_URL, settings.INTERNAL_API_KEY, settings.EMAIL_TIMEOUT_SECONDS)

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def send(
        self,
        *,
        recipient_type: str,
        recipient_id: Optional[str],
        subject: str,
        body: str,
        priority: str,
    ) -> tuple[bool, str | None]:
        """Deliver one message. Returns (delivered, error)."""
        if not self.is_configured:
            return False, "EMAIL_NOT_CONFIGURED"
        if not recipient_id:
            return False, "NO_RECIPIENT"

        try:
            response = requests.post(
                f"{self.base_url}/api/notifications/send-email",
                json={
                    "to": recipient_id,
                    "recipient_type": recipient_type,
                    "subject": subject,
                    "body": body,
                    "priority": priority,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return False, f"EXCEPTION: {str(e)}"

        if not 200 <= response.status_code < 300:
            return False, f"HTTP_{response.status_code}: {response.text[:200]}"
        try:
            data = response.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("success") is False:
            return False, f"REJECTED: {data.get('message') or 'email service declined the message'}"
        return True, None
