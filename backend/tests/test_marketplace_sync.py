from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import requests

from app.services import marketplace_sync
from app.services.marketplace_sync import MarketplaceClient, build_marketplace_payload, sync_feedback
from conftest import FakeMarketplaceClient


class _SessionStub:
    def __init__(self) -> None:
        self.commit_calls = 0

    def commit(self) -> None:
        self.commit_calls += 1


def _feedback(**overrides) -> SimpleNamespace:
    values = {
        "feedback_id": "FB-1",
        "production_id": "PRD-1",
        "batch_id": "B-1",
        "product_id": "P-1",
        "status": "completed",
        "completion_percentage": 100,
        "quantity_produced": 95,
        "quantity_rejected": 5,
        "end_date": datetime(2026, 10, 19, 8, 30),
        "notes": "internal",
        "customer_notes": None,
        "marketplace_update_status": None,
        "marketplace_last_update": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_payload_prefers_customer_notes() -> None:
    payload = build_marketplace_payload(_feedback(customer_notes="for the buyer"))

    assert payload == {
        "production_id": "PRD-1",
        "batch_id": "B-1",
        "product_id": "P-1",
        "status": "completed",
        "completion_percentage": 100,
        "quantity_produced": 95,
        "quantity_rejected": 5,
        "estimated_completion": "2026-10-19T08:30:00+00:00",
        "notes": "for the buyer",
    }


def test_guard_without_batch_id_never_calls_out() -> None:
    db = _SessionStub()
    client = FakeMarketplaceClient()
    feedback = _feedback(batch_id=None)

    result = sync_feedback(db, feedback, client)

    assert result.success is False
    assert result.attempted is False
    assert client.payloads == []
    assert feedback.marketplace_update_status is None
    assert db.commit_calls == 0


def test_guard_pending_status() -> None:
    result = sync_feedback(_SessionStub(), _feedback(status="pending"), FakeMarketplaceClient())

    assert result.attempted is False


def test_success_marks_sent_with_timestamp() -> None:
    feedback = _feedback()

    result = sync_feedback(_SessionStub(), feedback, FakeMarketplaceClient(ok=True))

    assert result.success is True
    assert feedback.marketplace_update_status == "sent"
    assert feedback.marketplace_last_update is not None


def test_failure_marks_failed_and_returns_error() -> None:
    feedback = _feedback()

    result = sync_feedback(_SessionStub(), feedback, FakeMarketplaceClient(ok=False, error="HTTP_502: bad gateway"))

    assert result.success is False
    assert result.attempted is True
    assert result.error == "HTTP_502: bad gateway"
    assert feedback.marketplace_update_status == "failed"
    assert feedback.marketplace_last_update is not None


def test_client_posts_with_bearer_and_timeout(monkeypatch) -> None:
    calls = []

    def _post(url, json, headers, timeout):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return SimpleNamespace(status_code=200, text="ok")

    monkeypatch.setattr(marketplace_sync.requests, "post", _post)
    client = MarketplaceClient("https://market.example/api/", "secret", timeout=3.0)

    ok, error = client.post_update({"batch_id": "B-1"})

    assert (ok, error) == (True, None)
    assert calls[0]["url"] == "https://market.example/api/production/update"
    assert calls[0]["headers"]["Authorization"] == "Bearer secret"
    assert calls[0]["timeout"] == 3.0


def test_client_maps_non_2xx_and_network_errors(monkeypatch) -> None:
    client = MarketplaceClient("https://market.example", "secret")

    monkeypatch.setattr(
        marketplace_sync.requests,
        "post",
        lambda *args, **kwargs: SimpleNamespace(status_code=500, text="down"),
    )
    assert client.post_update({}) == (False, "HTTP_500: down")

    def _boom(*args, **kwargs):
        raise requests.Timeout("timed out")

    monkeypatch.setattr(marketplace_sync.requests, "post", _boom)
    ok, error = client.post_update({})
    assert ok is False
    assert "timed out" in error


def test_unconfigured_client_fails_without_request() -> None:
    assert MarketplaceClient(None, None).post_update({}) == (False, "MARKETPLACE_NOT_CONFIGURED")
