from __future__ import annotations

from types import SimpleNamespace

from app.models import FeedbackNotification
from app.services.notification_dispatcher import (
    NotificationIntent,
    comment_intent,
    dispatch,
    issue_intent,
    quality_issue_intent,
    status_change_intent,
)
from conftest import FakeEmailChannel


class _SessionStub:
    def __init__(self) -> None:
        self.added: list[object] = []
        self.commit_calls = 0

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        self.commit_calls += 1


def _feedback() -> SimpleNamespace:
    return SimpleNamespace(id=7, feedback_id="FB-1", production_id="PRD-1", batch_id="B-9", product_name="Bracket")


def _comment(*, user_id: str = "u-2", important: bool = False) -> SimpleNamespace:
    return SimpleNamespace(user_id=user_id, user_name="Dana", is_important=important)


def test_top_level_comment_goes_to_production_managers() -> None:
    intent = comment_intent(_comment(), _feedback())

    assert intent.recipient_type == "role"
    assert intent.recipient_role == "production_manager"
    assert intent.recipient_id is None
    assert intent.priority == "medium"
    assert intent.title == "New Comment"


def test_reply_goes_to_parent_author() -> None:
    parent = _comment(user_id="author-1")

    intent = comment_intent(_comment(important=True), _feedback(), parent)

    assert intent.recipient_type == "user"
    assert intent.recipient_id == "author-1"
    assert intent.priority == "high"
    assert intent.title == "New Important Comment"


def test_reply_to_own_comment_goes_to_production_managers() -> None:
    parent = _comment(user_id="u-2")

    intent = comment_intent(_comment(user_id="u-2"), _feedback(), parent)

    assert intent.recipient_type == "role"
    assert intent.recipient_role == "production_manager"
    assert intent.recipient_id is None


def test_quality_issue_is_high_priority_for_managers() -> None:
    check = SimpleNamespace(check_name="Bore")

    intent = quality_issue_intent(check, _feedback(), created_by="u-5")

    assert intent.type == "quality_issue"
    assert intent.title == "Quality Issue Detected"
    assert intent.message == 'Quality check "Bore" failed on Bracket (batch B-9)'
    assert intent.recipient_role == "production_manager"
    assert intent.priority == "high"
    assert intent.created_by == "u-5"


def test_status_change_priority_high_only_for_failed() -> None:
    failed = status_change_intent(_feedback(), "failed")
    completed = status_change_intent(_feedback(), "completed")

    assert failed.priority == "high"
    assert failed.title == "Production Status: FAILED"
    assert "Production has failed" in failed.message
    assert completed.priority == "medium"
    assert completed.type == "completion"
    assert completed.recipient_role == "production_manager"


def test_issue_priority_high_only_for_critical() -> None:
    critical = SimpleNamespace(issue_type="machine", severity="critical", description="spindle", reported_by="u-1")
    minor = SimpleNamespace(issue_type="machine", severity="low", description="noise", reported_by="u-1")

    assert issue_intent(critical, _feedback()).priority == "high"
    assert issue_intent(minor, _feedback()).priority == "medium"
    assert issue_intent(critical, _feedback()).title == "Production Issue Reported - machine"


def test_dispatch_in_app_does_not_touch_email() -> None:
    db = _SessionStub()
    email = FakeEmailChannel()

    notification = dispatch(db, status_change_intent(_feedback(), "completed"), email_channel=email)

    assert isinstance(notification, FeedbackNotification)
    assert notification.notification_id.startswith("NOTIF-")
    assert notification.is_read is False
    assert notification.is_delivered is False
    assert db.added == [notification]
    assert email.sent == []


def _email_intent() -> NotificationIntent:
    return NotificationIntent(
        type="other",
        title="Hello",
        message="World",
        recipient_type="email",
        recipient_id="ops@example.com",
        delivery_method="both",
    )


def test_dispatch_email_success_marks_delivered() -> None:
    db = _SessionStub()
    email = FakeEmailChannel(delivered=True)

    notification = dispatch(db, _email_intent(), email_channel=email)

    assert notification.is_delivered is True
    assert notification.delivered_at is not None
    assert email.sent[0]["recipient_id"] == "ops@example.com"
    assert email.sent[0]["subject"] == "Hello"


def test_dispatch_email_failure_keeps_row_undelivered() -> None:
    db = _SessionStub()
    email = FakeEmailChannel(delivered=False, error="HTTP_500: boom")

    notification = dispatch(db, _email_intent(), email_channel=email)

    assert db.added == [notification]
    assert notification.is_delivered is False
    assert notification.delivery_error == "HTTP_500: boom"
