from __future__ import annotations

import pytest

from app.config import settings
from app.domain_errors import DomainError
from app.models import FeedbackNotification
from app.schemas import CommentCreate, CommentUpdate
from app.use_cases.comment_thread import (
    DELETED_PLACEHOLDER,
    create_comment_use_case,
    delete_comment_use_case,
    list_comments_for_feedback,
    list_customer_comments,
    list_public_comments,
    list_replies,
    update_comment_use_case,
)
from conftest import make_user, open_feedback


def _comment(db, channels, feedback, user, content: str = "Looks good", **extra):
    return create_comment_use_case(
        db=db,
        feedback_pk=feedback.id,
        data=CommentCreate(content=content, **extra),
        current_user=user,
        channels=channels,
    )


def _comment_notifications(db) -> list[FeedbackNotification]:
    return (
        db.query(FeedbackNotification)
        .filter(FeedbackNotification.type == "comment")
        .order_by(FeedbackNotification.id)
        .all()
    )


def test_top_level_comment_notifies_managers(db, channels, feedback) -> None:
    operator = make_user("op-1", "operator")

    comment = _comment(db, channels, feedback, operator, is_important=True)

    assert comment.user_role == "operator"
    assert comment.comment_id.startswith("COMM-")
    [notification] = _comment_notifications(db)
    assert notification.recipient_type == "role"
    assert notification.recipient_role == "production_manager"
    assert notification.priority == "high"
    assert notification.title == "New Important Comment"


def test_reply_notifies_parent_author(db, channels, feedback) -> None:
    parent = _comment(db, channels, feedback, make_user("op-1", "operator"))

    reply = _comment(db, channels, feedback, make_user("sup-1", "supervisor"), "Agreed", parent_comment_id=parent.id)

    assert reply.parent_comment_id == parent.id
    notification = _comment_notifications(db)[-1]
    assert notification.recipient_type == "user"
    assert notification.recipient_id == "op-1"


def test_reply_to_own_comment_notifies_managers(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    parent = _comment(db, channels, feedback, author)

    _comment(db, channels, feedback, author, "Follow-up", parent_comment_id=parent.id)

    notification = _comment_notifications(db)[-1]
    assert notification.recipient_type == "role"
    assert notification.recipient_role == "production_manager"
    assert notification.recipient_id is None


def test_reply_to_deleted_comment_is_rejected(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    parent = _comment(db, channels, feedback, author)
    delete_comment_use_case(db=db, comment_pk=parent.id, current_user=author)

    with pytest.raises(DomainError, match="deleted comment") as exc:
        _comment(db, channels, feedback, author, "late", parent_comment_id=parent.id)

    assert exc.value.code == "PARENT_COMMENT_DELETED"
    assert exc.value.http_status == 400


def test_reply_to_missing_or_foreign_parent(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    other = open_feedback(db, channels, production_id="PRD-200")
    foreign = _comment(db, channels, other, author)

    with pytest.raises(DomainError) as missing:
        _comment(db, channels, feedback, author, parent_comment_id=9999)
    with pytest.raises(DomainError) as mismatch:
        _comment(db, channels, feedback, author, parent_comment_id=foreign.id)

    assert missing.value.code == "PARENT_COMMENT_NOT_FOUND"
    assert missing.value.http_status == 404
    assert mismatch.value.code == "PARENT_COMMENT_FEEDBACK_MISMATCH"


def test_thread_depth_is_bounded(db, channels, feedback, monkeypatch) -> None:
    monkeypatch.setattr(settings, "COMMENT_MAX_THREAD_DEPTH", 2)
    author = make_user("op-1", "operator")
    root = _comment(db, channels, feedback, author)
    child = _comment(db, channels, feedback, author, parent_comment_id=root.id)

    with pytest.raises(DomainError) as exc:
        _comment(db, channels, feedback, author, parent_comment_id=child.id)

    assert exc.value.code == "COMMENT_THREAD_TOO_DEEP"


def test_deleted_parent_keeps_replies_navigable(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    parent = _comment(db, channels, feedback, author, "Original")
    reply = _comment(db, channels, feedback, make_user("sup-1", "supervisor"), "Reply", parent_comment_id=parent.id)

    deleted = delete_comment_use_case(db=db, comment_pk=parent.id, current_user=author)
    again = delete_comment_use_case(db=db, comment_pk=parent.id, current_user=author)

    assert deleted.is_deleted is True
    assert deleted.content == DELETED_PLACEHOLDER
    assert again.deleted_at == deleted.deleted_at
    assert [c.id for c in list_replies(db=db, comment_pk=parent.id)] == [reply.id]
    assert [c.content for c in list_comments_for_feedback(db=db, feedback_pk=feedback.id)] == [
        DELETED_PLACEHOLDER,
        "Reply",
    ]


def test_only_author_or_moderator_can_edit(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    comment = _comment(db, channels, feedback, author, "First draft")

    with pytest.raises(DomainError, match="Only the author") as exc:
        update_comment_use_case(
            db=db,
            comment_pk=comment.id,
            data=CommentUpdate(content="hijacked"),
            current_user=make_user("op-2", "operator"),
        )
    assert exc.value.http_status == 403

    edited = update_comment_use_case(
        db=db,
        comment_pk=comment.id,
        data=CommentUpdate(content="Final"),
        current_user=author,
    )
    assert edited.is_edited is True

    moderated = update_comment_use_case(
        db=db,
        comment_pk=comment.id,
        data=CommentUpdate(visible_to_customer=True),
        current_user=make_user("adm-1", "admin"),
    )
    assert moderated.visible_to_customer is True
    assert moderated.content == "Final"


def test_flag_only_edit_does_not_mark_edited(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    comment = _comment(db, channels, feedback, author)

    updated = update_comment_use_case(
        db=db,
        comment_pk=comment.id,
        data=CommentUpdate(is_important=True),
        current_user=author,
    )

    assert updated.is_important is True
    assert updated.is_edited is False


def test_deleted_comment_cannot_be_edited(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    comment = _comment(db, channels, feedback, author)
    delete_comment_use_case(db=db, comment_pk=comment.id, current_user=author)

    with pytest.raises(DomainError) as exc:
        update_comment_use_case(db=db, comment_pk=comment.id, data=CommentUpdate(content="x"), current_user=author)

    assert exc.value.code == "COMMENT_DELETED"


def test_visibility_scoped_lists(db, channels, feedback) -> None:
    author = make_user("op-1", "operator")
    public = _comment(db, channels, feedback, author, "for everyone", visible_to_marketplace=True, visible_to_customer=True)
    _comment(db, channels, feedback, author, "internal only")
    customer = _comment(db, channels, feedback, author, "for the customer", visible_to_customer=True)
    hidden = _comment(db, channels, feedback, author, "retracted", visible_to_marketplace=True)
    delete_comment_use_case(db=db, comment_pk=hidden.id, current_user=author)

    assert [c.id for c in list_public_comments(db=db, feedback_pk=feedback.id)] == [public.id]
    assert [c.id for c in list_customer_comments(db=db, feedback_pk=feedback.id)] == [public.id, customer.id]
    assert len(list_comments_for_feedback(db=db, feedback_pk=feedback.id)) == 4
