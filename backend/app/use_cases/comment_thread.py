"""Comment thread use-cases: threaded, visibility-scoped, soft-deleted comments."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser, check_permission
from ..config import settings
from ..domain_errors import DomainError, conflict, forbidden, not_found
from ..models import FeedbackComment
from ..schemas import CommentCreate, CommentUpdate
from ..services.clock import utcnow
from ..services.identifiers import COMMENT_PREFIX, generate_unique_id
from ..services.notification_dispatcher import comment_intent
from ..services.side_effects import PostCommitEffects, SideEffectChannels, run_post_commit_effects
from .feedback_lifecycle import get_feedback_or_404

DELETED_PLACEHOLDER = "[This comment has been deleted]"


def get_comment_or_404(*, db: Session, comment_pk: int) -> FeedbackComment:
    comment = db.query(FeedbackComment).filter(FeedbackComment.id == comment_pk).first()
    if not comment:
        raise not_found("comment", comment_pk)
    return comment


def _thread_depth(db: Session, comment: FeedbackComment) -> int:
    """Number of ancestors above `comment` plus one (a top-level comment has depth 1)."""
    depth = 1
    seen = {comment.id}
    parent_id = comment.parent_comment_id
    while parent_id is not None:
        if parent_id in seen:
            raise DomainError(
                code="COMMENT_THREAD_CYCLE",
                http_status=409,
                message="Comment thread contains a cycle",
            )
        seen.add(parent_id)
        parent = db.query(FeedbackComment).filter(FeedbackComment.id == parent_id).first()
        if parent is None:
            break
        depth += 1
        parent_id = parent.parent_comment_id
    return depth


def _resolve_parent(db: Session, *, feedback_pk: int, parent_pk: Optional[int]) -> Optional[FeedbackComment]:
    if parent_pk is None:
        return None
    parent = db.query(FeedbackComment).filter(FeedbackComment.id == parent_pk).first()
    if not parent:
        raise not_found("parent_comment", parent_pk)
    if parent.is_deleted:
        raise DomainError(
            code="PARENT_COMMENT_DELETED",
            http_status=400,
            message="Cannot reply to a deleted comment",
        )
    if parent.feedback_id != feedback_pk:
        raise DomainError(
            code="PARENT_COMMENT_FEEDBACK_MISMATCH",
            http_status=400,
            message="Parent comment belongs to another feedback",
        )
    if _thread_depth(db, parent) + 1 > settings.COMMENT_MAX_THREAD_DEPTH:
        raise DomainError(
            code="COMMENT_THREAD_TOO_DEEP",
            http_status=400,
            message=f"Comment threads are limited to {settings.COMMENT_MAX_THREAD_DEPTH} levels",
        )
    return parent


def create_comment_use_case(
    *,
    db: Session,
    feedback_pk: int,
    data: CommentCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> FeedbackComment:
    """Add a comment or reply and notify the parent author or the production managers."""
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    parent = _resolve_parent(db, feedback_pk=feedback_pk, parent_pk=data.parent_comment_id)

    comment = FeedbackComment(
        comment_id=generate_unique_id(COMMENT_PREFIX),
        feedback_id=feedback_pk,
        comment_type=data.comment_type,
        content=data.content,
        user_id=current_user.id,
        user_name=current_user.username,
        user_role=current_user.role,
        is_important=data.is_important,
        parent_comment_id=parent.id if parent is not None else None,
        visible_to_customer=data.visible_to_customer,
        visible_to_marketplace=data.visible_to_marketplace,
    )
    db.add(comment)
    db.commit()

    effects = PostCommitEffects()
    effects.notify(comment_intent(comment, feedback, parent))
    run_post_commit_effects(db, effects, channels=channels)
    db.refresh(comment)
    return comment


def _ensure_can_modify(comment: FeedbackComment, current_user: CurrentUser) -> None:
    if comment.user_id == current_user.id:
        return
    if check_permission(current_user, "canModerateComments"):
        return
    raise forbidden("COMMENT_FORBIDDEN", "Only the author or a moderator can change this comment")


def update_comment_use_case(
    *,
    db: Session,
    comment_pk: int,
    data: CommentUpdate,
    current_user: CurrentUser,
) -> FeedbackComment:
    comment = get_comment_or_404(db=db, comment_pk=comment_pk)
    _ensure_can_modify(comment, current_user)
    if comment.is_deleted:
        raise conflict("COMMENT_DELETED", "Deleted comments cannot be edited")

    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if "content" in changes and changes["content"] != comment.content:
        comment.is_edited = True
    for field_name, value in changes.items():
        setattr(comment, field_name, value)
    db.commit()
    db.refresh(comment)
    return comment


def delete_comment_use_case(*, db: Session, comment_pk: int, current_user: CurrentUser) -> FeedbackComment:
    """Soft delete: keep the row so replies stay navigable. Idempotent."""
    comment = get_comment_or_404(db=db, comment_pk=comment_pk)
    _ensure_can_modify(comment, current_user)
    if comment.is_deleted:
        return comment

    comment.content = DELETED_PLACEHOLDER
    comment.is_deleted = True
    comment.deleted_at = utcnow()
    db.commit()
    db.refresh(comment)
    return comment


def _thread_query(db: Session, feedback_pk: int):
    get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    return db.query(FeedbackComment).filter(FeedbackComment.feedback_id == feedback_pk)


def list_comments_for_feedback(*, db: Session, feedback_pk: int) -> list[FeedbackComment]:
    """All comments including deleted placeholders, oldest first."""
    return _thread_query(db, feedback_pk).order_by(FeedbackComment.created_at, FeedbackComment.id).all()


def list_public_comments(*, db: Session, feedback_pk: int) -> list[FeedbackComment]:
    return (
        _thread_query(db, feedback_pk)
        .filter(FeedbackComment.visible_to_marketplace.is_(True), FeedbackComment.is_deleted.is_(False))
        .order_by(FeedbackComment.created_at, FeedbackComment.id)
        .all()
    )


def list_customer_comments(*, db: Session, feedback_pk: int) -> list[FeedbackComment]:
    return (
        _thread_query(db, feedback_pk)
        .filter(FeedbackComment.visible_to_customer.is_(True), FeedbackComment.is_deleted.is_(False))
        .order_by(FeedbackComment.created_at, FeedbackComment.id)
        .all()
    )


def list_replies(*, db: Session, comment_pk: int) -> list[FeedbackComment]:
    """Direct replies; works for deleted parents too."""
    get_comment_or_404(db=db, comment_pk=comment_pk)
    return (
        db.query(FeedbackComment)
        .filter(FeedbackComment.parent_comment_id == comment_pk)
        .order_by(FeedbackComment.created_at, FeedbackComment.id)
        .all()
    )
