"""Comment thread endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..database import get_db
from ..schemas import CommentCreate, CommentResponse, CommentUpdate
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.comment_thread import (
    create_comment_use_case,
    delete_comment_use_case,
    get_comment_or_404,
    list_comments_for_feedback,
    list_customer_comments,
    list_public_comments,
    list_replies,
    update_comment_use_case,
)

router = APIRouter(tags=["comments"])


@router.post("/feedback/{feedback_pk}/comments", response_model=CommentResponse, status_code=201)
def create_comment(
    feedback_pk: int,
    data: CommentCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canComment")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Add a comment or a reply."""
    return create_comment_use_case(
        db=db,
        feedback_pk=feedback_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )


@router.get("/feedback/{feedback_pk}/comments", response_model=list[CommentResponse])
def list_comments(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_comments_for_feedback(db=db, feedback_pk=feedback_pk)


@router.get("/feedback/{feedback_pk}/comments/public", response_model=list[CommentResponse])
def list_comments_public(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Comments visible to the marketplace."""
    return list_public_comments(db=db, feedback_pk=feedback_pk)


@router.get("/feedback/{feedback_pk}/comments/customer", response_model=list[CommentResponse])
def list_comments_customer(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_customer_comments(db=db, feedback_pk=feedback_pk)


@router.get("/comments/{comment_pk}", response_model=CommentResponse)
def get_comment(
    comment_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_comment_or_404(db=db, comment_pk=comment_pk)


@router.get("/comments/{comment_pk}/replies", response_model=list[CommentResponse])
def get_replies(
    comment_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_replies(db=db, comment_pk=comment_pk)


@router.put("/comments/{comment_pk}", response_model=CommentResponse)
def update_comment(
    comment_pk: int,
    data: CommentUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit content or flags (author or moderator)."""
    return update_comment_use_case(db=db, comment_pk=comment_pk, data=data, current_user=current_user)


@router.delete("/comments/{comment_pk}", response_model=CommentResponse)
def delete_comment(
    comment_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Soft-delete (author or moderator)."""
    return delete_comment_use_case(db=db, comment_pk=comment_pk, current_user=current_user)
