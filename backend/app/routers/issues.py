"""Production issue endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..database import get_db
from ..schemas import IssueCreate, IssueResponse, IssueUpdate
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.issue_use_cases import (
    get_issue_or_404,
    list_issues_use_case,
    report_issue_use_case,
    update_issue_use_case,
)

router = APIRouter(tags=["issues"])


@router.post("/feedback/{feedback_pk}/issues", response_model=IssueResponse, status_code=201)
def report_issue(
    feedback_pk: int,
    data: IssueCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canReportIssues")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Report a production issue; production managers are notified."""
    return report_issue_use_case(
        db=db,
        feedback_pk=feedback_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )


@router.get("/issues", response_model=list[IssueResponse])
def list_issues(
    feedback_id: Optional[int] = None,
    status: Optional[str] = None,
    severity: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_issues_use_case(db=db, feedback_pk=feedback_id, status=status, severity=severity)


@router.get("/issues/{issue_pk}", response_model=IssueResponse)
def get_issue(
    issue_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_issue_or_404(db=db, issue_pk=issue_pk)


@router.patch("/issues/{issue_pk}", response_model=IssueResponse)
def update_issue(
    issue_pk: int,
    data: IssueUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canManageIssues")),
    db: Session = Depends(get_db),
):
    return update_issue_use_case(db=db, issue_pk=issue_pk, data=data)
