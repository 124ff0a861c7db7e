"""Production issue reporting use-cases."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..auth import CurrentUser
from ..domain_errors import not_found
from ..models import ProductionIssue
from ..schemas import IssueCreate, IssueUpdate
from ..services.clock import utcnow
from ..services.identifiers import ISSUE_PREFIX, generate_unique_id
from ..services.notification_dispatcher import issue_intent
from ..services.side_effects import PostCommitEffects, SideEffectChannels, run_post_commit_effects
from .feedback_lifecycle import get_feedback_or_404


def get_issue_or_404(*, db: Session, issue_pk: int) -> ProductionIssue:
    issue = db.query(ProductionIssue).filter(ProductionIssue.id == issue_pk).first()
    if not issue:
        raise not_found("issue", issue_pk)
    return issue


def report_issue_use_case(
    *,
    db: Session,
    feedback_pk: int,
    data: IssueCreate,
    current_user: CurrentUser,
    channels: SideEffectChannels,
) -> ProductionIssue:
    """Record an issue and alert the production managers."""
    feedback = get_feedback_or_404(db=db, feedback_pk=feedback_pk)
    issue = ProductionIssue(
        issue_id=generate_unique_id(ISSUE_PREFIX),
        feedback_id=feedback_pk,
        issue_type=data.issue_type,
        severity=data.severity,
        description=data.description,
        reported_by=current_user.id,
        status="open",
    )
    db.add(issue)
    db.commit()

    effects = PostCommitEffects()
    effects.notify(issue_intent(issue, feedback))
    run_post_commit_effects(db, effects, channels=channels)
    db.refresh(issue)
    return issue


def list_issues_use_case(
    *,
    db: Session,
    feedback_pk: Optional[int] = None,
    status: Optional[str] = None,
    severity: Optional[str] = None,
) -> list[ProductionIssue]:
    query = db.query(ProductionIssue)
    if feedback_pk is not None:
        query = query.filter(ProductionIssue.feedback_id == feedback_pk)
    if status:
        query = query.filter(ProductionIssue.status == status)
    if severity:
        query = query.filter(ProductionIssue.severity == severity)
    return query.order_by(ProductionIssue.created_at.desc(), ProductionIssue.id.desc()).all()


def update_issue_use_case(*, db: Session, issue_pk: int, data: IssueUpdate) -> ProductionIssue:
    issue = get_issue_or_404(db=db, issue_pk=issue_pk)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

    new_status = changes.get("status")
    if new_status == "resolved" and issue.status != "resolved":
        issue.resolved_at = utcnow()
    elif new_status and new_status != "resolved":
        issue.resolved_at = None

    for field_name, value in changes.items():
        setattr(issue, field_name, value)
    db.commit()
    db.refresh(issue)
    return issue
