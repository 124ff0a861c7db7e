"""Feedback record endpoints."""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..celery_app import resend_marketplace_update
from ..config import settings
from ..database import get_db
from ..schemas import (
    BulkResendOut,
    FeedbackCancel,
    FeedbackCreate,
    FeedbackDetailResponse,
    FeedbackListResponse,
    FeedbackMutationResponse,
    FeedbackResponse,
    FeedbackUpdate,
    MarketplaceStatusOut,
    MarketplaceUpdateOut,
    ProductionSummaryOut,
)
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.feedback_lifecycle import (
    FeedbackMutationResult,
    cancel_feedback_use_case,
    create_feedback_use_case,
    get_feedback_by_external_id,
    get_feedback_by_production_id,
    get_feedback_or_404,
    list_failed_sync_feedback_ids,
    list_feedback_by_batch,
    list_feedback_use_case,
    production_summary_use_case,
    send_marketplace_update_use_case,
    update_feedback_use_case,
)

router = APIRouter(prefix="/feedback", tags=["feedback"])


def _mutation_response(result: FeedbackMutationResult) -> FeedbackMutationResponse:
    return FeedbackMutationResponse(
        feedback=FeedbackResponse.model_validate(result.feedback),
        marketplace_update=(
            MarketplaceUpdateOut(**result.marketplace_update.to_dict())
            if result.marketplace_update is not None
            else None
        ),
    )


@router.post("", response_model=FeedbackResponse, status_code=201)
def create_feedback(
    data: FeedbackCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canManageFeedback")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Open a feedback record for a production run."""
    return create_feedback_use_case(db=db, data=data, current_user=current_user, channels=channels)


@router.get("", response_model=FeedbackListResponse)
def list_feedback(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    product_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List feedback records with filters and pagination."""
    result = list_feedback_use_case(
        db=db,
        status=status,
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        batch_id=batch_id,
        search=search,
        page=page,
        limit=limit,
    )
    return {"items": result.items, "pagination": result.pagination()}


@router.get("/summary", response_model=ProductionSummaryOut)
def get_production_summary(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return production_summary_use_case(db=db)


@router.post(
    "/marketplace/resend-failed",
    response_model=BulkResendOut,
    status_code=202,
)
def resend_failed_marketplace_updates(
    current_user: CurrentUser = Depends(PermissionChecker("canSyncMarketplace")),
    db: Session = Depends(get_db),
):
    """Queue a re-send for every feedback whose last sync failed."""
    feedback_ids = list_failed_sync_feedback_ids(db=db)
    queued = [resend_marketplace_update.delay(feedback_id).id for feedback_id in feedback_ids]
    return {"queued": queued}


@router.get("/by-external/{feedback_id}", response_model=FeedbackDetailResponse)
def get_feedback_by_feedback_id(
    feedback_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_feedback_by_external_id(db=db, feedback_id=feedback_id)


@router.get("/by-production/{production_id}", response_model=FeedbackDetailResponse)
def get_feedback_for_production(
    production_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_feedback_by_production_id(db=db, production_id=production_id)


@router.get("/by-batch/{batch_id}", response_model=list[FeedbackResponse])
def get_feedback_for_batch(
    batch_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_feedback_by_batch(db=db, batch_id=batch_id)


@router.get("/{feedback_pk}", response_model=FeedbackDetailResponse)
def get_feedback(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get feedback with its steps and quality checks."""
    return get_feedback_or_404(db=db, feedback_pk=feedback_pk)


@router.put("/{feedback_pk}", response_model=FeedbackMutationResponse)
def update_feedback(
    feedback_pk: int,
    data: FeedbackUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canManageFeedback")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = update_feedback_use_case(
        db=db,
        feedback_pk=feedback_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )
    return _mutation_response(result)


@router.delete("/{feedback_pk}", response_model=FeedbackMutationResponse)
def cancel_feedback(
    feedback_pk: int,
    data: Optional[FeedbackCancel] = None,
    current_user: CurrentUser = Depends(PermissionChecker("canManageFeedback")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Cancel (soft-delete) a feedback record."""
    result = cancel_feedback_use_case(
        db=db,
        feedback_pk=feedback_pk,
        current_user=current_user,
        channels=channels,
        reason=data.reason if data else None,
    )
    return _mutation_response(result)


@router.get("/{feedback_pk}/marketplace", response_model=MarketplaceStatusOut)
def get_marketplace_status(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_feedback_or_404(db=db, feedback_pk=feedback_pk)


@router.post("/{feedback_pk}/marketplace/send", response_model=MarketplaceUpdateOut)
def send_marketplace_update(
    feedback_pk: int,
    current_user: CurrentUser = Depends(PermissionChecker("canSyncMarketplace")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Manually (re)send the marketplace update."""
    result = send_marketplace_update_use_case(db=db, feedback_pk=feedback_pk, channels=channels)
    return result.to_dict()
