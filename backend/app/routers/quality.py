"""Quality check endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..database import get_db
from ..schemas import (
    QualityCheckBatchCreate,
    QualityCheckCreate,
    QualityCheckResponse,
    QualityCheckUpdate,
    QualityMutationResponse,
    QualityResultUpdate,
    QualitySummaryOut,
)
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.quality_use_cases import (
    QualityMutationResult,
    create_check_use_case,
    create_checks_batch_use_case,
    delete_check_use_case,
    get_check_by_external_id,
    get_check_or_404,
    list_checks_for_feedback,
    list_checks_for_step,
    quality_summary_use_case,
    update_check_result_use_case,
    update_check_use_case,
)

router = APIRouter(tags=["quality"])


def _mutation_response(result: QualityMutationResult) -> QualityMutationResponse:
    return QualityMutationResponse(
        checks=[QualityCheckResponse.model_validate(check) for check in result.checks],
        quality_score=result.quality_score,
        recompute_error=result.recompute_error,
    )


@router.post("/feedback/{feedback_pk}/quality-checks", response_model=QualityMutationResponse, status_code=201)
def create_check(
    feedback_pk: int,
    data: QualityCheckCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordQuality")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Record a quality check."""
    if data.inspector_id is None:
        data = data.model_copy(update={"inspector_id": current_user.id, "inspector_name": current_user.username})
    result = create_check_use_case(
        db=db,
        feedback_pk=feedback_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )
    return _mutation_response(result)


@router.post(
    "/feedback/{feedback_pk}/quality-checks/batch",
    response_model=QualityMutationResponse,
    status_code=201,
)
def create_checks_batch(
    feedback_pk: int,
    data: QualityCheckBatchCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordQuality")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = create_checks_batch_use_case(
        db=db,
        feedback_pk=feedback_pk,
        checks_data=data.checks,
        current_user=current_user,
        channels=channels,
    )
    return _mutation_response(result)


@router.get("/feedback/{feedback_pk}/quality-checks", response_model=list[QualityCheckResponse])
def list_checks(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_checks_for_feedback(db=db, feedback_pk=feedback_pk)


@router.get("/feedback/{feedback_pk}/quality-summary", response_model=QualitySummaryOut)
def get_quality_summary(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Counts by result and type, quantity totals and score."""
    return quality_summary_use_case(db=db, feedback_pk=feedback_pk)


@router.get("/quality-checks/by-step/{step_pk}", response_model=list[QualityCheckResponse])
def list_step_checks(
    step_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_checks_for_step(db=db, step_pk=step_pk)


@router.get("/quality-checks/by-external/{check_id}", response_model=QualityCheckResponse)
def get_check_by_check_id(
    check_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_check_by_external_id(db=db, check_id=check_id)


@router.get("/quality-checks/{check_pk}", response_model=QualityCheckResponse)
def get_check(
    check_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_check_or_404(db=db, check_pk=check_pk)


@router.put("/quality-checks/{check_pk}", response_model=QualityMutationResponse)
def update_check(
    check_pk: int,
    data: QualityCheckUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordQuality")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = update_check_use_case(
        db=db,
        check_pk=check_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )
    return _mutation_response(result)


@router.patch("/quality-checks/{check_pk}/result", response_model=QualityMutationResponse)
def update_check_result(
    check_pk: int,
    data: QualityResultUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordQuality")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = update_check_result_use_case(
        db=db,
        check_pk=check_pk,
        result=data.result,
        current_user=current_user,
        channels=channels,
        notes=data.notes,
    )
    return _mutation_response(result)


@router.delete("/quality-checks/{check_pk}", response_model=QualityMutationResponse)
def delete_check(
    check_pk: int,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordQuality")),
    db: Session = Depends(get_db),
):
    return _mutation_response(delete_check_use_case(db=db, check_pk=check_pk))
