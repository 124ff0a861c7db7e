"""Production step endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, PermissionChecker, get_current_user
from ..database import get_db
from ..schemas import (
    FeedbackDerivedState,
    MarketplaceUpdateOut,
    StepBatchCreate,
    StepCreate,
    StepMutationResponse,
    StepResponse,
    StepStatusUpdate,
    StepUpdate,
)
from ..services.side_effects import SideEffectChannels, get_side_effect_channels
from ..use_cases.step_use_cases import (
    StepMutationResult,
    create_step_use_case,
    create_steps_batch_use_case,
    delete_step_use_case,
    get_step_by_external_id,
    get_step_or_404,
    list_steps_by_machine,
    list_steps_by_operator,
    list_steps_for_feedback,
    update_step_status_use_case,
    update_step_use_case,
)

router = APIRouter(tags=["steps"])


def step_mutation_response(result: StepMutationResult) -> StepMutationResponse:
    return StepMutationResponse(
        steps=[StepResponse.model_validate(step) for step in result.steps],
        feedback=FeedbackDerivedState.model_validate(result.feedback),
        marketplace_update=(
            MarketplaceUpdateOut(**result.marketplace_update.to_dict())
            if result.marketplace_update is not None
            else None
        ),
        recompute_error=result.recompute_error,
    )


@router.post("/feedback/{feedback_pk}/steps", response_model=StepMutationResponse, status_code=201)
def create_step(
    feedback_pk: int,
    data: StepCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordSteps")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Record a production step."""
    result = create_step_use_case(
        db=db,
        feedback_pk=feedback_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )
    return step_mutation_response(result)


@router.post("/feedback/{feedback_pk}/steps/batch", response_model=StepMutationResponse, status_code=201)
def create_steps_batch(
    feedback_pk: int,
    data: StepBatchCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordSteps")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Record several steps at once."""
    result = create_steps_batch_use_case(
        db=db,
        feedback_pk=feedback_pk,
        steps_data=data.steps,
        current_user=current_user,
        channels=channels,
    )
    return step_mutation_response(result)


@router.get("/feedback/{feedback_pk}/steps", response_model=list[StepResponse])
def list_steps(
    feedback_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_steps_for_feedback(db=db, feedback_pk=feedback_pk)


@router.get("/steps/by-machine/{machine_id}", response_model=list[StepResponse])
def list_machine_steps(
    machine_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_steps_by_machine(db=db, machine_id=machine_id)


@router.get("/steps/by-operator/{operator_id}", response_model=list[StepResponse])
def list_operator_steps(
    operator_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_steps_by_operator(db=db, operator_id=operator_id)


@router.get("/steps/by-external/{step_id}", response_model=StepResponse)
def get_step_by_step_id(
    step_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_step_by_external_id(db=db, step_id=step_id)


@router.get("/steps/{step_pk}", response_model=StepResponse)
def get_step(
    step_pk: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_step_or_404(db=db, step_pk=step_pk)


@router.put("/steps/{step_pk}", response_model=StepMutationResponse)
def update_step(
    step_pk: int,
    data: StepUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordSteps")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = update_step_use_case(
        db=db,
        step_pk=step_pk,
        data=data,
        current_user=current_user,
        channels=channels,
    )
    return step_mutation_response(result)


@router.patch("/steps/{step_pk}/status", response_model=StepMutationResponse)
def update_step_status(
    step_pk: int,
    data: StepStatusUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordSteps")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    """Move a step to a new status; start/end times are stamped automatically."""
    result = update_step_status_use_case(
        db=db,
        step_pk=step_pk,
        status=data.status,
        notes=data.notes,
        current_user=current_user,
        channels=channels,
    )
    return step_mutation_response(result)


@router.delete("/steps/{step_pk}", response_model=StepMutationResponse)
def delete_step(
    step_pk: int,
    current_user: CurrentUser = Depends(PermissionChecker("canRecordSteps")),
    channels: SideEffectChannels = Depends(get_side_effect_channels),
    db: Session = Depends(get_db),
):
    result = delete_step_use_case(db=db, step_pk=step_pk, current_user=current_user, channels=channels)
    return step_mutation_response(result)
