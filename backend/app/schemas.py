"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Literal, Optional
from datetime import datetime


FeedbackStatus = Literal["pending", "in_progress", "completed", "failed", "cancelled"]
StepStatus = Literal["pending", "in_progress", "completed", "failed"]
CheckType = Literal["visual", "dimensional", "functional", "material", "safety", "other"]
CheckResult = Literal["pending", "passed", "failed", "waived"]
CommentType = Literal["internal", "customer", "marketplace", "system"]
NotificationType = Literal[
    "status_update", "quality_issue", "completion", "comment", "marketplace_update", "issue", "other"
]
RecipientType = Literal["user", "role", "email"]
Priority = Literal["low", "medium", "high", "urgent"]
DeliveryMethod = Literal["in_app", "email", "both"]
IssueSeverity = Literal["low", "medium", "high", "critical"]
IssueStatus = Literal["open", "in_progress", "resolved"]


# Shared
class PaginationOut(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    items_per_page: int


class MarketplaceUpdateOut(BaseModel):
    """Outcome of a marketplace push attempted as a side effect."""
    success: bool
    attempted: bool
    message: str
    error: Optional[str] = None


class FeedbackDerivedState(BaseModel):
    """Derived fields of a feedback after recomputation."""
    id: int
    feedback_id: str
    status: str
    completion_percentage: float
    quantity_produced: int
    quantity_rejected: int
    quality_score: Optional[float] = None
    end_date: Optional[datetime] = None
    marketplace_update_status: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Feedback schemas
class FeedbackCreate(BaseModel):
    production_id: str = Field(min_length=1, max_length=100)
    batch_id: Optional[str] = Field(default=None, max_length=100)
    product_id: str = Field(min_length=1, max_length=100)
    product_name: str = Field(min_length=1, max_length=255)
    quantity_ordered: int = Field(gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    customer_notes: Optional[str] = None


class FeedbackUpdate(BaseModel):
    """User-settable fields only; derived fields are rejected."""
    product_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    batch_id: Optional[str] = Field(default=None, max_length=100)
    quantity_ordered: Optional[int] = Field(default=None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    customer_notes: Optional[str] = None
    model_config = ConfigDict(extra="forbid")


class FeedbackCancel(BaseModel):
    reason: Optional[str] = None


class FeedbackResponse(BaseModel):
    id: int
    feedback_id: str
    production_id: str
    batch_id: Optional[str] = None
    product_id: str
    product_name: str
    status: str
    completion_percentage: float
    quantity_ordered: int
    quantity_produced: int
    quantity_rejected: int
    quality_score: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    customer_notes: Optional[str] = None
    marketplace_update_status: Optional[str] = None
    marketplace_last_update: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class FeedbackDetailResponse(FeedbackResponse):
    steps: list["StepResponse"] = []
    quality_checks: list["QualityCheckResponse"] = []


class FeedbackListResponse(BaseModel):
    items: list[FeedbackResponse]
    pagination: PaginationOut


class FeedbackMutationResponse(BaseModel):
    feedback: FeedbackResponse
    marketplace_update: Optional[MarketplaceUpdateOut] = None


class ProductionSummaryOut(BaseModel):
    total: int
    status_counts: dict[str, int]
    completed_last_30_days: int
    total_quantity_ordered: int
    total_quantity_produced: int
    total_quantity_rejected: int
    average_completion: float


class MarketplaceStatusOut(BaseModel):
    feedback_id: str
    production_id: str
    batch_id: Optional[str] = None
    status: str
    marketplace_update_status: Optional[str] = None
    marketplace_last_update: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BulkResendOut(BaseModel):
    queued: list[str]


# Step schemas
class StepCreate(BaseModel):
    step_name: str = Field(min_length=1, max_length=255)
    step_order: int = Field(ge=0)
    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    status: StepStatus = "pending"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    expected_duration_minutes: Optional[int] = Field(default=None, ge=0)
    materials_used: Optional[list[dict[str, Any]]] = None
    quantity_processed: int = Field(default=0, ge=0)
    quantity_passed: int = Field(default=0, ge=0)
    quantity_rejected: int = Field(default=0, ge=0)
    issues_encountered: Optional[str] = None
    actions_taken: Optional[str] = None
    notes: Optional[str] = None


class StepBatchCreate(BaseModel):
    steps: list[StepCreate] = Field(min_length=1)


class StepUpdate(BaseModel):
    step_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    step_order: Optional[int] = Field(default=None, ge=0)
    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    status: Optional[StepStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    expected_duration_minutes: Optional[int] = Field(default=None, ge=0)
    materials_used: Optional[list[dict[str, Any]]] = None
    quantity_processed: Optional[int] = Field(default=None, ge=0)
    quantity_passed: Optional[int] = Field(default=None, ge=0)
    quantity_rejected: Optional[int] = Field(default=None, ge=0)
    issues_encountered: Optional[str] = None
    actions_taken: Optional[str] = None
    notes: Optional[str] = None


class StepStatusUpdate(BaseModel):
    status: StepStatus
    notes: Optional[str] = None


class StepResponse(BaseModel):
    id: int
    step_id: str
    feedback_id: int
    step_name: str
    step_order: int
    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    expected_duration_minutes: Optional[int] = None
    materials_used: Optional[list[dict[str, Any]]] = None
    quantity_processed: int
    quantity_passed: int
    quantity_rejected: int
    issues_encountered: Optional[str] = None
    actions_taken: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class StepMutationResponse(BaseModel):
    steps: list[StepResponse]
    feedback: FeedbackDerivedState
    marketplace_update: Optional[MarketplaceUpdateOut] = None
    recompute_error: Optional[str] = None


# Quality check schemas
class QualityCheckCreate(BaseModel):
    check_type: CheckType
    check_name: str = Field(min_length=1, max_length=255)
    step_id: Optional[int] = None
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    check_description: Optional[str] = None
    standard: Optional[str] = None
    result: Optional[CheckResult] = None
    quantity_checked: int = Field(default=0, ge=0)
    quantity_passed: int = Field(default=0, ge=0)
    quantity_rejected: int = Field(default=0, ge=0)
    measurement_value: Optional[float] = None
    measurement_unit: Optional[str] = None
    tolerance_min: Optional[float] = None
    tolerance_max: Optional[float] = None
    check_date: Optional[datetime] = None
    defects: Optional[str] = None
    corrective_actions: Optional[str] = None
    notes: Optional[str] = None


class QualityCheckBatchCreate(BaseModel):
    checks: list[QualityCheckCreate] = Field(min_length=1)


class QualityCheckUpdate(BaseModel):
    check_type: Optional[CheckType] = None
    check_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    check_description: Optional[str] = None
    standard: Optional[str] = None
    result: Optional[CheckResult] = None
    quantity_checked: Optional[int] = Field(default=None, ge=0)
    quantity_passed: Optional[int] = Field(default=None, ge=0)
    quantity_rejected: Optional[int] = Field(default=None, ge=0)
    measurement_value: Optional[float] = None
    measurement_unit: Optional[str] = None
    tolerance_min: Optional[float] = None
    tolerance_max: Optional[float] = None
    check_date: Optional[datetime] = None
    defects: Optional[str] = None
    corrective_actions: Optional[str] = None
    notes: Optional[str] = None


class QualityResultUpdate(BaseModel):
    result: CheckResult
    notes: Optional[str] = None


class QualityCheckResponse(BaseModel):
    id: int
    check_id: str
    feedback_id: int
    step_id: Optional[int] = None
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    check_type: str
    check_name: str
    check_description: Optional[str] = None
    standard: Optional[str] = None
    result: str
    quantity_checked: int
    quantity_passed: int
    quantity_rejected: int
    measurement_value: Optional[float] = None
    measurement_unit: Optional[str] = None
    tolerance_min: Optional[float] = None
    tolerance_max: Optional[float] = None
    check_date: Optional[datetime] = None
    defects: Optional[str] = None
    corrective_actions: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class QualityMutationResponse(BaseModel):
    checks: list[QualityCheckResponse]
    quality_score: Optional[float] = None
    recompute_error: Optional[str] = None


class QualityTypeCounts(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    pending: int = 0
    waived: int = 0


class QualitySummaryOut(BaseModel):
    feedback_id: str
    total_checks: int
    checks_by_result: dict[str, int]
    checks_by_type: dict[str, QualityTypeCounts]
    quantity_checked: int
    quantity_passed: int
    quantity_rejected: int
    quality_score: float
    last_check_date: Optional[datetime] = None


# Comment schemas
class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    comment_type: CommentType = "internal"
    is_important: bool = False
    parent_comment_id: Optional[int] = None
    visible_to_customer: bool = False
    visible_to_marketplace: bool = False


class CommentUpdate(BaseModel):
    content: Optional[str] = Field(default=None, min_length=1)
    is_important: Optional[bool] = None
    visible_to_customer: Optional[bool] = None
    visible_to_marketplace: Optional[bool] = None


class CommentResponse(BaseModel):
    id: int
    comment_id: str
    feedback_id: int
    comment_type: str
    content: str
    user_id: str
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    is_important: bool
    parent_comment_id: Optional[int] = None
    is_edited: bool
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    visible_to_customer: bool
    visible_to_marketplace: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Notification schemas
class NotificationCreate(BaseModel):
    feedback_id: Optional[int] = None
    type: NotificationType = "other"
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    recipient_type: RecipientType
    recipient_id: Optional[str] = None
    recipient_role: Optional[str] = None
    priority: Priority = "medium"
    delivery_method: DeliveryMethod = "in_app"


class NotificationIdsRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


class NotificationResponse(BaseModel):
    id: int
    notification_id: str
    feedback_id: Optional[int] = None
    type: str
    title: str
    message: str
    recipient_type: str
    recipient_id: Optional[str] = None
    recipient_role: Optional[str] = None
    priority: str
    delivery_method: str
    is_read: bool
    read_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    delivery_error: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    pagination: PaginationOut


class UnreadCountOut(BaseModel):
    unread: int


class MarkReadOut(BaseModel):
    updated: int


# Issue schemas
class IssueCreate(BaseModel):
    issue_type: str = Field(min_length=1, max_length=100)
    severity: IssueSeverity = "medium"
    description: str = Field(min_length=1)


class IssueUpdate(BaseModel):
    status: Optional[IssueStatus] = None
    severity: Optional[IssueSeverity] = None
    resolution: Optional[str] = None


class IssueResponse(BaseModel):
    id: int
    issue_id: str
    feedback_id: int
    issue_type: str
    severity: str
    description: str
    reported_by: Optional[str] = None
    status: str
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


FeedbackDetailResponse.model_rebuild()
