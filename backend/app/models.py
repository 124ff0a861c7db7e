"""SQLAlchemy models for production feedback records."""
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


FEEDBACK_STATUSES = ("pending", "in_progress", "completed", "failed", "cancelled")
TERMINAL_FEEDBACK_STATUSES = ("completed", "failed", "cancelled")
STEP_STATUSES = ("pending", "in_progress", "completed", "failed")
CHECK_TYPES = ("visual", "dimensional", "functional", "material", "safety", "other")
CHECK_RESULTS = ("pending", "passed", "failed", "waived")
COMMENT_TYPES = ("internal", "customer", "marketplace", "system")
NOTIFICATION_TYPES = (
    "status_update", "quality_issue", "completion", "comment",
    "marketplace_update", "issue", "other",
)
RECIPIENT_TYPES = ("user", "role", "email")
PRIORITIES = ("low", "medium", "high", "urgent")
DELIVERY_METHODS = ("in_app", "email", "both")
MARKETPLACE_UPDATE_STATUSES = ("sent", "failed")
ISSUE_SEVERITIES = ("low", "medium", "high", "critical")
ISSUE_STATUSES = ("open", "in_progress", "resolved")


def _in(column_name: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column_name} IN ({quoted})"


class ProductionFeedback(Base):
    """Externally reported state of one production batch."""
    __tablename__ = "production_feedbacks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    feedback_id = Column(String(64), unique=True, nullable=False, index=True)
    production_id = Column(String(100), unique=True, nullable=False, index=True)
    batch_id = Column(String(100), nullable=True, index=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)

    # Derived fields: written by the status aggregator and the quality calculator.
    status = Column(String(20), nullable=False, default="pending", index=True)
    completion_percentage = Column(Float, nullable=False, default=0)
    quantity_produced = Column(Integer, nullable=False, default=0)
    quantity_rejected = Column(Integer, nullable=False, default=0)
    quality_score = Column(Float, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    quantity_ordered = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)

    # NULL means the record was never pushed to the marketplace.
    marketplace_update_status = Column(String(20), nullable=True)
    marketplace_last_update = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("status", FEEDBACK_STATUSES), name="chk_feedback_status"),
        CheckConstraint("quantity_ordered > 0", name="chk_feedback_qty_ordered"),
        CheckConstraint("quantity_produced >= 0", name="chk_feedback_qty_produced"),
        CheckConstraint("quantity_rejected >= 0", name="chk_feedback_qty_rejected"),
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="chk_feedback_completion",
        ),
        CheckConstraint(
            "quality_score IS NULL OR (quality_score >= 0 AND quality_score <= 100)",
            name="chk_feedback_quality_score",
        ),
        CheckConstraint(
            "marketplace_update_status IS NULL OR " + _in("marketplace_update_status", MARKETPLACE_UPDATE_STATUSES),
            name="chk_feedback_marketplace_status",
        ),
    )

    # Relationships
    steps = relationship(
        "ProductionStep",
        back_populates="feedback",
        cascade="all, delete-orphan",
        order_by="ProductionStep.step_order",
    )
    quality_checks = relationship(
        "QualityCheck",
        back_populates="feedback",
        cascade="all, delete-orphan",
        order_by="QualityCheck.check_date",
    )


class ProductionStep(Base):
    """One stage of a batch's production sequence."""
    __tablename__ = "production_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    step_id = Column(String(64), unique=True, nullable=False, index=True)
    feedback_id = Column(
        Integer,
        ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_name = Column(String(255), nullable=False)
    step_order = Column(Integer, nullable=False)
    machine_id = Column(String(100), nullable=True, index=True)
    machine_name = Column(String(255), nullable=True)
    operator_id = Column(String(100), nullable=True, index=True)
    operator_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    expected_duration_minutes = Column(Integer, nullable=True)
    materials_used = Column(JSON, nullable=True)
    quantity_processed = Column(Integer, nullable=False, default=0)
    quantity_passed = Column(Integer, nullable=False, default=0)
    quantity_rejected = Column(Integer, nullable=False, default=0)
    issues_encountered = Column(Text, nullable=True)
    actions_taken = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("feedback_id", "step_order", name="uq_step_feedback_order"),
        CheckConstraint(_in("status", STEP_STATUSES), name="chk_step_status"),
        CheckConstraint(
            "quantity_processed >= 0 AND quantity_passed >= 0 AND quantity_rejected >= 0",
            name="chk_step_quantities",
        ),
    )

    feedback = relationship("ProductionFeedback", back_populates="steps")


class QualityCheck(Base):
    """One inspection or measurement event."""
    __tablename__ = "quality_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    check_id = Column(String(64), unique=True, nullable=False, index=True)
    feedback_id = Column(
        Integer,
        ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id = Column(Integer, ForeignKey("production_steps.id", ondelete="SET NULL"), nullable=True, index=True)
    inspector_id = Column(String(100), nullable=True)
    inspector_name = Column(String(255), nullable=True)
    check_type = Column(String(20), nullable=False)
    check_name = Column(String(255), nullable=False)
    check_description = Column(Text, nullable=True)
    standard = Column(String(255), nullable=True)
    result = Column(String(20), nullable=False, default="pending")
    quantity_checked = Column(Integer, nullable=False, default=0)
    quantity_passed = Column(Integer, nullable=False, default=0)
    quantity_rejected = Column(Integer, nullable=False, default=0)
    measurement_value = Column(Float, nullable=True)
    measurement_unit = Column(String(50), nullable=True)
    tolerance_min = Column(Float, nullable=True)
    tolerance_max = Column(Float, nullable=True)
    check_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    defects = Column(Text, nullable=True)
    corrective_actions = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("check_type", CHECK_TYPES), name="chk_quality_check_type"),
        CheckConstraint(_in("result", CHECK_RESULTS), name="chk_quality_check_result"),
    )

    feedback = relationship("ProductionFeedback", back_populates="quality_checks")
    step = relationship("ProductionStep")


class FeedbackComment(Base):
    """Threaded remark on a feedback record; soft-deleted only."""
    __tablename__ = "feedback_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    comment_id = Column(String(64), unique=True, nullable=False, index=True)
    feedback_id = Column(
        Integer,
        ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    comment_type = Column(String(20), nullable=False, default="internal")
    content = Column(Text, nullable=False)
    user_id = Column(String(100), nullable=False)
    user_name = Column(String(255), nullable=True)
    user_role = Column(String(50), nullable=True)
    is_important = Column(Boolean, nullable=False, default=False)
    parent_comment_id = Column(Integer, ForeignKey("feedback_comments.id"), nullable=True, index=True)
    is_edited = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    visible_to_customer = Column(Boolean, nullable=False, default=False)
    visible_to_marketplace = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("comment_type", COMMENT_TYPES), name="chk_comment_type"),
    )

    feedback = relationship("ProductionFeedback")
    parent = relationship("FeedbackComment", remote_side=[id])


class FeedbackNotification(Base):
    """Fan-out unit of work addressed to a user, a role or an email."""
    __tablename__ = "feedback_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(String(64), unique=True, nullable=False, index=True)
    feedback_id = Column(
        Integer,
        ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    recipient_type = Column(String(10), nullable=False)
    recipient_id = Column(String(255), nullable=True)
    recipient_role = Column(String(50), nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    delivery_method = Column(String(10), nullable=False, default="in_app")
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    delivery_error = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("type", NOTIFICATION_TYPES), name="chk_notification_type"),
        CheckConstraint(_in("recipient_type", RECIPIENT_TYPES), name="chk_notification_recipient_type"),
        CheckConstraint(_in("priority", PRIORITIES), name="chk_notification_priority"),
        CheckConstraint(_in("delivery_method", DELIVERY_METHODS), name="chk_notification_delivery"),
        Index("idx_notification_recipient_unread", "recipient_type", "recipient_id", "is_read"),
        Index("idx_notification_role_unread", "recipient_type", "recipient_role", "is_read"),
    )

    feedback = relationship("ProductionFeedback")


class ProductionIssue(Base):
    """Issue reported against a production batch."""
    __tablename__ = "production_issues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_id = Column(String(64), unique=True, nullable=False, index=True)
    feedback_id = Column(
        Integer,
        ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issue_type = Column(String(100), nullable=False)
    severity = Column(String(10), nullable=False, default="medium")
    description = Column(Text, nullable=False)
    reported_by = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="open", index=True)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("severity", ISSUE_SEVERITIES), name="chk_issue_severity"),
        CheckConstraint(_in("status", ISSUE_STATUSES), name="chk_issue_status"),
    )

    feedback = relationship("ProductionFeedback")
