"""production feedback schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "production_feedbacks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("feedback_id", sa.String(64), nullable=False, unique=True),
        sa.Column("production_id", sa.String(100), nullable=False, unique=True),
        sa.Column("batch_id", sa.String(100), nullable=True),
        sa.Column("product_id", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("completion_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("quantity_produced", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quality_score", sa.Float(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("marketplace_update_status", sa.String(20), nullable=True),
        sa.Column("marketplace_last_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("updated_by", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed', 'cancelled')",
            name="chk_feedback_status",
        ),
        sa.CheckConstraint("quantity_ordered > 0", name="chk_feedback_qty_ordered"),
        sa.CheckConstraint("quantity_produced >= 0", name="chk_feedback_qty_produced"),
        sa.CheckConstraint("quantity_rejected >= 0", name="chk_feedback_qty_rejected"),
        sa.CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="chk_feedback_completion",
        ),
        sa.CheckConstraint(
            "quality_score IS NULL OR (quality_score >= 0 AND quality_score <= 100)",
            name="chk_feedback_quality_score",
        ),
        sa.CheckConstraint(
            "marketplace_update_status IS NULL OR marketplace_update_status IN ('sent', 'failed')",
            name="chk_feedback_marketplace_status",
        ),
    )
    op.create_index("ix_production_feedbacks_feedback_id", "production_feedbacks", ["feedback_id"])
    op.create_index("ix_production_feedbacks_production_id", "production_feedbacks", ["production_id"])
    op.create_index("ix_production_feedbacks_batch_id", "production_feedbacks", ["batch_id"])
    op.create_index("ix_production_feedbacks_product_id", "production_feedbacks", ["product_id"])
    op.create_index("ix_production_feedbacks_status", "production_feedbacks", ["status"])
    op.create_index("ix_production_feedbacks_created_at", "production_feedbacks", ["created_at"])

    op.create_table(
        "production_steps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("step_id", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "feedback_id",
            sa.Integer(),
            sa.ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_name", sa.String(255), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("machine_id", sa.String(100), nullable=True),
        sa.Column("machine_name", sa.String(255), nullable=True),
        sa.Column("operator_id", sa.String(100), nullable=True),
        sa.Column("operator_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("expected_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("materials_used", sa.JSON(), nullable=True),
        sa.Column("quantity_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_passed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("issues_encountered", sa.Text(), nullable=True),
        sa.Column("actions_taken", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("feedback_id", "step_order", name="uq_step_feedback_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="chk_step_status",
        ),
        sa.CheckConstraint(
            "quantity_processed >= 0 AND quantity_passed >= 0 AND quantity_rejected >= 0",
            name="chk_step_quantities",
        ),
    )
    op.create_index("ix_production_steps_step_id", "production_steps", ["step_id"])
    op.create_index("ix_production_steps_feedback_id", "production_steps", ["feedback_id"])
    op.create_index("ix_production_steps_machine_id", "production_steps", ["machine_id"])
    op.create_index("ix_production_steps_operator_id", "production_steps", ["operator_id"])

    op.create_table(
        "quality_checks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("check_id", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "feedback_id",
            sa.Integer(),
            sa.ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "step_id",
            sa.Integer(),
            sa.ForeignKey("production_steps.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("inspector_id", sa.String(100), nullable=True),
        sa.Column("inspector_name", sa.String(255), nullable=True),
        sa.Column("check_type", sa.String(20), nullable=False),
        sa.Column("check_name", sa.String(255), nullable=False),
        sa.Column("check_description", sa.Text(), nullable=True),
        sa.Column("standard", sa.String(255), nullable=True),
        sa.Column("result", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("quantity_checked", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_passed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("measurement_value", sa.Float(), nullable=True),
        sa.Column("measurement_unit", sa.String(50), nullable=True),
        sa.Column("tolerance_min", sa.Float(), nullable=True),
        sa.Column("tolerance_max", sa.Float(), nullable=True),
        sa.Column("check_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("defects", sa.Text(), nullable=True),
        sa.Column("corrective_actions", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "check_type IN ('visual', 'dimensional', 'functional', 'material', 'safety', 'other')",
            name="chk_quality_check_type",
        ),
        sa.CheckConstraint(
            "result IN ('pending', 'passed', 'failed', 'waived')",
            name="chk_quality_check_result",
        ),
    )
    op.create_index("ix_quality_checks_check_id", "quality_checks", ["check_id"])
    op.create_index("ix_quality_checks_feedback_id", "quality_checks", ["feedback_id"])
    op.create_index("ix_quality_checks_step_id", "quality_checks", ["step_id"])

    op.create_table(
        "feedback_comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("comment_id", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "feedback_id",
            sa.Integer(),
            sa.ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("comment_type", sa.String(20), nullable=False, server_default="internal"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("user_role", sa.String(50), nullable=True),
        sa.Column("is_important", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("parent_comment_id", sa.Integer(), sa.ForeignKey("feedback_comments.id"), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("visible_to_customer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("visible_to_marketplace", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            "comment_type IN ('internal', 'customer', 'marketplace', 'system')",
            name="chk_comment_type",
        ),
    )
    op.create_index("ix_feedback_comments_comment_id", "feedback_comments", ["comment_id"])
    op.create_index("ix_feedback_comments_feedback_id", "feedback_comments", ["feedback_id"])
    op.create_index("ix_feedback_comments_parent_comment_id", "feedback_comments", ["parent_comment_id"])

    op.create_table(
        "feedback_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("notification_id", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "feedback_id",
            sa.Integer(),
            sa.ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("recipient_type", sa.String(10), nullable=False),
        sa.Column("recipient_id", sa.String(255), nullable=True),
        sa.Column("recipient_role", sa.String(50), nullable=True),
        sa.Column("priority", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("delivery_method", sa.String(10), nullable=False, server_default="in_app"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_delivered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_error", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "type IN ('status_update', 'quality_issue', 'completion', 'comment', "
            "'marketplace_update', 'issue', 'other')",
            name="chk_notification_type",
        ),
        sa.CheckConstraint("recipient_type IN ('user', 'role', 'email')", name="chk_notification_recipient_type"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high', 'urgent')", name="chk_notification_priority"),
        sa.CheckConstraint("delivery_method IN ('in_app', 'email', 'both')", name="chk_notification_delivery"),
    )
    op.create_index("ix_feedback_notifications_notification_id", "feedback_notifications", ["notification_id"])
    op.create_index("ix_feedback_notifications_feedback_id", "feedback_notifications", ["feedback_id"])
    op.create_index("ix_feedback_notifications_created_at", "feedback_notifications", ["created_at"])
    op.create_index(
        "idx_notification_recipient_unread",
        "feedback_notifications",
        ["recipient_type", "recipient_id", "is_read"],
    )
    op.create_index(
        "idx_notification_role_unread",
        "feedback_notifications",
        ["recipient_type", "recipient_role", "is_read"],
    )

    op.create_table(
        "production_issues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("issue_id", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "feedback_id",
            sa.Integer(),
            sa.ForeignKey("production_feedbacks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("issue_type", sa.String(100), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reported_by", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name="chk_issue_severity"),
        sa.CheckConstraint("status IN ('open', 'in_progress', 'resolved')", name="chk_issue_status"),
    )
    op.create_index("ix_production_issues_issue_id", "production_issues", ["issue_id"])
    op.create_index("ix_production_issues_feedback_id", "production_issues", ["feedback_id"])
    op.create_index("ix_production_issues_status", "production_issues", ["status"])


def downgrade() -> None:
    op.drop_table("production_issues")
    op.drop_table("feedback_notifications")
    op.drop_table("feedback_comments")
    op.drop_table("quality_checks")
    op.drop_table("production_steps")
    op.drop_table("production_feedbacks")
