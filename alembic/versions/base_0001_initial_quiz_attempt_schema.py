"""initial quiz attempt schema

Revision ID: base_0001
Revises:
Create Date: 2026-10-18 15:10:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "base_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "quizzes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("difficulty", sa.String(10), nullable=False),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=False),
        sa.Column("time_per_question", sa.Integer(), nullable=True),
        sa.Column("allow_pause", sa.Boolean(), nullable=False),
        sa.Column("auto_submit", sa.Boolean(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("allow_retake", sa.Boolean(), nullable=False),
        sa.Column("retake_delay_hours", sa.Float(), nullable=False),
        sa.Column("passing_score", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("available_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("available_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_type", sa.String(20), nullable=False),
        sa.Column("allowed_users", sa.JSON(), nullable=False),
        sa.Column("blocked_users", sa.JSON(), nullable=False),
        sa.Column("negative_marking", sa.Boolean(), nullable=False),
        sa.Column("negative_marking_value", sa.Float(), nullable=False),
        sa.Column("total_attempts", sa.Integer(), nullable=False),
        sa.Column("completed_attempts", sa.Integer(), nullable=False),
        sa.Column("average_score", sa.Float(), nullable=False),
        sa.Column("average_time_spent", sa.Float(), nullable=False),
        sa.Column("pass_rate", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("slug", name="uq_quizzes_slug"),
    )

    op.create_table(
        "quiz_questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "quiz_id",
            sa.Integer(),
            sa.ForeignKey("quizzes.id", ondelete="CASCADE", name="fk_quiz_questions_quiz_id_quizzes"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("correct_option", sa.Integer(), nullable=False),
        sa.Column("points", sa.Float(), nullable=False),
        sa.Column("difficulty", sa.String(10), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.UniqueConstraint("quiz_id", "position", name="uq_quiz_questions_quiz_id"),
    )
    op.create_index("ix_quiz_questions_quiz_id", "quiz_questions", ["quiz_id"])

    op.create_table(
        "quiz_attempts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("quiz_id", sa.Integer(), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("active_slot", sa.String(160), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_budget", sa.Integer(), nullable=False),
        sa.Column("time_spent", sa.Integer(), nullable=False),
        sa.Column("remaining_time", sa.Integer(), nullable=False),
        sa.Column("paused_seconds", sa.Float(), nullable=False),
        sa.Column("current_question_index", sa.Integer(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("answered_questions", sa.JSON(), nullable=False),
        sa.Column("flagged_questions", sa.JSON(), nullable=False),
        sa.Column("skipped_questions", sa.JSON(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("tab_switch_count", sa.Integer(), nullable=False),
        sa.Column("suspicious_activity", sa.JSON(), nullable=False),
        sa.Column("browser_info", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.UniqueConstraint("active_slot", name="uq_quiz_attempts_active_slot"),
        sa.UniqueConstraint(
            "user_id", "quiz_id", "attempt_number", name="uq_quiz_attempts_number"
        ),
    )
    op.create_index("ix_quiz_attempts_user_quiz", "quiz_attempts", ["user_id", "quiz_id"])
    op.create_index("ix_quiz_attempts_quiz_id", "quiz_attempts", ["quiz_id"])
    op.create_index("ix_quiz_attempts_status", "quiz_attempts", ["status"])

    op.create_table(
        "quiz_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("quiz_id", sa.Integer(), nullable=False),
        sa.Column("attempt_id", sa.Integer(), nullable=True),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("total_score", sa.Float(), nullable=False),
        sa.Column("max_score", sa.Float(), nullable=False),
        sa.Column("percentage", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_time_spent", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("analytics", sa.JSON(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("attempt_id", name="uq_quiz_results_attempt_id"),
    )
    op.create_index("ix_quiz_results_user_quiz", "quiz_results", ["user_id", "quiz_id"])
    op.create_index("ix_quiz_results_quiz_id", "quiz_results", ["quiz_id"])
    op.create_index("ix_quiz_results_created_at", "quiz_results", ["created_at"])

    op.create_table(
        "user_stats",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("total_quizzes_taken", sa.Integer(), nullable=False),
        sa.Column("average_score", sa.Float(), nullable=False),
        sa.Column("total_time_spent", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_stats")
    op.drop_index("ix_quiz_results_created_at", table_name="quiz_results")
    op.drop_index("ix_quiz_results_quiz_id", table_name="quiz_results")
    op.drop_index("ix_quiz_results_user_quiz", table_name="quiz_results")
    op.drop_table("quiz_results")
    op.drop_index("ix_quiz_attempts_status", table_name="quiz_attempts")
    op.drop_index("ix_quiz_attempts_quiz_id", table_name="quiz_attempts")
    op.drop_index("ix_quiz_attempts_user_quiz", table_name="quiz_attempts")
    op.drop_table("quiz_attempts")
    op.drop_index("ix_quiz_questions_quiz_id", table_name="quiz_questions")
    op.drop_table("quiz_questions")
    op.drop_table("quizzes")
