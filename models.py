from __future__ import annotations

from datetime import datetime
from enum import StrEnum

import sqlalchemy as sa
from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, UTCDateTime, utcnow


class AttemptStatus(StrEnum):
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"
    EXPIRED = "expired"
    TIME_EXPIRED = "time_expired"


ACTIVE_STATUSES = (AttemptStatus.STARTED, AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED)
ANSWERABLE_STATUSES = (AttemptStatus.STARTED, AttemptStatus.IN_PROGRESS)
SUBMITTED_STATUSES = (AttemptStatus.COMPLETED, AttemptStatus.SUBMITTED)


class ActivityType(StrEnum):
    TAB_SWITCH = "tab_switch"
    COPY_PASTE = "copy_paste"
    RIGHT_CLICK = "right_click"
    DEV_TOOLS = "dev_tools"
    WINDOW_BLUR = "window_blur"
    FULLSCREEN_EXIT = "fullscreen_exit"


class Quiz(Base):
    __tablename__ = "quizzes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True)
    title: Mapped[str] = mapped_column(String(200))
    difficulty: Mapped[str] = mapped_column(String(10), default="medium")

    # time settings
    time_limit_minutes: Mapped[int] = mapped_column(Integer, default=30)
    time_per_question: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    allow_pause: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_submit: Mapped[bool] = mapped_column(Boolean, default=False)

    # attempt settings
    max_attempts: Mapped[int] = mapped_column(Integer, default=1)
    allow_retake: Mapped[bool] = mapped_column(Boolean, default=False)
    retake_delay_hours: Mapped[float] = mapped_column(Float, default=0)
    passing_score: Mapped[int] = mapped_column(Integer, default=60)  # percentage

    # availability
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    available_from: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    available_to: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # access control: public | private | password | invitation
    access_type: Mapped[str] = mapped_column(String(20), default="public")
    allowed_users: Mapped[list] = mapped_column(JSON, default=list)
    blocked_users: Mapped[list] = mapped_column(JSON, default=list)

    negative_marking: Mapped[bool] = mapped_column(Boolean, default=False)
    negative_marking_value: Mapped[float] = mapped_column(Float, default=0)

    # running statistics (best-effort, see stats.py)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    completed_attempts: Mapped[int] = mapped_column(Integer, default=0)
    average_score: Mapped[float] = mapped_column(Float, default=0)
    average_time_spent: Mapped[float] = mapped_column(Float, default=0)
    pass_rate: Mapped[float] = mapped_column(Float, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    questions: Mapped[list[QuizQuestion]] = relationship(
        back_populates="quiz",
        order_by="QuizQuestion.position",
        cascade="all, delete-orphan",
    )


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"
    __table_args__ = (sa.UniqueConstraint("quiz_id", "position"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer)
    prompt: Mapped[str] = mapped_column(Text)
    options: Mapped[list] = mapped_column(JSON)
    correct_option: Mapped[int] = mapped_column(Integer)
    points: Mapped[float] = mapped_column(Float, default=1)
    difficulty: Mapped[str | None] = mapped_column(String(10), nullable=True)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)

    quiz: Mapped[Quiz] = relationship(back_populates="questions")


class Attempt(Base):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "quiz_id", "attempt_number", name="uq_quiz_attempts_number"),
        sa.Index("ix_quiz_attempts_user_quiz", "user_id", "quiz_id"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    quiz_id: Mapped[int] = mapped_column(Integer, index=True)
    attempt_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default=AttemptStatus.STARTED, index=True)
    # "<user>:<quiz>" while the attempt is active, NULL once terminal
    active_slot: Mapped[str | None] = mapped_column(String(160), unique=True, nullable=True)

    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    paused_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    time_budget: Mapped[int] = mapped_column(Integer)  # seconds
    time_spent: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    remaining_time: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    paused_seconds: Mapped[float] = mapped_column(Float, default=0)

    current_question_index: Mapped[int] = mapped_column(Integer, default=0)
    total_questions: Mapped[int] = mapped_column(Integer)
    answered_questions: Mapped[list] = mapped_column(JSON, default=list)
    flagged_questions: Mapped[list] = mapped_column(JSON, default=list)
    skipped_questions: Mapped[list] = mapped_column(JSON, default=list)
    # [{question_index, selected_option, time_spent, marked_for_review, last_modified}]
    answers: Mapped[list] = mapped_column(JSON, default=list)

    tab_switch_count: Mapped[int] = mapped_column(Integer, default=0)
    suspicious_activity: Mapped[list] = mapped_column(JSON, default=list)

    browser_info: Mapped[dict] = mapped_column(JSON, default=dict)
    ip_address: Mapped[str] = mapped_column(String(64), default="unknown")

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class Result(Base):
    __tablename__ = "quiz_results"
    __table_args__ = (sa.Index("ix_quiz_results_user_quiz", "user_id", "quiz_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    quiz_id: Mapped[int] = mapped_column(Integer, index=True)
    attempt_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    attempt_number: Mapped[int] = mapped_column(Integer)

    answers: Mapped[list] = mapped_column(JSON)
    total_score: Mapped[float] = mapped_column(Float)
    max_score: Mapped[float] = mapped_column(Float)
    percentage: Mapped[int] = mapped_column(Integer)
    passed: Mapped[bool] = mapped_column(Boolean)

    start_time: Mapped[datetime] = mapped_column(UTCDateTime())
    end_time: Mapped[datetime] = mapped_column(UTCDateTime())
    total_time_spent: Mapped[int] = mapped_column(Integer)  # seconds
    status: Mapped[str] = mapped_column(String(20), default=AttemptStatus.COMPLETED)
    analytics: Mapped[dict] = mapped_column(JSON)

    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)


class UserStats(Base):
    __tablename__ = "user_stats"
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_quizzes_taken: Mapped[int] = mapped_column(Integer, default=0)
    average_score: Mapped[float] = mapped_column(Float, default=0)
    total_time_spent: Mapped[int] = mapped_column(Integer, default=0)  # seconds
