"""Quiz definition provider.

Attempts and grading only ever see an immutable ``QuizDefinition`` snapshot;
the ORM rows stay inside this module.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from errors import NotFoundError
from models import Quiz


class QuestionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    prompt: str
    options: List[str]
    correct_option: int
    points: float
    difficulty: str
    explanation: Optional[str] = None


class QuizDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    slug: str
    title: str
    difficulty: str
    questions: List[QuestionDefinition]

    time_limit_minutes: int
    time_per_question: Optional[int] = None
    allow_pause: bool = False
    auto_submit: bool = False

    max_attempts: int = 1
    allow_retake: bool = False
    retake_delay_hours: float = 0
    passing_score: int = 60

    is_active: bool = True
    is_published: bool = True
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None

    access_type: str = "public"
    allowed_users: List[str] = []
    blocked_users: List[str] = []

    negative_marking: bool = False
    negative_marking_value: float = 0

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def total_points(self) -> float:
        return sum(q.points for q in self.questions)

    def time_budget_seconds(self) -> int:
        # per-question timing overrides the flat limit
        if self.time_per_question:
            return self.time_per_question * self.question_count
        return self.time_limit_minutes * 60

    def is_available_at(self, now: datetime) -> bool:
        if not self.is_active or not self.is_published:
            return False
        if self.available_from and now < self.available_from:
            return False
        if self.available_to and now > self.available_to:
            return False
        return True

    def can_user_access(self, user_id: str) -> bool:
        if user_id in self.blocked_users:
            return False
        if self.access_type in ("private", "invitation"):
            return user_id in self.allowed_users
        return True

    def can_user_retake(self, attempt_count: int) -> bool:
        if not self.allow_retake:
            return attempt_count == 0
        return attempt_count < self.max_attempts


def to_definition(quiz: Quiz) -> QuizDefinition:
    questions = [
        QuestionDefinition(
            index=i,
            prompt=q.prompt,
            options=list(q.options or []),
            correct_option=q.correct_option,
            points=q.points,
            difficulty=q.difficulty or quiz.difficulty,
            explanation=q.explanation,
        )
        for i, q in enumerate(quiz.questions)
    ]
    return QuizDefinition(
        id=quiz.id,
        slug=quiz.slug,
        title=quiz.title,
        difficulty=quiz.difficulty,
        questions=questions,
        time_limit_minutes=quiz.time_limit_minutes,
        time_per_question=quiz.time_per_question,
        allow_pause=quiz.allow_pause,
        auto_submit=quiz.auto_submit,
        max_attempts=quiz.max_attempts,
        allow_retake=quiz.allow_retake,
        retake_delay_hours=quiz.retake_delay_hours,
        passing_score=quiz.passing_score,
        is_active=quiz.is_active,
        is_published=quiz.is_published,
        available_from=quiz.available_from,
        available_to=quiz.available_to,
        access_type=quiz.access_type,
        allowed_users=[str(u) for u in quiz.allowed_users or []],
        blocked_users=[str(u) for u in quiz.blocked_users or []],
        negative_marking=quiz.negative_marking,
        negative_marking_value=quiz.negative_marking_value,
    )


class QuizProvider:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, quiz_id: int) -> Optional[QuizDefinition]:
        with self._session_factory() as db:
            quiz = db.scalar(
                select(Quiz).where(Quiz.id == quiz_id).options(selectinload(Quiz.questions))
            )
            return to_definition(quiz) if quiz else None

    def require(self, quiz_id: int) -> QuizDefinition:
        quiz = self.get(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return quiz

    def list_available(self, limit: int = 50) -> List[QuizDefinition]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(Quiz)
                .options(selectinload(Quiz.questions))
                .where(Quiz.is_active.is_(True), Quiz.is_published.is_(True))
                .order_by(Quiz.id)
                .limit(limit)
            ).all()
            return [to_definition(q) for q in rows]
