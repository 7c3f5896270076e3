# public quiz view: never exposes correct options
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from quizzes import QuizDefinition


class QuestionOut(BaseModel):
    index: int
    prompt: str
    options: List[str]
    points: float
    difficulty: str


class QuizOut(BaseModel):
    id: int
    slug: str
    title: str
    difficulty: str
    question_count: int
    total_points: float
    time_budget_seconds: int
    allow_pause: bool
    max_attempts: int
    allow_retake: bool
    passing_score: int
    negative_marking: bool
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None
    questions: List[QuestionOut]


def quiz_out(q: QuizDefinition) -> QuizOut:
    return QuizOut(
        id=q.id,
        slug=q.slug,
        title=q.title,
        difficulty=q.difficulty,
        question_count=q.question_count,
        total_points=q.total_points,
        time_budget_seconds=q.time_budget_seconds(),
        allow_pause=q.allow_pause,
        max_attempts=q.max_attempts,
        allow_retake=q.allow_retake,
        passing_score=q.passing_score,
        negative_marking=q.negative_marking,
        available_from=q.available_from,
        available_to=q.available_to,
        questions=[
            QuestionOut(
                index=x.index,
                prompt=x.prompt,
                options=x.options,
                points=x.points,
                difficulty=x.difficulty,
            )
            for x in q.questions
        ],
    )
