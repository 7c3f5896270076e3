from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

SKIPPED = -1  # selected_answer sentinel for unanswered questions


class ResultAnswer(BaseModel):
    question_id: str
    selected_answer: int
    is_correct: bool
    time_spent: float = 0
    points_earned: float = 0


class DifficultyBucket(BaseModel):
    correct: int = 0
    total: int = 0


class Analytics(BaseModel):
    average_time_per_question: float = 0
    fastest_question: float = 0
    slowest_question: float = 0
    correct_answers_count: int = 0
    incorrect_answers_count: int = 0
    skipped_answers_count: int = 0
    difficulty_breakdown: Dict[str, DifficultyBucket] = {}


def grade_for(percentage: int) -> str:
    if percentage >= 90:
        return "A"
    if percentage >= 80:
        return "B"
    if percentage >= 70:
        return "C"
    if percentage >= 60:
        return "D"
    return "F"


def performance_level_for(percentage: int) -> str:
    if percentage >= 90:
        return "excellent"
    if percentage >= 75:
        return "good"
    if percentage >= 60:
        return "average"
    return "poor"


# ---------- Requests ----------


class SubmitQuizRequest(BaseModel):
    quiz_id: int
    # {question_index: option_index}; JSON object keys arrive as strings
    answers: Dict[int, int] = {}
    question_times: Dict[int, float] = {}
    start_time: datetime
    end_time: datetime
    attempt_number: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_values(self):
        if any(v < 0 for v in self.answers.values()):
            raise ValueError("answer indices must be >= 0")
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class FeedbackRequest(BaseModel):
    feedback: str = Field(min_length=1, max_length=2000)


# ---------- Responses ----------


class ResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    quiz_id: int
    attempt_id: Optional[int] = None
    attempt_number: int
    answers: List[ResultAnswer]
    total_score: float
    max_score: float
    percentage: int
    passed: bool
    start_time: datetime
    end_time: datetime
    total_time_spent: int
    status: str
    analytics: Analytics
    feedback: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @computed_field  # type: ignore[misc]
    @property
    def grade(self) -> str:
        return grade_for(self.percentage)

    @computed_field  # type: ignore[misc]
    @property
    def performance_level(self) -> str:
        return performance_level_for(self.percentage)


NOT_ANSWERED = "Not answered"


class QuestionReview(BaseModel):
    question_index: int
    question: Optional[str] = None
    user_answer: str
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    is_correct: bool
    points_earned: float = 0


class DetailedResultOut(ResultOut):
    questions: List[QuestionReview]
