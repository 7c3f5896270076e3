from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from models import ActivityType

# ---------- Stored shapes ----------


class AnswerRecord(BaseModel):
    selected_option: Optional[int] = None  # None means unanswered
    time_spent: float = 0
    marked_for_review: bool = False
    last_modified: datetime


class ActivityRecord(BaseModel):
    type: ActivityType
    timestamp: datetime
    details: Optional[str] = None


class BrowserInfo(BaseModel):
    user_agent: str
    platform: str
    language: str
    screen_resolution: str
    timezone: str


def answers_from_rows(rows: List[dict] | None) -> Dict[int, AnswerRecord]:
    """Stored list -> ordered {question_index: AnswerRecord}."""
    out: Dict[int, AnswerRecord] = {}
    for row in sorted(rows or [], key=lambda r: r["question_index"]):
        data = {k: v for k, v in row.items() if k != "question_index"}
        out[int(row["question_index"])] = AnswerRecord.model_validate(data)
    return out


def answers_to_rows(answers: Dict[int, AnswerRecord]) -> List[dict]:
    return [
        {"question_index": idx, **answers[idx].model_dump(mode="json")} for idx in sorted(answers)
    ]


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


# ---------- Requests ----------


class StartAttemptRequest(BaseModel):
    quiz_id: int
    browser_info: BrowserInfo


class SaveAnswerRequest(BaseModel):
    question_index: int = Field(ge=0)
    answer: int = Field(ge=0)
    time_spent: float = Field(ge=0)


class QuestionIndexRequest(BaseModel):
    question_index: int = Field(ge=0)


class ActivityRequest(BaseModel):
    activity_type: ActivityType
    details: Optional[str] = Field(default=None, max_length=500)


class ProgressRequest(BaseModel):
    time_spent: int = Field(ge=0)
    remaining_time: int = Field(ge=0)


# ---------- Responses ----------


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    quiz_id: int
    attempt_number: int
    status: str

    started_at: datetime
    last_active_at: datetime
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    time_budget: int
    time_spent: int
    remaining_time: int

    current_question_index: int
    total_questions: int
    answered_questions: List[int]
    flagged_questions: List[int]
    skipped_questions: List[int]
    answers: Dict[int, AnswerRecord] = {}

    tab_switch_count: int
    suspicious_activity: List[ActivityRecord] = []
    browser_info: Dict[str, str] = {}

    @field_validator("answers", mode="before")
    @classmethod
    def _answers_by_index(cls, v):
        # stored as a list of rows keyed by question_index
        if isinstance(v, list):
            return answers_from_rows(v)
        return v

    @computed_field  # type: ignore[misc]
    @property
    def progress(self) -> int:
        if not self.total_questions:
            return 0
        return round_half_up(len(self.answered_questions) / self.total_questions * 100)
