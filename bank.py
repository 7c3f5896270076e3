# quiz bank: loads quiz definitions from JSON files into the database

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

import config
from db import SessionLocal
from models import Quiz, QuizQuestion

logger = logging.getLogger("quiz-attempts.bank")

Difficulty = Literal["easy", "medium", "hard"]


class QuestionFileModel(BaseModel):
    prompt: str
    options: List[str] = Field(min_length=2)
    correct_option: int = Field(ge=0)
    points: float = Field(default=1, ge=0)
    difficulty: Optional[Difficulty] = None
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _correct_in_range(self):
        if self.correct_option >= len(self.options):
            raise ValueError("correct_option out of range")
        return self


class QuizFileModel(BaseModel):
    slug: str
    title: str
    difficulty: Difficulty = "medium"
    questions: List[QuestionFileModel] = Field(min_length=1)

    time_limit_minutes: int = Field(default=30, ge=1)
    time_per_question: Optional[int] = Field(default=None, ge=10, le=3600)
    allow_pause: bool = False
    auto_submit: bool = False

    max_attempts: int = Field(default=1, ge=1)
    allow_retake: bool = False
    retake_delay_hours: float = Field(default=0, ge=0)
    passing_score: int = Field(default=60, ge=0, le=100)

    is_active: bool = True
    is_published: bool = True
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None

    access_type: Literal["public", "private", "password", "invitation"] = "public"
    allowed_users: List[str] = []
    blocked_users: List[str] = []

    negative_marking: bool = False
    negative_marking_value: float = Field(default=0, ge=0)


def _iter_jsonl(p: Path) -> Iterable[Dict[str, Any]]:
    with p.open("r", encoding="utf-8") as f:
        for idx, line in enumerate(f, 1):
            s = line.strip()
            if not s or s.startswith("#") or s.startswith("//"):
                continue
            try:
                yield json.loads(s)
            except json.JSONDecodeError:
                logger.warning("skipping malformed line %s:%d", p.name, idx)
                continue


def _iter_json(p: Path) -> Iterable[Dict[str, Any]]:
    with p.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("skipping unreadable quiz file %s", p.name)
            data = []
    # a file holds either one quiz object or a list of them
    if isinstance(data, dict):
        yield data
    elif isinstance(data, list):
        for obj in data:
            yield obj


def load_quiz_files(data_dir: Path) -> List[QuizFileModel]:
    quizzes: List[QuizFileModel] = []
    if not data_dir.exists():
        return quizzes
    for p in sorted(data_dir.rglob("*")):
        if not p.is_file():
            continue
        suf = p.suffix.lower()
        if suf == ".jsonl":
            source = _iter_jsonl(p)
        elif suf == ".json":
            source = _iter_json(p)
        else:
            continue

        for raw in source:
            try:
                quizzes.append(QuizFileModel(**raw))
            except (ValidationError, TypeError) as e:
                # Skip invalid records
                logger.warning("skipping invalid quiz in %s: %s", p.name, e)
                continue
    return quizzes


def upsert_quiz(db: Session, data: QuizFileModel) -> Quiz:
    """Create or update a quiz by slug. Running statistics are kept."""
    quiz = db.scalar(select(Quiz).where(Quiz.slug == data.slug))
    if quiz is None:
        quiz = Quiz(slug=data.slug)
        db.add(quiz)

    fields = data.model_dump(exclude={"slug", "questions"})
    for key, value in fields.items():
        setattr(quiz, key, value)

    # flush the removals first so positions can be reused
    quiz.questions.clear()
    db.flush()
    quiz.questions = [
        QuizQuestion(position=i, **q.model_dump()) for i, q in enumerate(data.questions)
    ]
    db.flush()
    return quiz


def reload_bank(
    session_factory: Callable[[], Session] = SessionLocal, data_dir: Optional[Path] = None
) -> int:
    quizzes = load_quiz_files(data_dir or config.QUIZ_DATA_DIR)
    with session_factory() as db:
        for q in quizzes:
            upsert_quiz(db, q)
        db.commit()
    logger.info("loaded %d quiz definition(s)", len(quizzes))
    return len(quizzes)
