"""Running quiz and user aggregates.

These are read-modify-write updates without cross-record transactions, so
concurrent submissions can skew the running means slightly. Callers that need
exact numbers recompute from ``quiz_results``.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Quiz, Result, UserStats

logger = logging.getLogger("quiz-attempts.stats")


class StatisticsService:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def record_completion(self, quiz_id: int, user_id: str, percentage: int, time_spent: int) -> None:
        """Best-effort: failures are logged and never reach the caller."""
        try:
            self.update_quiz_stats(quiz_id, percentage, time_spent)
        except Exception:
            logger.exception("failed to update stats for quiz %s", quiz_id)
        try:
            self.update_user_stats(user_id, percentage, time_spent)
        except Exception:
            logger.exception("failed to update stats for user %s", user_id)

    def update_quiz_stats(self, quiz_id: int, score: float, time_spent: float) -> None:
        with self._session_factory() as db:
            quiz = db.get(Quiz, quiz_id)
            if quiz is None:
                return

            quiz.total_attempts += 1
            quiz.completed_attempts += 1
            n = quiz.completed_attempts

            # incremental means
            quiz.average_score = (quiz.average_score * (n - 1) + score) / n
            quiz.average_time_spent = (quiz.average_time_spent * (n - 1) + time_spent) / n

            passed = db.scalar(
                select(func.count(Result.id)).where(
                    Result.quiz_id == quiz_id, Result.percentage >= quiz.passing_score
                )
            )
            quiz.pass_rate = passed / n * 100
            db.commit()

    def update_user_stats(self, user_id: str, score: float, time_spent: int) -> None:
        with self._session_factory() as db:
            stats = db.get(UserStats, user_id)
            if stats is None:
                stats = UserStats(
                    user_id=user_id, total_quizzes_taken=0, average_score=0, total_time_spent=0
                )
                db.add(stats)

            stats.total_quizzes_taken += 1
            n = stats.total_quizzes_taken
            stats.average_score = (stats.average_score * (n - 1) + score) / n
            stats.total_time_spent += int(time_spent)
            db.commit()

    def get_user_stats(self, user_id: str) -> UserStats | None:
        with self._session_factory() as db:
            return db.get(UserStats, user_id)
