"""Grading of finished attempts.

``grade`` is the pure scoring rule; ``ScoringService`` adds the policy checks,
persists the Result and kicks the best-effort statistics update.

Negative marking is floored per question: a wrong answer can cost its own
points but never drags the total below what the other questions earned.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from db import utcnow
from errors import ForbiddenError, InputValidationError, InvalidStateError
from models import SUBMITTED_STATUSES, AttemptStatus, Result
from quizzes import QuestionDefinition, QuizDefinition, QuizProvider
from schemas.attempts import answers_from_rows, round_half_up
from schemas.results import NOT_ANSWERED, SKIPPED, Analytics, DifficultyBucket, QuestionReview, ResultAnswer
from stats import StatisticsService
from store import AttemptStore, ResultStore

logger = logging.getLogger("quiz-attempts.scoring")

Clock = Callable[[], datetime]


class Grade(BaseModel):
    answers: List[ResultAnswer]
    total_score: float
    max_score: float
    percentage: int
    passed: bool
    total_time_spent: int
    analytics: Analytics


def grade(
    quiz: QuizDefinition,
    answers: Mapping[int, int],
    start_time: datetime,
    end_time: datetime,
    question_times: Optional[Mapping[int, float]] = None,
) -> Grade:
    question_times = question_times or {}
    out: List[ResultAnswer] = []
    total = 0.0
    breakdown: Dict[str, DifficultyBucket] = {}

    for q in quiz.questions:
        selected = answers.get(q.index)
        is_correct = selected is not None and selected == q.correct_option
        if is_correct:
            points = q.points
        elif quiz.negative_marking and selected is not None:
            points = -quiz.negative_marking_value
        else:
            points = 0.0
        points = max(0.0, points)
        total += points

        bucket = breakdown.setdefault(q.difficulty, DifficultyBucket())
        bucket.total += 1
        if is_correct:
            bucket.correct += 1

        out.append(
            ResultAnswer(
                question_id=str(q.index),
                selected_answer=SKIPPED if selected is None else selected,
                is_correct=is_correct,
                time_spent=question_times.get(q.index, 0),
                points_earned=points,
            )
        )

    total = max(0.0, total)
    max_score = quiz.total_points
    percentage = round_half_up(total / max_score * 100) if max_score > 0 else 0
    total_time = max(0, math.floor((end_time - start_time).total_seconds()))

    times = [a.time_spent for a in out]
    analytics = Analytics(
        average_time_per_question=total_time / len(out) if out else 0,
        fastest_question=min(times) if times else 0,
        slowest_question=max(times) if times else 0,
        correct_answers_count=sum(1 for a in out if a.is_correct),
        incorrect_answers_count=sum(
            1 for a in out if not a.is_correct and a.selected_answer != SKIPPED
        ),
        skipped_answers_count=sum(1 for a in out if a.selected_answer == SKIPPED),
        difficulty_breakdown=breakdown,
    )
    return Grade(
        answers=out,
        total_score=total,
        max_score=max_score,
        percentage=percentage,
        passed=percentage >= quiz.passing_score,
        total_time_spent=total_time,
        analytics=analytics,
    )


def _option_text(q: Optional[QuestionDefinition], selected: int) -> str:
    if selected == SKIPPED:
        return NOT_ANSWERED
    if q is None or not 0 <= selected < len(q.options):
        return str(selected)
    return q.options[selected]


class ScoringService:
    def __init__(
        self,
        results: ResultStore,
        attempts: AttemptStore,
        quizzes: QuizProvider,
        stats: StatisticsService,
        clock: Clock = utcnow,
    ):
        self.results = results
        self.attempts = attempts
        self.quizzes = quizzes
        self.stats = stats
        self.clock = clock

    def submit_quiz(
        self,
        user_id: str,
        quiz_id: int,
        answers: Mapping[int, int],
        start_time: datetime,
        end_time: datetime,
        attempt_number: int,
        *,
        question_times: Optional[Mapping[int, float]] = None,
        status: str = AttemptStatus.COMPLETED,
        attempt_id: Optional[int] = None,
    ) -> Result:
        """Grade and store one submission.

        A submission backed by an attempt was admitted when the attempt started,
        so the availability window and retake limit are not checked again.
        """
        quiz = self.quizzes.require(quiz_id)
        if attempt_id is None and not quiz.is_available_at(self.clock()):
            raise InvalidStateError("Quiz is not available")
        if not quiz.can_user_access(user_id):
            raise ForbiddenError("You don't have access to this quiz")
        if attempt_id is None and not quiz.can_user_retake(self.results.count(user_id, quiz_id)):
            raise InvalidStateError("Maximum attempts reached for this quiz")

        g = grade(quiz, answers, start_time, end_time, question_times)
        result = self.results.add(
            Result(
                user_id=user_id,
                quiz_id=quiz_id,
                attempt_id=attempt_id,
                attempt_number=attempt_number,
                answers=[a.model_dump() for a in g.answers],
                total_score=g.total_score,
                max_score=g.max_score,
                percentage=g.percentage,
                passed=g.passed,
                start_time=start_time,
                end_time=end_time,
                total_time_spent=g.total_time_spent,
                status=str(status),
                analytics=g.analytics.model_dump(),
                created_at=self.clock(),
            )
        )
        logger.info(
            "result %s user=%s quiz=%s score=%s/%s (%s%%)",
            result.id,
            user_id,
            quiz_id,
            g.total_score,
            g.max_score,
            g.percentage,
        )

        self.stats.record_completion(quiz_id, user_id, g.percentage, g.total_time_spent)
        return result

    def grade_attempt(self, attempt_id: int, user_id: Optional[str] = None) -> Result:
        """Grade a finished attempt from its own answers and timings."""
        attempt = self.attempts.get(attempt_id)
        if user_id is not None and attempt.user_id != user_id:
            raise ForbiddenError("You don't have permission to grade this attempt")
        if attempt.is_active:
            raise InvalidStateError("Attempt must be submitted before grading")
        if self.results.for_attempt(attempt_id) is not None:
            raise InvalidStateError("Attempt already graded")

        records = answers_from_rows(attempt.answers)
        answers = {i: r.selected_option for i, r in records.items() if r.selected_option is not None}
        times = {i: r.time_spent for i, r in records.items()}
        end_time = attempt.completed_at or attempt.last_active_at
        status = (
            AttemptStatus.COMPLETED if attempt.status in SUBMITTED_STATUSES else attempt.status
        )
        return self.submit_quiz(
            attempt.user_id,
            attempt.quiz_id,
            answers,
            attempt.started_at,
            end_time,
            attempt.attempt_number,
            question_times=times,
            status=status,
            attempt_id=attempt.id,
        )

    def get_result(self, result_id: int, user_id: str, is_admin: bool = False) -> Result:
        result = self.results.get(result_id)
        if result.user_id != user_id and not is_admin:
            raise ForbiddenError("You don't have permission to view this result")
        return result

    def list_results(self, user_id: str, quiz_id: Optional[int] = None, limit: int = 50) -> List[Result]:
        return self.results.list_for_user(user_id, quiz_id, limit)

    def get_detailed_result(
        self, result_id: int, user_id: str, is_admin: bool = False
    ) -> Tuple[Result, List[QuestionReview]]:
        """A result with each answer set against the quiz's current wording.

        Questions removed from the quiz since grading keep their recorded
        outcome but lose their text.
        """
        result = self.get_result(result_id, user_id, is_admin=is_admin)
        quiz = self.quizzes.get(result.quiz_id)
        by_index = {q.index: q for q in quiz.questions} if quiz else {}

        reviews = []
        for raw in result.answers:
            answer = ResultAnswer.model_validate(raw)
            index = int(answer.question_id)
            q = by_index.get(index)
            reviews.append(
                QuestionReview(
                    question_index=index,
                    question=q.prompt if q else None,
                    user_answer=_option_text(q, answer.selected_answer),
                    correct_answer=q.options[q.correct_option] if q else None,
                    explanation=q.explanation if q else None,
                    is_correct=answer.is_correct,
                    points_earned=answer.points_earned,
                )
            )
        return result, reviews

    def get_best_result(self, user_id: str, quiz_id: int) -> Optional[Result]:
        return self.results.best_for(user_id, quiz_id)

    def list_quiz_results(
        self,
        quiz_id: int,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        limit: int = 50,
    ) -> List[Result]:
        if min_score is not None and max_score is not None and min_score > max_score:
            raise InputValidationError("min_score cannot exceed max_score")
        self.quizzes.require(quiz_id)
        return self.results.list_for_quiz(quiz_id, min_score, max_score, limit)

    def add_feedback(self, result_id: int, feedback: str, reviewer_id: str) -> Result:
        if not feedback.strip():
            raise InputValidationError("Feedback cannot be empty")
        return self.results.set_feedback(result_id, feedback, reviewer_id, self.clock())
