"""Attempt lifecycle: the state machine behind a single timed pass through a quiz.

    started -> in_progress <-> paused
    in_progress | started | paused -> completed        (submit)
    started | in_progress -> time_expired               (sweeper)
    started | paused -> abandoned -> deleted            (sweeper)

Every mutation goes through ``AttemptStore.mutate`` so preconditions are
checked against the freshest row and nothing is persisted when they fail.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from db import utcnow
from errors import ForbiddenError, InputValidationError, InvalidStateError
from models import (
    ACTIVE_STATUSES,
    ANSWERABLE_STATUSES,
    SUBMITTED_STATUSES,
    ActivityType,
    Attempt,
    AttemptStatus,
)
from quizzes import QuizDefinition, QuizProvider
from schemas.attempts import (
    ActivityRecord,
    AnswerRecord,
    BrowserInfo,
    answers_from_rows,
    answers_to_rows,
)
from store import AttemptStore, active_slot_for

logger = logging.getLogger("quiz-attempts.attempts")

Clock = Callable[[], datetime]


def _check_owner(attempt: Attempt, user_id: Optional[str]) -> None:
    if user_id is not None and attempt.user_id != user_id:
        raise ForbiddenError("You don't have permission to modify this attempt")


def _check_index(attempt: Attempt, question_index: int) -> None:
    if question_index < 0 or question_index >= attempt.total_questions:
        raise InputValidationError("Invalid question index")


def _add(values: List[int], idx: int) -> List[int]:
    return sorted(set(values or []) | {idx})


def _remove(values: List[int], idx: int) -> List[int]:
    return [v for v in values or [] if v != idx]


def _close_pause(attempt: Attempt, now: datetime) -> None:
    if attempt.paused_at is not None:
        attempt.paused_seconds = (attempt.paused_seconds or 0) + max(
            0.0, (now - attempt.paused_at).total_seconds()
        )
        attempt.paused_at = None


def active_seconds(attempt: Attempt, now: datetime) -> float:
    """Wall clock since start minus time spent paused (including an open pause)."""
    paused = attempt.paused_seconds or 0
    if attempt.paused_at is not None:
        paused += max(0.0, (now - attempt.paused_at).total_seconds())
    return max(0.0, (now - attempt.started_at).total_seconds() - paused)


class AttemptService:
    def __init__(self, store: AttemptStore, quizzes: QuizProvider, clock: Clock = utcnow):
        self.store = store
        self.quizzes = quizzes
        self.clock = clock

    # --- start ---------------------------------------------------------------

    def start_attempt(
        self, user_id: str, quiz_id: int, browser_info: BrowserInfo | dict, ip_address: str
    ) -> Attempt:
        quiz = self.quizzes.require(quiz_id)
        now = self.clock()

        if not quiz.is_available_at(now):
            raise InvalidStateError("Quiz is not available")
        if not quiz.can_user_access(user_id):
            raise ForbiddenError("You don't have access to this quiz")

        # a page refresh must land on the same attempt, whatever the retake policy says
        existing = self.store.find_active(user_id, quiz_id)
        if existing is not None:
            return self._resume_on_start(existing.id)

        count = self.store.count(user_id, quiz_id)
        if not quiz.can_user_retake(count):
            raise InvalidStateError("Maximum attempts reached for this quiz")
        self._check_retake_delay(quiz, user_id, now)

        if isinstance(browser_info, BrowserInfo):
            browser_info = browser_info.model_dump()
        budget = quiz.time_budget_seconds()
        attempt = Attempt(
            user_id=user_id,
            quiz_id=quiz_id,
            attempt_number=self.store.next_attempt_number(user_id, quiz_id),
            status=AttemptStatus.STARTED,
            active_slot=active_slot_for(user_id, quiz_id),
            started_at=now,
            last_active_at=now,
            time_budget=budget,
            time_spent=0,
            remaining_time=budget,
            paused_seconds=0,
            current_question_index=0,
            total_questions=quiz.question_count,
            answered_questions=[],
            flagged_questions=[],
            skipped_questions=[],
            answers=[],
            tab_switch_count=0,
            suspicious_activity=[],
            browser_info=dict(browser_info),
            ip_address=ip_address or "unknown",
        )
        row, created = self.store.insert_or_get_active(attempt)
        if not created:
            return self._resume_on_start(row.id)
        logger.info(
            "attempt %s started user=%s quiz=%s number=%s", row.id, user_id, quiz_id, row.attempt_number
        )
        return row

    def _check_retake_delay(self, quiz: QuizDefinition, user_id: str, now: datetime) -> None:
        if not quiz.retake_delay_hours:
            return
        last = self.store.latest_finished(user_id, quiz.id)
        if last is None:
            return
        if now < last.completed_at + timedelta(hours=quiz.retake_delay_hours):
            raise InvalidStateError("Retake is not available yet")

    def _resume_on_start(self, attempt_id: int) -> Attempt:
        def apply(a: Attempt) -> None:
            now = self.clock()
            _close_pause(a, now)
            a.status = AttemptStatus.IN_PROGRESS
            a.last_active_at = now

        row = self.store.mutate(attempt_id, apply)
        logger.info("attempt %s resumed on start", attempt_id)
        return row

    # --- answering and navigation -------------------------------------------

    def save_answer(
        self,
        attempt_id: int,
        question_index: int,
        option_index: int,
        time_spent: float,
        user_id: Optional[str] = None,
    ) -> Attempt:
        if option_index < 0:
            raise InputValidationError("Answer index cannot be negative")
        if time_spent < 0:
            raise InputValidationError("Time spent cannot be negative")

        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status not in ANSWERABLE_STATUSES:
                raise InvalidStateError("Cannot save answer for inactive attempt")
            _check_index(a, question_index)
            now = self.clock()
            if a.status == AttemptStatus.STARTED:
                a.status = AttemptStatus.IN_PROGRESS

            answers = answers_from_rows(a.answers)
            answers[question_index] = AnswerRecord(
                selected_option=option_index,
                time_spent=time_spent,
                marked_for_review=question_index in (a.flagged_questions or []),
                last_modified=now,
            )
            a.answers = answers_to_rows(answers)
            a.answered_questions = _add(a.answered_questions, question_index)
            a.skipped_questions = _remove(a.skipped_questions, question_index)
            a.last_active_at = now

        return self.store.mutate(attempt_id, apply)

    def skip_question(self, attempt_id: int, question_index: int, user_id: Optional[str] = None) -> Attempt:
        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status not in ANSWERABLE_STATUSES:
                raise InvalidStateError("Cannot skip a question in an inactive attempt")
            _check_index(a, question_index)
            if a.status == AttemptStatus.STARTED:
                a.status = AttemptStatus.IN_PROGRESS
            if question_index not in (a.answered_questions or []):
                a.skipped_questions = _add(a.skipped_questions, question_index)
            a.last_active_at = self.clock()

        return self.store.mutate(attempt_id, apply)

    def navigate(self, attempt_id: int, question_index: int, user_id: Optional[str] = None) -> Attempt:
        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status != AttemptStatus.IN_PROGRESS:
                raise InvalidStateError("Cannot navigate in inactive attempt")
            _check_index(a, question_index)
            a.current_question_index = question_index
            a.last_active_at = self.clock()

        return self.store.mutate(attempt_id, apply)

    # --- pause / resume ------------------------------------------------------

    def pause(self, attempt_id: int, user_id: Optional[str] = None) -> Attempt:
        current = self.store.get(attempt_id)
        _check_owner(current, user_id)
        quiz = self.quizzes.get(current.quiz_id)
        if quiz is None or not quiz.allow_pause:
            raise InvalidStateError("Pausing is not allowed for this quiz")

        def apply(a: Attempt) -> None:
            if a.status != AttemptStatus.IN_PROGRESS:
                raise InvalidStateError(f"Cannot pause an attempt that is {a.status}")
            now = self.clock()
            a.status = AttemptStatus.PAUSED
            a.paused_at = now
            a.last_active_at = now

        row = self.store.mutate(attempt_id, apply)
        logger.info("attempt %s paused", attempt_id)
        return row

    def resume(self, attempt_id: int, user_id: Optional[str] = None) -> Attempt:
        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status != AttemptStatus.PAUSED:
                raise InvalidStateError("Attempt is not paused")
            now = self.clock()
            _close_pause(a, now)
            a.status = AttemptStatus.IN_PROGRESS
            a.last_active_at = now

        row = self.store.mutate(attempt_id, apply)
        logger.info("attempt %s resumed", attempt_id)
        return row

    # --- review flags and monitoring ----------------------------------------

    def mark_for_review(self, attempt_id: int, question_index: int, user_id: Optional[str] = None) -> Attempt:
        return self._set_review_flag(attempt_id, question_index, True, user_id)

    def unmark_for_review(
        self, attempt_id: int, question_index: int, user_id: Optional[str] = None
    ) -> Attempt:
        return self._set_review_flag(attempt_id, question_index, False, user_id)

    def _set_review_flag(
        self, attempt_id: int, question_index: int, flagged: bool, user_id: Optional[str]
    ) -> Attempt:
        if question_index < 0:
            raise InputValidationError("Invalid question index")

        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if flagged:
                a.flagged_questions = _add(a.flagged_questions, question_index)
            else:
                a.flagged_questions = _remove(a.flagged_questions, question_index)
            answers = answers_from_rows(a.answers)
            if question_index in answers:
                answers[question_index] = answers[question_index].model_copy(
                    update={"marked_for_review": flagged}
                )
                a.answers = answers_to_rows(answers)

        return self.store.mutate(attempt_id, apply)

    def record_suspicious_activity(
        self,
        attempt_id: int,
        activity_type: ActivityType | str,
        details: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Attempt:
        activity_type = ActivityType(activity_type)

        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            entry = ActivityRecord(type=activity_type, timestamp=self.clock(), details=details)
            a.suspicious_activity = [*(a.suspicious_activity or []), entry.model_dump(mode="json")]
            if activity_type == ActivityType.TAB_SWITCH:
                a.tab_switch_count = (a.tab_switch_count or 0) + 1

        row = self.store.mutate(attempt_id, apply)
        logger.info("attempt %s suspicious activity: %s", attempt_id, activity_type.value)
        return row

    # --- submit and heartbeat -----------------------------------------------

    def submit_attempt(self, attempt_id: int, user_id: Optional[str] = None) -> Attempt:
        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status in SUBMITTED_STATUSES:
                raise InvalidStateError("Attempt already submitted")
            now = self.clock()
            _close_pause(a, now)
            spent = int(active_seconds(a, now))
            a.status = AttemptStatus.COMPLETED
            a.completed_at = now
            a.last_active_at = now
            a.time_spent = spent
            a.remaining_time = max(0, (a.time_budget or 0) - spent)
            a.active_slot = None

        row = self.store.mutate(attempt_id, apply)
        logger.info("attempt %s submitted after %ss", attempt_id, row.time_spent)
        return row

    def update_progress(
        self, attempt_id: int, time_spent: int, remaining_time: int, user_id: Optional[str] = None
    ) -> Attempt:
        if time_spent < 0 or remaining_time < 0:
            raise InputValidationError("Time values cannot be negative")

        def apply(a: Attempt) -> None:
            _check_owner(a, user_id)
            if a.status not in ACTIVE_STATUSES:
                raise InvalidStateError("Cannot update progress of a finished attempt")
            a.time_spent = time_spent
            a.remaining_time = remaining_time
            a.last_active_at = self.clock()

        return self.store.mutate(attempt_id, apply)

    # --- reads ---------------------------------------------------------------

    def get_attempt(self, attempt_id: int) -> Attempt:
        return self.store.get(attempt_id)

    def get_active_attempt(self, user_id: str, quiz_id: int) -> Optional[Attempt]:
        return self.store.find_active(user_id, quiz_id)

    def list_attempts(self, user_id: str, quiz_id: int) -> List[Attempt]:
        return self.store.list_for(user_id, quiz_id)
