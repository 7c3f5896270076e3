"""Persistence adapters for attempts and results.

Every attempt mutation is a read-modify-write on one row guarded by the
row's ``version`` column, so concurrent writers never lose each other's
updates: the loser gets ``StaleDataError`` and replays against fresh state.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import ConflictError, InvalidStateError, NotFoundError
from models import ACTIVE_STATUSES, Attempt, Result

logger = logging.getLogger("quiz-attempts.store")

MAX_RETRIES = 3


def active_slot_for(user_id: str, quiz_id: int) -> str:
    return f"{user_id}:{quiz_id}"


def _violates(err: IntegrityError, constraint: str) -> bool:
    # sqlite names the column, postgres the constraint; both contain it
    return constraint in str(err.orig)


class AttemptStore:
    def __init__(self, session_factory: Callable[[], Session], max_retries: int = MAX_RETRIES):
        self._session_factory = session_factory
        self._max_retries = max_retries

    # --- reads ---------------------------------------------------------------

    def get(self, attempt_id: int) -> Attempt:
        with self._session_factory() as db:
            row = db.get(Attempt, attempt_id)
            if row is None:
                raise NotFoundError("Attempt not found")
            return row

    def find_active(self, user_id: str, quiz_id: int) -> Optional[Attempt]:
        with self._session_factory() as db:
            return db.scalar(
                select(Attempt).where(
                    Attempt.user_id == user_id,
                    Attempt.quiz_id == quiz_id,
                    Attempt.status.in_(ACTIVE_STATUSES),
                )
            )

    def count(self, user_id: str, quiz_id: int) -> int:
        with self._session_factory() as db:
            return db.scalar(
                select(func.count(Attempt.id)).where(
                    Attempt.user_id == user_id, Attempt.quiz_id == quiz_id
                )
            )

    def next_attempt_number(self, user_id: str, quiz_id: int) -> int:
        """One past the highest number ever used; deleted attempts leave gaps."""
        with self._session_factory() as db:
            highest = db.scalar(
                select(func.max(Attempt.attempt_number)).where(
                    Attempt.user_id == user_id, Attempt.quiz_id == quiz_id
                )
            )
            return (highest or 0) + 1

    def list_for(self, user_id: str, quiz_id: int) -> List[Attempt]:
        with self._session_factory() as db:
            return list(
                db.scalars(
                    select(Attempt)
                    .where(Attempt.user_id == user_id, Attempt.quiz_id == quiz_id)
                    .order_by(Attempt.attempt_number.desc())
                )
            )

    def latest_finished(self, user_id: str, quiz_id: int) -> Optional[Attempt]:
        with self._session_factory() as db:
            return db.scalar(
                select(Attempt)
                .where(
                    Attempt.user_id == user_id,
                    Attempt.quiz_id == quiz_id,
                    Attempt.completed_at.is_not(None),
                )
                .order_by(Attempt.completed_at.desc())
                .limit(1)
            )

    def list_by_status(self, statuses: Iterable[str]) -> List[Attempt]:
        with self._session_factory() as db:
            return list(db.scalars(select(Attempt).where(Attempt.status.in_(list(statuses)))))

    # --- writes --------------------------------------------------------------

    def insert_or_get_active(self, attempt: Attempt) -> Tuple[Attempt, bool]:
        """Insert ``attempt`` unless the user already holds an active one.

        Returns ``(row, created)``. The unique ``active_slot`` makes this an
        atomic find-or-create: a losing concurrent insert gets the winner.
        """
        with self._session_factory() as db:
            db.add(attempt)
            try:
                db.commit()
                return attempt, True
            except IntegrityError as e:
                db.rollback()
                if not _violates(e, "active_slot"):
                    logger.warning(
                        "attempt number %s already taken for user=%s quiz=%s",
                        attempt.attempt_number,
                        attempt.user_id,
                        attempt.quiz_id,
                    )
                    raise ConflictError("Could not start attempt, please retry") from e
                logger.info(
                    "duplicate start for user=%s quiz=%s; reusing active attempt",
                    attempt.user_id,
                    attempt.quiz_id,
                )

        existing = self.find_active(attempt.user_id, attempt.quiz_id)
        if existing is None:
            # the conflicting attempt finished between our insert and lookup
            raise ConflictError("Could not start attempt, please retry")
        return existing, False

    def mutate(self, attempt_id: int, apply: Callable[[Attempt], None]) -> Attempt:
        """Serialize a read-modify-write on one attempt.

        ``apply`` validates and mutates the row; raising from it discards the
        unit of work, so a failed operation never persists partial changes.
        """
        for n in range(1, self._max_retries + 1):
            with self._session_factory() as db:
                row = db.get(Attempt, attempt_id)
                if row is None:
                    raise NotFoundError("Attempt not found")
                apply(row)
                try:
                    db.commit()
                    return row
                except StaleDataError:
                    db.rollback()
                    logger.warning("attempt %s modified concurrently (try %d)", attempt_id, n)
        logger.warning(
            "giving up on attempt %s after %d concurrent modifications", attempt_id, self._max_retries
        )
        raise ConflictError(f"Attempt {attempt_id} was modified concurrently, please retry")

    def transition_many(
        self, ids: Sequence[int], from_statuses: Iterable[str], to_status: str, now: datetime
    ) -> int:
        """Bulk status change that only touches rows still in ``from_statuses``."""
        if not ids:
            return 0
        with self._session_factory() as db:
            res = db.execute(
                update(Attempt)
                .where(Attempt.id.in_(list(ids)), Attempt.status.in_(list(from_statuses)))
                .values(
                    status=to_status,
                    last_active_at=now,
                    active_slot=None,
                    version=Attempt.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return res.rowcount or 0

    def delete_stale(self, statuses: Iterable[str], started_before: datetime) -> int:
        with self._session_factory() as db:
            res = db.execute(
                delete(Attempt)
                .where(Attempt.status.in_(list(statuses)), Attempt.started_at < started_before)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return res.rowcount or 0


class ResultStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def add(self, result: Result) -> Result:
        with self._session_factory() as db:
            db.add(result)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if result.attempt_id is not None and _violates(e, "attempt_id"):
                    raise InvalidStateError("Attempt already graded") from e
                raise
            return result

    def get(self, result_id: int) -> Result:
        with self._session_factory() as db:
            row = db.get(Result, result_id)
            if row is None:
                raise NotFoundError("Result not found")
            return row

    def for_attempt(self, attempt_id: int) -> Optional[Result]:
        with self._session_factory() as db:
            return db.scalar(select(Result).where(Result.attempt_id == attempt_id))

    def count(self, user_id: str, quiz_id: int) -> int:
        with self._session_factory() as db:
            return db.scalar(
                select(func.count(Result.id)).where(
                    Result.user_id == user_id, Result.quiz_id == quiz_id
                )
            )

    def list_for_user(self, user_id: str, quiz_id: Optional[int] = None, limit: int = 50):
        with self._session_factory() as db:
            q = select(Result).where(Result.user_id == user_id)
            if quiz_id is not None:
                q = q.where(Result.quiz_id == quiz_id)
            return list(db.scalars(q.order_by(Result.created_at.desc()).limit(limit)))

    def best_for(self, user_id: str, quiz_id: int) -> Optional[Result]:
        """Highest percentage wins; ties go to the faster, then the earlier result."""
        with self._session_factory() as db:
            return db.scalar(
                select(Result)
                .where(Result.user_id == user_id, Result.quiz_id == quiz_id)
                .order_by(
                    Result.percentage.desc(),
                    Result.total_time_spent.asc(),
                    Result.created_at.asc(),
                )
                .limit(1)
            )

    def list_for_quiz(
        self,
        quiz_id: int,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        limit: int = 50,
    ) -> List[Result]:
        with self._session_factory() as db:
            q = select(Result).where(Result.quiz_id == quiz_id)
            if min_score is not None:
                q = q.where(Result.percentage >= min_score)
            if max_score is not None:
                q = q.where(Result.percentage <= max_score)
            q = q.order_by(Result.percentage.desc(), Result.created_at.desc())
            return list(db.scalars(q.limit(limit)))

    def set_feedback(self, result_id: int, feedback: str, reviewer_id: str, now: datetime) -> Result:
        with self._session_factory() as db:
            row = db.get(Result, result_id)
            if row is None:
                raise NotFoundError("Result not found")
            row.feedback = feedback
            row.reviewed_by = reviewer_id
            row.reviewed_at = now
            db.commit()
            return row
