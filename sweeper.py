"""Periodic housekeeping for attempts.

Three passes, in order:
  1. expire_overdue  - started/in_progress attempts past their time budget -> time_expired
  2. mark_abandoned  - started/paused attempts idle for too long -> abandoned
  3. clean_abandoned - started/abandoned attempts older than the retention window are deleted

Bulk updates only touch rows that are still in a sweepable status, so an
attempt submitted while the sweep runs keeps its terminal status.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Optional

from pydantic import BaseModel

from db import utcnow
from models import AttemptStatus
from store import AttemptStore

if TYPE_CHECKING:
    from quizzes import QuizProvider
    from scoring import ScoringService

logger = logging.getLogger("quiz-attempts.sweeper")

EXPIRABLE = (AttemptStatus.STARTED, AttemptStatus.IN_PROGRESS)
ABANDONABLE = (AttemptStatus.STARTED, AttemptStatus.PAUSED)
DELETABLE = (AttemptStatus.STARTED, AttemptStatus.ABANDONED)


class SweepReport(BaseModel):
    expired: int = 0
    abandoned: int = 0
    deleted: int = 0
    graded: int = 0
    ran_at: Optional[datetime] = None


class ExpirySweeper:
    def __init__(
        self,
        store: AttemptStore,
        clock: Callable[[], datetime] = utcnow,
        retention: timedelta = timedelta(hours=24),
        abandon_after: timedelta = timedelta(hours=12),
        quizzes: Optional["QuizProvider"] = None,
        scoring: Optional["ScoringService"] = None,
    ):
        self.store = store
        self.clock = clock
        self.retention = retention
        self.abandon_after = abandon_after
        self.quizzes = quizzes
        self.scoring = scoring
        self.last_report: Optional[SweepReport] = None

    def find_overdue(self, now: datetime) -> List[int]:
        overdue: List[int] = []
        for a in self.store.list_by_status(EXPIRABLE):
            try:
                elapsed_ms = (now - a.started_at) / timedelta(milliseconds=1)
                elapsed_ms -= (a.paused_seconds or 0) * 1000
                if elapsed_ms > a.time_budget * 1000:
                    overdue.append(a.id)
            except Exception:
                logger.exception("skipping malformed attempt %s during expiry sweep", a.id)
        return overdue

    def expire_overdue(self) -> List[int]:
        """Returns the ids that were actually moved to time_expired."""
        now = self.clock()
        overdue = self.find_overdue(now)
        if not overdue:
            return []
        n = self.store.transition_many(overdue, EXPIRABLE, AttemptStatus.TIME_EXPIRED, now)
        if n != len(overdue):
            # some finished on their own between the scan and the update
            expired = [
                i for i in overdue if self._status_of(i) == AttemptStatus.TIME_EXPIRED
            ]
        else:
            expired = overdue
        logger.info("expired %d overdue attempt(s)", len(expired))
        return expired

    def _status_of(self, attempt_id: int) -> Optional[str]:
        try:
            return self.store.get(attempt_id).status
        except Exception:
            logger.exception("could not reload attempt %s", attempt_id)
            return None

    def mark_abandoned(self) -> int:
        now = self.clock()
        cutoff = now - self.abandon_after
        idle: List[int] = []
        for a in self.store.list_by_status(ABANDONABLE):
            try:
                if a.last_active_at < cutoff:
                    idle.append(a.id)
            except Exception:
                logger.exception("skipping malformed attempt %s during abandon sweep", a.id)
        n = self.store.transition_many(idle, ABANDONABLE, AttemptStatus.ABANDONED, now)
        if n:
            logger.info("marked %d idle attempt(s) abandoned", n)
        return n

    def clean_abandoned(self) -> int:
        # permanent delete, these are garbage rather than history
        n = self.store.delete_stale(DELETABLE, self.clock() - self.retention)
        if n:
            logger.info("deleted %d stale attempt(s)", n)
        return n

    def auto_submit(self, attempt_ids: List[int]) -> int:
        """Grade expired attempts whose quiz asks for submission on timeout."""
        if self.scoring is None or self.quizzes is None:
            return 0
        graded = 0
        for attempt_id in attempt_ids:
            try:
                attempt = self.store.get(attempt_id)
                quiz = self.quizzes.get(attempt.quiz_id)
                if quiz is None or not quiz.auto_submit:
                    continue
                self.scoring.grade_attempt(attempt_id)
                graded += 1
            except Exception:
                logger.exception("auto-submit failed for attempt %s", attempt_id)
        return graded

    def run_once(self) -> SweepReport:
        expired = self.expire_overdue()
        report = SweepReport(
            expired=len(expired),
            graded=self.auto_submit(expired),
            abandoned=self.mark_abandoned(),
            deleted=self.clean_abandoned(),
            ran_at=self.clock(),
        )
        self.last_report = report
        return report


async def run_periodically(sweeper: ExpirySweeper, interval_seconds: float) -> None:
    """Run the sweeper forever; one failed run never stops the loop."""
    logger.info("expiry sweeper running every %ss", interval_seconds)
    while True:
        try:
            report = await asyncio.to_thread(sweeper.run_once)
            logger.debug("sweep finished: %s", report.model_dump())
        except Exception:
            logger.exception("expiry sweep failed")
        await asyncio.sleep(interval_seconds)
