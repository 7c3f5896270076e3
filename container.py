"""Explicit wiring of the attempt, scoring and sweeper services.

The API builds one ``Services`` at import time and stores it on
``app.state``; tests build their own with a fake clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

import config
from attempts import AttemptService
from db import utcnow
from quizzes import QuizProvider
from scoring import ScoringService
from stats import StatisticsService
from store import AttemptStore, ResultStore
from sweeper import ExpirySweeper


@dataclass
class Services:
    quizzes: QuizProvider
    attempts: AttemptService
    scoring: ScoringService
    stats: StatisticsService
    sweeper: ExpirySweeper


def build_services(
    session_factory: Callable[[], Session], clock: Callable[[], datetime] = utcnow
) -> Services:
    quizzes = QuizProvider(session_factory)
    attempt_store = AttemptStore(session_factory)
    stats = StatisticsService(session_factory)
    scoring = ScoringService(ResultStore(session_factory), attempt_store, quizzes, stats, clock)
    sweeper = ExpirySweeper(
        attempt_store,
        clock=clock,
        retention=timedelta(hours=config.ATTEMPT_RETENTION_HOURS),
        abandon_after=timedelta(hours=config.ABANDON_AFTER_HOURS),
        quizzes=quizzes,
        scoring=scoring,
    )
    return Services(
        quizzes=quizzes,
        attempts=AttemptService(attempt_store, quizzes, clock),
        scoring=scoring,
        stats=stats,
        sweeper=sweeper,
    )
