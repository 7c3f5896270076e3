from __future__ import annotations

import os
from pathlib import Path

_BASE = Path(__file__).resolve().parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

# Sweeper cadence and retention policy
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
ATTEMPT_RETENTION_HOURS = float(os.getenv("ATTEMPT_RETENTION_HOURS", "24"))
ABANDON_AFTER_HOURS = float(os.getenv("ABANDON_AFTER_HOURS", "12"))

QUIZ_DATA_DIR = Path(os.getenv("QUIZ_DATA_DIR", str(_BASE / "data" / "quizzes")))

# Migrations are the normal path; create_all is a convenience for local runs.
AUTO_CREATE_TABLES = _env_bool("AUTO_CREATE_TABLES", True)
