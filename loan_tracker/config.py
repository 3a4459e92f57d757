"""Runtime settings read from the environment.

``LOAN_TRACKER_DATABASE_URL``
    SQLAlchemy URL of the store (default: a SQLite file in the working directory).
``LOAN_TRACKER_LOG_LEVEL``
    Logging level name for the command-line tool (default: ``WARNING``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///loan_tracker.sqlite3"
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings() -> Settings:
    return Settings(
        database_url=os.environ.get("LOAN_TRACKER_DATABASE_URL") or DEFAULT_DATABASE_URL,
        log_level=(os.environ.get("LOAN_TRACKER_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
