"""
FILE: taskboard/config.py
PURPOSE: Runtime settings loaded from the environment
EXPORTS:
  - Settings (dataclass)
  - load_settings(env) -> Settings
  - DEFAULT_DB_DIR, DEFAULT_DB_PATH
DEPENDENCIES:
  - dataclasses, os, pathlib (stdlib)
NOTES:
  - Database stored at ~/.taskboard/taskboard.db unless TASKBOARD_DB is set
  - Invalid numeric values fall back to defaults rather than crashing startup
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


# Database file location (cross-platform)
DEFAULT_DB_DIR = Path.home() / ".taskboard"
DEFAULT_DB_PATH = DEFAULT_DB_DIR / "taskboard.db"


@dataclass
class Settings:
    """Store, transaction and logging knobs."""

    db_path: Path = DEFAULT_DB_PATH
    busy_timeout: float = 5.0  # seconds SQLite waits for the write lock
    transaction_deadline: float = 10.0  # seconds before a transaction is interrupted
    max_retries: int = 3  # attempts when the store reports it is busy
    audit_enabled: bool = True
    log_level: str = "INFO"


def _as_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _as_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Settings with every unset variable at its default

    Notes:
        TASKBOARD_DB, TASKBOARD_BUSY_TIMEOUT, TASKBOARD_TX_DEADLINE,
        TASKBOARD_MAX_RETRIES, TASKBOARD_AUDIT, TASKBOARD_LOG_LEVEL
    """
    env = os.environ if env is None else env
    defaults = Settings()

    db = env.get("TASKBOARD_DB")
    return Settings(
        db_path=Path(db).expanduser() if db else defaults.db_path,
        busy_timeout=_as_float(env.get("TASKBOARD_BUSY_TIMEOUT"), defaults.busy_timeout),
        transaction_deadline=_as_float(
            env.get("TASKBOARD_TX_DEADLINE"), defaults.transaction_deadline
        ),
        max_retries=max(1, _as_int(env.get("TASKBOARD_MAX_RETRIES"), defaults.max_retries)),
        audit_enabled=_as_bool(env.get("TASKBOARD_AUDIT"), defaults.audit_enabled),
        log_level=env.get("TASKBOARD_LOG_LEVEL", defaults.log_level).upper(),
    )
