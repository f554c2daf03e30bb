from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class AppSettings:
    paths: AppPaths
    log_level: int
    busy_timeout: float


def get_app_paths(app_name: str = "bevdist") -> AppPaths:
    """Data directory of the service: ``$BEVDIST_HOME`` or ``~/.bevdist``.

    ``BEVDIST_DB`` points the database somewhere else (e.g. a mounted volume);
    logs always stay under the data directory.
    """
    override = os.environ.get("BEVDIST_HOME", "").strip()
    base = Path(override).expanduser() if override else Path.home() / f".{app_name.lower()}"
    logs = base / "logs"

    db_override = os.environ.get("BEVDIST_DB", "").strip()
    db = Path(db_override).expanduser() if db_override else base / "distribution.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    db.parent.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_settings() -> AppSettings:
    level_name = os.environ.get("BEVDIST_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown BEVDIST_LOG_LEVEL: {level_name}")

    raw_timeout = os.environ.get("BEVDIST_BUSY_TIMEOUT", "10").strip()
    try:
        busy_timeout = float(raw_timeout)
    except ValueError as e:
        raise ValueError(f"BEVDIST_BUSY_TIMEOUT must be a number of seconds, got {raw_timeout!r}") from e
    if busy_timeout <= 0:
        raise ValueError("BEVDIST_BUSY_TIMEOUT must be > 0")

    return AppSettings(paths=get_app_paths(), log_level=level, busy_timeout=busy_timeout)
