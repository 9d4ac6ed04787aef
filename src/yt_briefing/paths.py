"""Centralized path construction for runtime data files.

Pure functions, no side effects (no mkdir). Callers are responsible for
creating directories before writing.
"""

from __future__ import annotations

import os
from pathlib import Path

from yt_briefing.config import get_app_config


def db_path(data_dir: Path) -> Path:
    """Return the default database file path."""
    return data_dir / "data" / "yt_briefing.db"


def default_data_dir() -> Path:
    """Return YT_BRIEFING_DATA_DIR, or the working directory when unset."""
    return Path(get_app_config().data_dir_env or os.getcwd())


def resolve_db_path(data_dir: Path | None = None, override: Path | str | None = None) -> Path:
    """Pick the DB path: explicit override, then YT_BRIEFING_DB, then the data-dir default."""
    if override is not None and str(override).strip():
        return Path(override)
    env_db = get_app_config().db_env
    if env_db:
        return Path(env_db)
    return db_path(data_dir or default_data_dir())
