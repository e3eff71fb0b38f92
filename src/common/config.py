from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# Environment variable names
ENV_DB_PATH = "TASKZONES_DB_PATH"
ENV_FERNET_KEY = "TASKZONES_FERNET_KEY"
ENV_LOG_LEVEL = "TASKZONES_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "INFO"


def default_db_path() -> Path:
    data_home = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home) / "taskzones" / "board.db"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


@dataclass(frozen=True)
class BoardConfig:
    """
    Runtime configuration for the board store and the CLI.

    Environment variables (all optional)
    - `TASKZONES_DB_PATH`:    SQLite file holding state and images
    - `TASKZONES_FERNET_KEY`: urlsafe base64 Fernet key; enables encryption at rest
    - `TASKZONES_LOG_LEVEL`:  logging level name (default INFO)
    """

    db_path: Path
    fernet_key: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "BoardConfig":
        raw_path = _getenv(ENV_DB_PATH)
        level = (_getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise RuntimeError(f"Invalid {ENV_LOG_LEVEL}: {level}")
        return cls(
            db_path=Path(raw_path).expanduser() if raw_path else default_db_path(),
            fernet_key=_getenv(ENV_FERNET_KEY),
            log_level=level,
        )
