"""Environment-driven settings for the API process."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from emissions import DEFAULT_TABLE_PATH

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    database_url: str = ""
    database_name: str = "recycling"
    emission_table_path: Path = DEFAULT_TABLE_PATH
    store_timeout_ms: int = 5000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env_file: Optional[str | Path] = None) -> Settings:
    """Read settings from the environment.

    A ``.env`` file (``env_file`` or the one found from the working directory)
    is loaded first; variables already set in the environment win.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    return Settings(
        database_url=os.getenv("DATABASE_URL", ""),
        database_name=os.getenv("DATABASE_NAME", "") or "recycling",
        emission_table_path=Path(os.getenv("EMISSION_TABLE_PATH", "") or DEFAULT_TABLE_PATH),
        store_timeout_ms=_int_env("STORE_TIMEOUT_MS", 5000),
        cors_origins=origins or ["*"],
        log_level=(os.getenv("LOG_LEVEL", "") or "INFO").upper(),
        port=_int_env("PORT", 8000),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
