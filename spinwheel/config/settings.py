"""
SPINWHEEL — Settings

Runtime configuration from environment variables (and a local .env file).

    SPINWHEEL_DB_PATH       SQLite file shared by every app instance
    SPINWHEEL_CONFIG_KEY    storage key of the outcome configuration
    SPINWHEEL_HISTORY_KEY   storage key of the spin log
    SPINWHEEL_SEED          optional int; seeds the spin RNG (demos, replays)
    LOG_LEVEL               root log level for CLI / web entry points
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

CONFIG_KEY = "wheel_config"
HISTORY_KEY = "spin_wheel_history"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("spinwheel.settings").warning(
            f"Ignoring non-integer SPINWHEEL_SEED={raw!r}")
        return None


@dataclass
class Settings:
    db_path: str = "spinwheel.db"
    config_key: str = CONFIG_KEY
    history_key: str = HISTORY_KEY
    log_level: str = "INFO"
    seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=os.getenv("SPINWHEEL_DB_PATH", "spinwheel.db"),
            config_key=os.getenv("SPINWHEEL_CONFIG_KEY", CONFIG_KEY),
            history_key=os.getenv("SPINWHEEL_HISTORY_KEY", HISTORY_KEY),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            seed=_int_or_none(os.getenv("SPINWHEEL_SEED")),
        )


def setup_logging(level: str = "INFO") -> None:
    """Structured logging for entry points. Library code only gets loggers."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
