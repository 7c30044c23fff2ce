"""
Configuration management for fairdraw.

Reads configuration from a .env file and environment variables with sensible
defaults. Command-line arguments override these values in fairdraw.app.cli.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from fairdraw.errors import InvalidConfiguration

# Default .env file location (relative to the working directory)
DEFAULT_ENV_FILE = Path(".env")
DEFAULT_STATE_PATH = "balanced_rand_data.json"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

logger = logging.getLogger(__name__)


def _load_env_file() -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(os.getenv("FAIRDRAW_ENV_FILE", str(DEFAULT_ENV_FILE)))
    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars
        logger.debug(f"[CONFIG] Loaded environment variables from {env_path}")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name, str(default))
    try:
        return int(value)
    except ValueError:
        raise InvalidConfiguration(f"Invalid {name}: {value} (must be an integer)")


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name, str(default))
    try:
        return float(value)
    except ValueError:
        raise InvalidConfiguration(f"Invalid {name}: {value} (must be a number)")


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name, "")
    if not value:
        return default
    return value.lower() in ("1", "true", "yes", "on")


@dataclass
class FairDrawConfig:
    """fairdraw configuration loaded from .env file and environment variables."""

    # Persistence
    state_path: str = DEFAULT_STATE_PATH
    auto_save: bool = True

    # Engine tuning
    min_pool_size: int = 3
    max_gap_threshold: int = 5
    cold_start_boost: float = 2.0
    decay_factor: float = 0.7

    # Random seed (None = fresh entropy each run)
    seed: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def load_config(cls) -> "FairDrawConfig":
        """
        Load configuration from environment variables.

        Returns:
            FairDrawConfig instance with loaded values

        Raises:
            InvalidConfiguration: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        seed_str = os.getenv("FAIRDRAW_SEED", "")
        seed: Optional[int] = None
        if seed_str:
            try:
                seed = int(seed_str)
            except ValueError:
                raise InvalidConfiguration(f"Invalid FAIRDRAW_SEED: {seed_str} (must be an integer)")

        log_file = os.getenv("FAIRDRAW_LOG_FILE") or None

        config = cls(
            state_path=os.getenv("FAIRDRAW_STATE_PATH", DEFAULT_STATE_PATH),
            auto_save=_get_bool("FAIRDRAW_AUTO_SAVE", True),
            min_pool_size=_get_int("FAIRDRAW_MIN_POOL_SIZE", 3),
            max_gap_threshold=_get_int("FAIRDRAW_MAX_GAP_THRESHOLD", 5),
            cold_start_boost=_get_float("FAIRDRAW_COLD_START_BOOST", 2.0),
            decay_factor=_get_float("FAIRDRAW_DECAY_FACTOR", 0.7),
            seed=seed,
            log_level=os.getenv("FAIRDRAW_LOG_LEVEL", "INFO"),
            log_file=log_file,
        )

        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            InvalidConfiguration: If configuration is invalid
        """
        if not self.state_path:
            raise InvalidConfiguration("State path cannot be empty")

        if self.min_pool_size <= 0:
            raise InvalidConfiguration(f"Invalid min pool size: {self.min_pool_size} (must be > 0)")

        if self.max_gap_threshold < 0:
            raise InvalidConfiguration(f"Invalid max gap threshold: {self.max_gap_threshold} (must be >= 0)")

        if self.cold_start_boost <= 0:
            raise InvalidConfiguration(f"Invalid cold start boost: {self.cold_start_boost} (must be > 0)")

        if not 0 < self.decay_factor <= 1:
            raise InvalidConfiguration(f"Invalid decay factor: {self.decay_factor} (must be in (0, 1])")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise InvalidConfiguration(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(VALID_LOG_LEVELS)})"
            )


def load_config() -> FairDrawConfig:
    """
    Load and validate fairdraw configuration from environment variables.

    Raises:
        InvalidConfiguration: If configuration is invalid
    """
    try:
        return FairDrawConfig.load_config()
    except InvalidConfiguration as e:
        logger.error(f"[CONFIG] Configuration error: {e}")
        raise
