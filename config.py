"""
Companion engine configuration settings.

Loads configuration from environment variables via pydantic-settings.
Every field can be overridden with a COMPANION_-prefixed env var or a .env file.
"""

import logging

from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    # Storage
    data_dir: Path = Path(__file__).parent / "data"
    strategy_file: Path = Path(__file__).parent / "data" / "behavior-strategies.json"
    backup_dir: Path = Path(__file__).parent / "data" / "backups"
    stats_file: Path = Path(__file__).parent / "data" / "execution-stats.json"

    # Scheduling
    base_schedule_interval_ms: int = 5000      # Base for next_schedule_hint
    default_emotion_intensity: float = 0.7     # Used when no EmotionContext is supplied
    default_emotion_duration_ms: int = 30000
    exclusive_states: str = ""                 # Comma-separated states whose schedule() calls are serialized
    error_ring_size: int = 10                  # Errors kept per strategy

    # Rhythm adaptation
    rhythm_high_freq_threshold: int = 3        # Interactions per minute considered high
    rhythm_low_freq_threshold: int = 1         # Interactions per minute considered low
    rhythm_idle_threshold_seconds: float = 15.0
    rhythm_emotion_history_size: int = 10
    rhythm_interaction_retention_seconds: int = 120

    # Hot reload of the persisted strategy file
    hot_reload_enabled: bool = False
    hot_reload_interval_seconds: int = 2

    log_level: str = "INFO"

    class Config:
        env_prefix = "COMPANION_"
        env_file = str(Path(__file__).parent / ".env")
        extra = "ignore"  # Allow extra env vars without errors

settings = Settings()


def get_exclusive_states() -> list[str]:
    """Parse the exclusive_states CSV into a list of state values."""
    return [s.strip().lower() for s in settings.exclusive_states.split(",") if s.strip()]


def configure_logging(level: str = None) -> None:
    """Apply the configured log level to the companion logger tree."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("companion").setLevel(getattr(logging, level_name, logging.INFO))
