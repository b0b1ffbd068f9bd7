"""Configuration management"""
import logging
import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from healthloop.exceptions import ConfigurationError

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Calendar: day boundaries for streaks are computed in this timezone
USER_TIMEZONE: str = os.getenv("USER_TIMEZONE", "UTC")

# Persistence
# Empty REDIS_URL keeps progression in process memory (tests, local runs)
REDIS_URL: str = os.getenv("REDIS_URL", "")
REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "healthloop:progression:")

# Leveling curve: threshold(level) = base + (level - 1) * step
XP_LEVEL_BASE: int = int(os.getenv("XP_LEVEL_BASE", "100"))
XP_LEVEL_STEP: int = int(os.getenv("XP_LEVEL_STEP", "25"))

# XP awards
XP_PER_CORRECT_ANSWER: int = int(os.getenv("XP_PER_CORRECT_ANSWER", "10"))
XP_PER_QUIZ_COMPLETION: int = int(os.getenv("XP_PER_QUIZ_COMPLETION", "25"))
XP_HINT_COST: int = int(os.getenv("XP_HINT_COST", "5"))

# Unlock ladder ceiling (levels per quiz category)
UNLOCK_MAX_TIER: int = int(os.getenv("UNLOCK_MAX_TIER", "5"))

# Focus timer cadence in seconds (display only)
FOCUS_TIMER_INTERVAL: float = float(os.getenv("FOCUS_TIMER_INTERVAL", "1.0"))


@dataclass(frozen=True)
class EngineSettings:
    """Snapshot of the tunables, injected into the progression store"""

    xp_level_base: int = XP_LEVEL_BASE
    xp_level_step: int = XP_LEVEL_STEP
    xp_per_correct_answer: int = XP_PER_CORRECT_ANSWER
    xp_per_quiz_completion: int = XP_PER_QUIZ_COMPLETION
    xp_hint_cost: int = XP_HINT_COST
    unlock_max_tier: int = UNLOCK_MAX_TIER
    focus_timer_interval: float = FOCUS_TIMER_INTERVAL
    user_timezone: str = USER_TIMEZONE


def get_settings() -> EngineSettings:
    """Build settings from the module-level configuration"""
    return EngineSettings(
        xp_level_base=XP_LEVEL_BASE,
        xp_level_step=XP_LEVEL_STEP,
        xp_per_correct_answer=XP_PER_CORRECT_ANSWER,
        xp_per_quiz_completion=XP_PER_QUIZ_COMPLETION,
        xp_hint_cost=XP_HINT_COST,
        unlock_max_tier=UNLOCK_MAX_TIER,
        focus_timer_interval=FOCUS_TIMER_INTERVAL,
        user_timezone=USER_TIMEZONE,
    )


# Validation
def validate_config(settings: EngineSettings | None = None) -> None:
    """Validate configuration values"""
    settings = settings or get_settings()

    if settings.xp_level_base <= 0:
        raise ConfigurationError("XP_LEVEL_BASE must be positive", config_key="XP_LEVEL_BASE")
    if settings.xp_level_step < 0:
        raise ConfigurationError("XP_LEVEL_STEP must not be negative", config_key="XP_LEVEL_STEP")
    if settings.unlock_max_tier < 1:
        raise ConfigurationError("UNLOCK_MAX_TIER must be at least 1", config_key="UNLOCK_MAX_TIER")
    if settings.focus_timer_interval <= 0:
        raise ConfigurationError(
            "FOCUS_TIMER_INTERVAL must be positive", config_key="FOCUS_TIMER_INTERVAL"
        )
    try:
        ZoneInfo(settings.user_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"Unknown USER_TIMEZONE '{settings.user_timezone}'",
            config_key="USER_TIMEZONE",
            cause=e,
        )


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging the way the service entry points do"""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, level.upper(), logging.INFO)
    )
