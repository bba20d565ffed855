"""
Academy Progress - Configuration Management
Supports .env files and environment overrides for gamification rules and sync behaviour.
"""

from typing import Dict, Any, Optional
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


# ============================================
# GAMIFICATION CONFIGURATION
# ============================================

class GamificationConfig(BaseSettings):
    """Streak, goal, XP and achievement rule configuration."""

    default_daily_goal: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Default daily study goal in minutes"
    )
    history_days: int = Field(
        default=90,
        ge=7,
        le=3650,
        description="Number of distinct days kept in the daily progress history"
    )
    perfect_week_days: int = Field(
        default=7,
        ge=1,
        le=31,
        description="Consecutive goal-met entries required for the perfect week achievement"
    )
    speed_achievement_threshold: float = Field(
        default=2.0,
        gt=0.0,
        le=4.0,
        description="Minimum playback speed that unlocks the speed achievement"
    )
    late_study_hour: int = Field(
        default=22,
        ge=0,
        le=23,
        description="Hour (inclusive) from which a session counts as late-night study"
    )
    early_study_hour: int = Field(
        default=7,
        ge=0,
        le=23,
        description="Hour (exclusive) before which a session counts as early-morning study"
    )
    default_session_minutes: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Average session length assumed for new learners"
    )
    default_lesson_minutes: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Lesson length assumed when a lesson has no duration"
    )
    xp_per_minute: int = Field(
        default=2,
        ge=0,
        le=100,
        description="Base XP awarded per lesson minute"
    )
    lesson_type_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {
            "cirurgia": 1.5,
            "video": 1.0,
            "ebook": 0.8,
        },
        description="XP multiplier by lesson type"
    )

    model_config = {
        "env_prefix": "GAMIFICATION_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# SYNC CONFIGURATION
# ============================================

class SyncConfig(BaseSettings):
    """Offline queue and remote synchronization configuration."""

    max_retries: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Failed sync attempts after which a queued operation is dropped"
    )
    operation_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout for a single remote read or write"
    )
    auto_sync_interval_seconds: int = Field(
        default=30,
        ge=1,
        le=3600,
        description="Interval between connectivity probes / periodic drains"
    )
    local_store_dir: str = Field(
        default=".academy_progress",
        description="Directory for the JSON file local store"
    )
    offline_queue_key: str = Field(
        default="video_progress_offline_queue",
        description="Local store key holding the persisted offline queue"
    )
    remote_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the HTTP progress API (when using the HTTP remote store)"
    )
    health_url: Optional[str] = Field(
        default=None,
        description="URL polled by the connectivity probe"
    )
    record_ttl_days: int = Field(
        default=365,
        ge=1,
        le=3650,
        description="Days after the last update before a remote record expires"
    )

    model_config = {
        "env_prefix": "SYNC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# LOGGING CONFIGURATION
# ============================================

class LogConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Package log level"
    )
    logs_dir: str = Field(
        default="logs",
        description="Directory for rotating log files"
    )
    file_logging: bool = Field(
        default=True,
        description="Write logs to a rotating file in addition to stdout"
    )

    model_config = {
        "env_prefix": "LOG_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# CACHED CONFIGURATION INSTANCES
# ============================================

@lru_cache()
def get_gamification_config() -> GamificationConfig:
    """Get cached gamification configuration instance."""
    return GamificationConfig()


@lru_cache()
def get_sync_config() -> SyncConfig:
    """Get cached sync configuration instance."""
    return SyncConfig()


@lru_cache()
def get_log_config() -> LogConfig:
    """Get cached logging configuration instance."""
    return LogConfig()


def reload_config():
    """Clear configuration cache and reload from environment."""
    get_gamification_config.cache_clear()
    get_sync_config.cache_clear()
    get_log_config.cache_clear()


# ============================================
# CONFIGURATION SUMMARY
# ============================================

def get_config_summary() -> Dict[str, Any]:
    """
    Get a summary of all configuration values.
    Useful for debugging and the health endpoint.
    """
    gamification = get_gamification_config()
    sync = get_sync_config()
    log = get_log_config()

    return {
        "gamification": {
            "daily_goal": gamification.default_daily_goal,
            "history_days": gamification.history_days,
            "perfect_week_days": gamification.perfect_week_days,
            "speed_threshold": gamification.speed_achievement_threshold,
            "late_study": f"{gamification.late_study_hour:02d}:00",
            "early_study": f"{gamification.early_study_hour:02d}:00",
        },
        "sync": {
            "max_retries": sync.max_retries,
            "timeout_seconds": sync.operation_timeout_seconds,
            "auto_sync_interval": sync.auto_sync_interval_seconds,
            "has_remote_url": bool(sync.remote_base_url),
            "has_health_url": bool(sync.health_url),
        },
        "logging": {
            "level": log.level,
            "file_logging": log.file_logging,
        },
    }
