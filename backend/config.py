"""
Questline - Configuration Management
Supports .env files and runtime configuration for scoring, sync, rivals and the sync server.
"""

from typing import Dict, Any, Optional
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


# ============================================
# SCORING CONFIGURATION
# ============================================

class ScoringConfig(BaseSettings):
    """
    XP scoring configuration.
    Multiplier tables are keyed by difficulty name or tier number.
    """
    base_xp: int = Field(
        default=10,
        ge=1,
        description="Base XP for completing a task"
    )
    difficulty_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {
            "easy": 1.0,
            "medium": 1.5,
            "hard": 2.0,
            "epic": 3.0,
        },
        description="Multiplier per task difficulty"
    )
    task_tier_multipliers: Dict[int, float] = Field(
        default_factory=lambda: {1: 1.0, 2: 1.5, 3: 2.0},
        description="Multiplier per task importance tier (1 = lowest)"
    )
    exercise_tier_multipliers: Dict[int, float] = Field(
        default_factory=lambda: {1: 3.0, 2: 2.0, 3: 1.0},
        description="Multiplier per exercise tier (1 = major compound lifts)"
    )
    on_time_bonus: float = Field(
        default=1.5,
        ge=1.0,
        le=5.0,
        description="Punctuality multiplier when completed by the due time"
    )
    streak_bonus_per_day: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Extra multiplier per day of the current streak"
    )
    max_streak_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Cap on the streak multiplier"
    )
    workout_completion_xp: int = Field(
        default=50,
        ge=0,
        description="Base XP for finishing a workout"
    )
    early_bird_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        description="Completions before this local hour count as early bird"
    )
    night_owl_hour: int = Field(
        default=20,
        ge=0,
        le=23,
        description="Completions at or after this local hour count as night owl"
    )

    model_config = {
        "env_prefix": "SCORING_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# SYNC CONFIGURATION
# ============================================

class SyncConfig(BaseSettings):
    """Client sync engine and local store configuration."""

    server_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the persistence server"
    )
    user_id: str = Field(
        default="local",
        description="User identifier sent with every request"
    )
    store_path: str = Field(
        default="./data/questline_store.json",
        description="Where the local entity store is persisted"
    )
    debounce_ms: int = Field(
        default=500,
        ge=0,
        le=10000,
        description="Quiet period before a debounced push fires"
    )
    retry_base_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="First retry delay after a failed push"
    )
    retry_max_seconds: float = Field(
        default=80.0,
        ge=0.0,
        description="Upper bound for the retry delay"
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Retries per dirty period before giving up until reconnect"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="HTTP timeout for sync requests"
    )
    poll_interval_seconds: int = Field(
        default=300,
        ge=5,
        description="Interval between background pulls"
    )

    model_config = {
        "env_prefix": "SYNC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# RIVAL CONFIGURATION
# ============================================

class RivalConfig(BaseSettings):
    """Rival relationship tuning."""

    min_respect: int = Field(default=1, ge=0, description="Lowest respect level")
    max_respect: int = Field(default=5, ge=1, description="Highest respect level")
    min_heat: int = Field(default=0, ge=0, description="Lowest rivalry heat")
    max_heat: int = Field(default=100, ge=1, description="Highest rivalry heat")
    dominant_margin: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Margins above this double the respect change"
    )
    close_margin: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Margins at or below this count as a close encounter"
    )
    lopsided_margin: float = Field(
        default=25.0,
        ge=0.0,
        le=100.0,
        description="Margins above this cool the rivalry down"
    )
    close_heat_gain: int = Field(default=10, description="Heat gained on a close encounter")
    moderate_heat_gain: int = Field(default=5, description="Heat gained on a moderate encounter")
    lopsided_heat_decay: int = Field(default=5, description="Heat lost on a lopsided encounter")
    streak_heat_bonus: int = Field(default=5, description="Extra heat when a streak of 3+ is on the line")

    model_config = {
        "env_prefix": "RIVAL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# SERVER CONFIGURATION
# ============================================

class ServerConfig(BaseSettings):
    """Reference sync server configuration."""

    version: str = Field(default="1.0.0", description="API version reported by /health")
    database_url: Optional[str] = Field(default=None, description="PostgreSQL DSN; DATABASE_URL still wins")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed by CORS"
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")

    model_config = {
        "env_prefix": "SERVER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# CACHED CONFIGURATION INSTANCES
# ============================================

@lru_cache()
def get_scoring_config() -> ScoringConfig:
    """Get cached scoring configuration instance."""
    return ScoringConfig()


@lru_cache()
def get_sync_config() -> SyncConfig:
    """Get cached sync configuration instance."""
    return SyncConfig()


@lru_cache()
def get_rival_config() -> RivalConfig:
    """Get cached rival configuration instance."""
    return RivalConfig()


@lru_cache()
def get_server_config() -> ServerConfig:
    """Get cached server configuration instance."""
    return ServerConfig()


def reload_config():
    """Clear configuration cache and reload from environment."""
    get_scoring_config.cache_clear()
    get_sync_config.cache_clear()
    get_rival_config.cache_clear()
    get_server_config.cache_clear()


# ============================================
# CONFIGURATION SUMMARY
# ============================================

def get_config_summary() -> Dict[str, Any]:
    """
    Get a summary of all configuration values.
    Useful for debugging and settings display.
    """
    scoring = get_scoring_config()
    sync = get_sync_config()
    rival = get_rival_config()
    server = get_server_config()

    return {
        "scoring": {
            "base_xp": scoring.base_xp,
            "difficulty": scoring.difficulty_multipliers,
            "task_tiers": scoring.task_tier_multipliers,
            "exercise_tiers": scoring.exercise_tier_multipliers,
            "on_time_bonus": scoring.on_time_bonus,
            "streak": f"+{scoring.streak_bonus_per_day}/day (max {scoring.max_streak_multiplier}x)",
        },
        "sync": {
            "server_url": sync.server_url,
            "store_path": sync.store_path,
            "debounce_ms": sync.debounce_ms,
            "retry": f"{sync.retry_base_seconds}s doubling to {sync.retry_max_seconds}s, {sync.max_retries} tries",
            "poll_interval": sync.poll_interval_seconds,
        },
        "rival": {
            "respect": f"{rival.min_respect}-{rival.max_respect}",
            "heat": f"{rival.min_heat}-{rival.max_heat}",
            "dominant_margin": rival.dominant_margin,
        },
        "server": {
            "version": server.version,
            "cors_origins": server.cors_origins,
        },
    }
