"""Application configuration."""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_PLAYERS_FILE = Path(__file__).resolve().parent.parent / "data" / "players.xlsx"


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Game
    game_url: str = Field(
        default="https://www.crowd.live/FNJCN",
        validation_alias=AliasChoices("GAME_URL", "game_url"),
        description="Default game URL used when the CLI is not given one",
    )
    game_wait_timeout: float = Field(
        default=30.0,
        description="Default phase wait timeout in seconds",
    )
    game_start_timeout: float = Field(
        default=300.0,
        description="How long an agent waits for the first question, in seconds",
    )
    countdown_timeout: float = Field(
        default=180.0,
        description="How long an agent waits for a question after a countdown, in seconds",
    )
    phase_poll_interval: float = Field(
        default=0.5,
        description="Interval between phase classifications while waiting, in seconds",
    )

    # Browser
    headless: bool = Field(
        default=False,
        validation_alias=AliasChoices("HEADLESS", "headless"),
    )
    max_concurrent_bots: int = Field(
        default=100,
        validation_alias=AliasChoices("MAX_CONCURRENT_BOTS", "max_concurrent_bots"),
        description="Hard ceiling on simultaneously running agents",
    )
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Roster
    players_file: Path = Field(
        default=DEFAULT_PLAYERS_FILE,
        validation_alias=AliasChoices("PLAYERS_FILE", "players_file"),
    )

    # Pool admission
    stagger_min_ms: int = Field(
        default=1000,
        description="Lower bound of the delay between two agent launches (ms)",
    )
    stagger_max_ms: int = Field(
        default=5000,
        description="Upper bound of the delay between two agent launches (ms)",
    )
    admission_poll_interval: float = Field(
        default=0.5,
        description="Busy-poll interval while the pool is at capacity, in seconds",
    )

    # Agent retry / recovery
    agent_max_recoveries: int = Field(
        default=3,
        description="Lifetime budget of full recoveries per agent",
    )
    agent_retry_attempts: int = Field(
        default=3,
        description="Attempts per retried driver operation",
    )
    agent_retry_backoff: float = Field(
        default=1.0,
        description="Backoff step between ordinary retries, in seconds",
    )
    agent_recovery_delay: float = Field(
        default=2.0,
        description="Pause between teardown and re-initialisation, in seconds",
    )
    agent_max_consecutive_errors: int = Field(
        default=10,
        description="Consecutive ERROR classifications before an agent gives up",
    )
    answer_delay_cap_ms: int = Field(
        default=1000,
        description="Upper bound of the pre-submission wait actually slept",
    )

    # Persistence sink (optional admin backend)
    admin_backend_url: Optional[str] = Field(
        default=None,
        description="Admin backend base URL; persistence is disabled when unset",
    )
    internal_api_key: Optional[str] = Field(
        default=None,
        description="X-API-Key sent to the admin backend",
    )

    @field_validator("max_concurrent_bots")
    @classmethod
    def validate_max_concurrent(cls, v: int) -> int:
        """At least one agent must be admissible."""
        if v < 1:
            raise ValueError("max_concurrent_bots must be at least 1")
        return v

    @field_validator("viewport_width", "viewport_height")
    @classmethod
    def validate_viewport(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("viewport dimensions must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_stagger_range(self) -> "Settings":
        """Stagger bounds must form a valid range."""
        if self.stagger_min_ms < 0 or self.stagger_min_ms > self.stagger_max_ms:
            raise ValueError(
                "stagger_min_ms must be non-negative and not greater than stagger_max_ms"
            )
        return self

    @property
    def stagger_range(self) -> tuple[int, int]:
        return (self.stagger_min_ms, self.stagger_max_ms)

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
