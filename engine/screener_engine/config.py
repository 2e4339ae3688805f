"""
Configuration management for the screening engine.

Uses pydantic-settings for type-safe environment variable handling.
Directories not set explicitly are derived from data_dir.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    All variables use the SCREENER_ prefix, e.g. SCREENER_STOOQ_DIR.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCREENER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: AppEnvironment = Field(
        default=AppEnvironment.DEVELOPMENT,
        description="Application environment",
    )

    # Data paths
    data_dir: Path = Field(
        default=Path("./data"),
        description="Root directory for engine documents",
    )
    stooq_dir: Path | None = Field(
        default=None,
        description="Root of the Stooq flat-file database (<exchange>/<symbol>.txt)",
    )
    models_dir: Path | None = Field(default=None, description="Screener model documents")
    strategies_dir: Path | None = Field(default=None, description="Scoring strategy documents")
    sessions_dir: Path | None = Field(default=None, description="Saved backtest sessions")

    selected_exchanges: list[str] = Field(
        default_factory=list,
        description="Exchange subdirectories to scan (empty = all)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # Loading / execution
    load_max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Threads used to parse symbol files",
    )
    score_max_workers: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Threads used by the score calculator (1 = sequential)",
    )
    extended_load_safety_margin_days: int = Field(
        default=30,
        ge=0,
        le=365,
        description="Extra calendar days loaded before the lookback window",
    )
    default_benchmark_symbol: str = Field(
        default="SPY.US",
        description="Benchmark symbol attached to backtest sessions",
    )
    default_holding_period: int = Field(
        default=5,
        ge=1,
        le=250,
        description="Bars held when computing backtest statistics",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("selected_exchanges")
    @classmethod
    def normalize_exchanges(cls, v: list[str]) -> list[str]:
        """Exchange directories are matched case-insensitively."""
        return [e.strip().lower() for e in v if e.strip()]

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir_exists(cls, v: Path) -> Path:
        """Ensure data directory exists."""
        v.mkdir(parents=True, exist_ok=True)
        return v.resolve()

    @property
    def resolved_stooq_dir(self) -> Path:
        return self.stooq_dir or self.data_dir / "stooq"

    @property
    def resolved_models_dir(self) -> Path:
        return self.models_dir or self.data_dir / "models"

    @property
    def resolved_strategies_dir(self) -> Path:
        return self.strategies_dir or self.data_dir / "strategies"

    @property
    def resolved_sessions_dir(self) -> Path:
        return self.sessions_dir or self.data_dir / "sessions"

    def get_redacted_config(self) -> dict[str, str | int | bool]:
        """Configuration summary safe for logging."""
        return {
            "env": self.env.value,
            "data_dir": str(self.data_dir),
            "stooq_dir": str(self.resolved_stooq_dir),
            "exchanges": ",".join(self.selected_exchanges) or "*",
            "log_level": self.log_level,
            "load_max_workers": self.load_max_workers,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout application.
    """
    return Settings()
