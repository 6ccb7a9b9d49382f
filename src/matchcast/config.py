"""Runtime settings for matchcast."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchcastConfig(BaseSettings):
    """Configuration settings for matchcast."""

    # Reproducibility
    seed: int | None = Field(
        default=None,
        description="Seed for the per-analysis random generator",
        alias="MATCHCAST_SEED",
    )

    # Simulation settings
    trials: int = Field(
        default=100_000,
        description="Monte Carlo trials per match",
        alias="MATCHCAST_TRIALS",
    )

    workers: int = Field(
        default=1,
        description="Threads used to run Monte Carlo shards",
        alias="MATCHCAST_WORKERS",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root logging level",
        alias="MATCHCAST_LOG_LEVEL",
    )

    engine_config_path: Path | None = Field(
        default=None,
        description="Layered engine configuration file",
        alias="MATCHCAST_ENGINE_CONFIG",
    )

    timeout: float | None = Field(
        default=None,
        description="Per-match analysis timeout in seconds",
        alias="MATCHCAST_TIMEOUT",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global configuration instance
config = MatchcastConfig()


def get_config() -> MatchcastConfig:
    """Get the current configuration."""
    return config


def update_config(**kwargs) -> None:
    """Update configuration settings."""
    global config
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ValueError(f"Unknown configuration option: {key}")


def reset_config() -> None:
    """Reset configuration to defaults."""
    global config
    config = MatchcastConfig()
