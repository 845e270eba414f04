"""
Configuration management for Campaign Forge.

This module provides engine defaults that can be overridden through
environment variables or a local ``.env`` file.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SimulationDefaults:
    """
    Static constants shared by the simulation components.

    These are fixed by the network and detection models and are not
    meant to be tuned per run.
    """

    # Security zones, in order of decreasing exposure
    SUBNETS = {
        "dmz": "10.1.0.0/24",
        "internal": "10.2.0.0/24",
        "critical": "10.3.0.0/24",
    }

    # Detection delay bounds in minutes
    DETECTION_DELAY_MINUTES = (2, 30)

    # Campaign-level correlation score bounds
    CAMPAIGN_CORRELATION_SCORE = (0.70, 0.95)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="CAMPAIGN_FORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Detection model
    detection_rate: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Probability that a technique within a stage is detected",
    )
    logs_per_stage: int = Field(
        default=8, ge=1, description="Synthesized logs per stage technique"
    )

    # Collaborator calls
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for a single content or alert fill call",
    )

    # Campaign timing
    default_time_pattern: Literal[
        "uniform", "business_hours", "attack_simulation", "weekend_heavy", "random"
    ] = Field(
        default="attack_simulation",
        description="Time distribution pattern used when none is requested",
    )
    default_start: str = Field(
        default="2d", description="Default window start (ISO or relative, e.g. 2d)"
    )
    default_end: str = Field(
        default="now", description="Default window end (ISO or relative)"
    )

    # Output
    namespace: str = Field(
        default="default", description="Namespace/space tag for persisted batches"
    )
    output_dir: Path = Field(
        default=Path.home() / ".campaign-forge",
        description="Directory for JSON-lines batch output",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "human"] = Field(
        default="human", description="Log output format"
    )

    def ensure_output_dir(self) -> Path:
        """Ensure the output directory exists and return it."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir


# Global settings instance
settings = Settings()
