"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TRIALIST_",
        case_sensitive=False,
        extra="ignore",
    )

    # Survey database
    database_path: Optional[Path] = Field(None, description="SQLite database holding survey responses")

    # Remote analysis service
    analysis_url: str = Field(
        "https://pilots.ohmage.org/ocpu/github/jservadio/TrialistNof1/R/wrap/json",
        description="Endpoint that runs the N-of-1 analysis on a normalized document",
    )
    analysis_timeout: float = Field(60.0, gt=0)

    # Campaign defaults
    default_campaign_id: str = "urn:campaign:trialist"

    # Observer stream metadata for stored documents and results
    observer_id: str = "io.omh.trialist"
    observer_version: str = "2013013000"
    data_stream_id: str = "data"
    data_stream_version: str = "2013013000"
    results_stream_id: str = "results"
    results_stream_version: str = "2013013000"

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")


# Instantiate global settings
settings = Settings()
