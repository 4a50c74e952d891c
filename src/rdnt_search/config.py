"""Centralized configuration for rdnt-search using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    All environment variables are validated at startup; an invalid value
    raises ``pydantic.ValidationError`` before anything is crawled or loaded.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Storage
    index_path: Path = Field(default=Path("data/search_index.json"), description="Persisted index file")
    websites_root: Path = Field(default=Path("websites"), description="Directory holding one folder per site")

    # Crawler settings
    crawler_user_agent: str = Field(default="RedNet-Explorer/1.0 Crawler", description="Crawler identifying name")
    crawl_max_depth: int = Field(default=3, ge=0, description="Maximum link depth from the seed page")
    crawl_max_pages: int = Field(default=100, ge=1, description="Maximum pages indexed per site crawl")
    crawl_delay_seconds: float = Field(default=0.1, ge=0.0, description="Pause between page fetches in seconds")
    respect_robots_txt: bool = Field(default=True, description="Honor robots.txt directives")
    same_host_only: bool = Field(default=True, description="Don't follow links to other hosts")

    # Search settings
    snippet_length: int = Field(default=150, ge=20, description="Maximum snippet length for search results")
    search_default_limit: int = Field(default=20, ge=1, le=1000, description="Default page size for searches")

    # Persistence
    autosave_enabled: bool = Field(default=True, description="Persist the index periodically when it changes")
    autosave_interval_seconds: float = Field(
        default=300.0, ge=0.0, description="Minimum seconds between automatic index saves"
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    log_json: bool = Field(default=False, description="Emit structured JSON logs")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value
