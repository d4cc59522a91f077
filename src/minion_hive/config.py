"""Configuration for the hive."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_hive_dir() -> Path:
    return Path.home() / ".hive"


class Settings(BaseSettings):
    """Hive settings from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HIVE_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    hive_dir: Path = Field(
        default_factory=_default_hive_dir,
        validation_alias=AliasChoices("HIVE_DIR", "hive_dir"),
        description="Root directory for minions, mailboxes and templates",
    )

    # Docker
    image_name: str = "cortex/hive-minion"
    # Directory with the minion Dockerfile; the bundled one when unset
    image_build_context: Path | None = None
    container_prefix: str = "hive-"
    container_workspace: str = "/home/minion/workspace"
    docker_base_url: str | None = None
    stop_timeout_sec: int = 10
    max_docker_threads: int = 5

    # Credential passed into sandboxes
    claude_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLAUDE_CODE_OAUTH_TOKEN", "claude_token"),
    )

    # Polling
    wait_timeout_sec: float = 300
    poll_interval_sec: float = 2
    schedule_interval_sec: float = 10
    prune_default_age: str = "7d"

    # Logging
    service_name: str = Field(
        default="hive",
        validation_alias=AliasChoices("SERVICE_NAME", "service_name"),
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        validation_alias=AliasChoices("LOG_FORMAT", "log_format"),
    )
    log_level: str = Field(
        default="WARNING",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    @property
    def minions_dir(self) -> Path:
        return self.hive_dir / "minions"

    @property
    def network_dir(self) -> Path:
        return self.hive_dir / "network"

    @property
    def templates_dir(self) -> Path:
        return self.hive_dir / "templates"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
