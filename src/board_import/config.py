"""
Importer Configuration

Uses pydantic-settings for environment variable loading with validation.
Command line options override these values.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from board_import.resolver import CreationPolicy


class Settings(BaseSettings):
    """
    Importer settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BOARD_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # API
    # ==========================================================================
    api_url: str = Field(
        default="https://api.trello.com/1", description="Base URL of the board REST API"
    )

    api_key: str | None = Field(
        default=None, description="API key (overrides the credential store)"
    )

    api_token: str | None = Field(
        default=None, description="API token (overrides the credential store)"
    )

    request_timeout: float = Field(
        default=30.0, gt=0, description="Request timeout in seconds")

    board: str | None = Field(
        default=None, description="Default target board (id, short link or URL)"
    )

    # ==========================================================================
    # Creation policy
    # ==========================================================================
    create_lists: bool = Field(
        default=True, description="Create lists that do not exist on the board"
    )

    create_labels: bool = Field(
        default=True, description="Create labels that do not exist on the board"
    )

    skip_labels: bool = Field(
        default=False, description="Ignore labels entirely"
    )

    compensate_on_failure: bool = Field(
        default=False, description="Remove entities created by a run that fails"
    )

    # ==========================================================================
    # Pacing
    # ==========================================================================
    list_delay: float = Field(
        default=0.15, ge=0, description="Seconds to wait after creating each list")

    label_delay: float = Field(
        default=0.12, ge=0, description="Seconds to wait after creating each label")

    card_delay: float = Field(
        default=0.15, ge=0, description="Seconds to wait after every N cards")

    card_pace_every: int = Field(
        default=5, ge=1, description="Number of cards created between card delays")

    # ==========================================================================
    # Local files
    # ==========================================================================
    credentials_file: Path = Field(
        default=Path("~/.config/board-import/credentials.json"),
        description="Where 'auth save' stores the API key and token",
    )

    log_file: Path | None = Field(
        default=None, description="Optional log file for import runs")

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field
    @property
    def credentials_path(self) -> Path:
        """Credential file path with ``~`` expanded."""
        return self.credentials_file.expanduser()

    def creation_policy(self) -> CreationPolicy:
        """Creation policy described by these settings."""
        return CreationPolicy(
            create_buckets=self.create_lists,
            create_tags=self.create_labels,
            skip_tags=self.skip_labels,
            compensate_on_failure=self.compensate_on_failure,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
