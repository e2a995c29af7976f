"""Configuration management for Gmail Sync.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GMAIL_SCOPE_MODIFY = "https://www.googleapis.com/auth/gmail.modify"
GMAIL_SCOPE_SEND = "https://www.googleapis.com/auth/gmail.send"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the GMAIL_SYNC_ prefix (e.g., GMAIL_SYNC_DATABASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///gmail_sync.sqlite3",
        description="SQLAlchemy database URL for accounts and mirrored threads",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to the OAuth web client secrets file",
    )
    gmail_redirect_uri: str | None = Field(
        default=None,
        description="OAuth redirect URI. Defaults to the first URI in the secrets file.",
    )
    gmail_scopes: list[str] = Field(
        default_factory=lambda: [GMAIL_SCOPE_MODIFY, GMAIL_SCOPE_SEND],
        description="OAuth scopes requested when an account is connected",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail API user id used for every request",
    )

    # Sync Configuration
    sync_page_size: int = Field(
        default=50,
        description="Number of threads fetched and served per sync page",
    )
    sync_cursor_scope: Literal["account", "global"] = Field(
        default="account",
        description=(
            "Whether the latest/oldest sync cursor is computed from the account's own "
            "threads or from every stored thread"
        ),
    )

    # Attachment Configuration
    max_attachment_bytes: int = Field(
        default=25 * 1024 * 1024,
        description="Maximum total size of attachments on an outgoing email",
    )
    attachment_chunk_size: int = Field(
        default=64 * 1024,
        description="Chunk size in bytes used when streaming attachment downloads",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for transient Gmail API failures",
    )
    retry_delay: float = Field(
        default=1.0,
        description="Initial delay in seconds between retries",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
