"""Pydantic Settings model for application configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gitea_workflow.utils.constants import (
    DEFAULT_GITEA_API_URL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_WORKFLOW_CONFIG_PATH,
)


class Settings(BaseSettings):
    """Environment variable settings for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Generic application-wide settings
    DEBUG: bool = False

    # Gitea API settings
    GITEA_API_URL: str = DEFAULT_GITEA_API_URL
    GITEA_TOKEN: str | None = None
    REPO: str | None = None

    # Workflow engine settings
    WORKFLOW_CONFIG_PATH: str = DEFAULT_WORKFLOW_CONFIG_PATH
    WORKFLOW_MAX_CONCURRENCY: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)
    WORKFLOW_REQUEST_TIMEOUT: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    WORKFLOW_MAX_RETRIES: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)


settings = Settings()
