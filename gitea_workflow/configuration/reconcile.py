"""Reconciles configuration between CLI arguments and environment variables."""

import structlog

from gitea_workflow.configuration.env import settings
from gitea_workflow.configuration.exceptions import GiteaConnectionConfigurationUndefinedError, RequiredConfigurationElementError
from gitea_workflow.configuration.models import ConnectionConfig

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def validate_gitea_connection_configuration(gitea_api_url: str | None, gitea_token: str | None) -> None:
    """Validates the Gitea connection configuration.

    Args:
        gitea_api_url (str | None): The Gitea API base URL.
        gitea_token (str | None): The Gitea access token.

    Raises:
        GiteaConnectionConfigurationUndefinedError: If the API URL or the token is missing.
    """
    if not gitea_api_url:
        raise GiteaConnectionConfigurationUndefinedError("No Gitea API URL provided. Please set GITEA_API_URL or pass --gitea-api-url.")
    if not gitea_token:
        raise GiteaConnectionConfigurationUndefinedError("No Gitea access token provided. Please set GITEA_TOKEN or pass --gitea-token.")


async def reconcile_connection_configuration(
    cli_repo: str | None,
    cli_debug: bool = False,
    cli_gitea_api_url: str | None = None,
    cli_gitea_token: str | None = None,
    cli_workflow_config_path: str | None = None,
    cli_max_concurrency: int | None = None,
) -> ConnectionConfig:
    """Reconcile CLI arguments with environment settings; CLI values win when provided."""
    repo = cli_repo or settings.REPO
    if not repo:
        raise RequiredConfigurationElementError(name="repository", cli_name="repo", env_name="REPO")
    gitea_api_url = cli_gitea_api_url or settings.GITEA_API_URL
    gitea_token = cli_gitea_token or settings.GITEA_TOKEN
    await validate_gitea_connection_configuration(gitea_api_url, gitea_token)

    config = ConnectionConfig(
        debug=cli_debug or settings.DEBUG,
        gitea_api_url=gitea_api_url,
        gitea_token=gitea_token,  # type: ignore[arg-type]
        repo=repo,
        workflow_config_path=cli_workflow_config_path or settings.WORKFLOW_CONFIG_PATH,
        max_concurrency=cli_max_concurrency or settings.WORKFLOW_MAX_CONCURRENCY,
        request_timeout=settings.WORKFLOW_REQUEST_TIMEOUT,
        max_retries=settings.WORKFLOW_MAX_RETRIES,
    )
    logger.debug("Reconciled connection configuration", repo=config.repo, gitea_api_url=config.gitea_api_url)
    return config
