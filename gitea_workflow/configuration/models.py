"""Models for configuration between CLI arguments and environment variables."""

from dataclasses import dataclass


@dataclass
class ConnectionConfig:
    """Connection and execution settings for one invocation of the workflow engine."""

    debug: bool
    gitea_api_url: str
    gitea_token: str
    repo: str
    workflow_config_path: str
    max_concurrency: int
    request_timeout: float
    max_retries: int
