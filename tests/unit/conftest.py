"""Fixtures for unit tests."""

from datetime import datetime
from typing import Any, Generator

import pytest
import structlog

from gitea_workflow.processing.defaults import generate_default_config
from gitea_workflow.schemas.workflow import WorkflowConfig
from tests.unit.utils import NOW, minimal_config_document


@pytest.fixture(autouse=True)
def configure_structlog_for_caplog() -> Generator[None, None, None]:
    """Configure structlog for use with caplog."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def config_document() -> dict[str, Any]:
    """A small, valid workflow policy document."""
    return minimal_config_document()


@pytest.fixture
def config() -> WorkflowConfig:
    """The small workflow policy, validated."""
    return WorkflowConfig.model_validate(minimal_config_document())


@pytest.fixture
def default_config() -> WorkflowConfig:
    """The default workflow policy generated for a backend project."""
    return generate_default_config()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return NOW
