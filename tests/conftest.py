"""Root test configuration."""

import logging

import pytest
import structlog

from keelson.api import (
    APIServerConfiguration,
    ManagedControlPlane,
    ManagedControlPlaneComponents,
    ManagedControlPlaneSpec,
)
from keelson.components import default_registry
from keelson.config import Settings
from keelson.context import OperatorContext
from keelson.store import InMemoryStore


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def ctx(store, settings):
    return OperatorContext(store=store, registry=default_registry(), settings=settings)


@pytest.fixture
def mcp():
    """ManagedControlPlane with an APIServer, not yet stored."""
    return ManagedControlPlane.new(
        "test",
        "default",
        spec=ManagedControlPlaneSpec(
            components=ManagedControlPlaneComponents(api_server=APIServerConfiguration()),
        ),
    )
