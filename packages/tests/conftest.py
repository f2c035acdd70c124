"""Pytest configuration and shared fixtures."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

# Loaded here rather than through an entry point so that the import
# chain happens after pytest-cov starts tracing.
pytest_plugins = ["tiko2mqtt.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (HTTP and MQTT doubles wired together)"
    )


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Undo configure_logging() side effects between tests."""
    root = logging.getLogger()
    level = root.level
    httpx_level = logging.getLogger("httpx").level
    yield
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.getLogger("httpx").setLevel(httpx_level)
