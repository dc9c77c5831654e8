"""Root conftest.py for the cellgate test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator

import pytest

from cellgate.core.config import get_settings
from cellgate.core.context import RequestContext
from cellgate.core.error_context import _get_sensitive_fields


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Clear cached settings before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Keep correlation IDs and caller identity from leaking between tests."""
    RequestContext.clear()
    yield
    RequestContext.clear()
