"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest
from pytest_mock import MockerFixture, MockType
from sqlalchemy.ext.asyncio import AsyncSession

from cellgate.core.config import Settings
from cellgate.gateway.context import CellContext, build_cell_context
from cellgate.infrastructure.cache import MemoryCacheStore
from tests.fixtures.cell_fakes import ManualClock


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[pytest.MonkeyPatch]:
    """Remove app-specific environment variables for the duration of a test.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "DATABASE_CONFIG__",
        "CACHE_CONFIG__",
        "TAX_CONFIG__",
        "GATEWAY_CONFIG__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults and tracing off."""
    test_settings = Settings(environment="development", debug=False)
    test_settings.observability_config.enable_tracing = False
    return test_settings


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> MemoryCacheStore:
    return MemoryCacheStore(max_entries=100, clock=clock)


@pytest.fixture
def cell_context(
    settings: Settings, cache: MemoryCacheStore, mocker: MockerFixture
) -> CellContext:
    """A context with an empty router and no database engine."""
    return build_cell_context(
        settings, session_factory=mocker.MagicMock(name="session_factory"), cache=cache
    )


@pytest.fixture
def db_session(mocker: MockerFixture) -> MockType:
    """An ``AsyncSession`` mock whose ``execute`` returns a configurable result."""
    session = mocker.AsyncMock(spec=AsyncSession)
    session.add = mocker.MagicMock()
    session.execute.return_value = mocker.MagicMock(name="result")
    return session


@pytest.fixture
def session_factory(mocker: MockerFixture, db_session: MockType) -> MockType:
    """A session factory whose sessions all resolve to ``db_session``."""
    factory = mocker.MagicMock(name="session_factory")
    factory.return_value.__aenter__.return_value = db_session
    factory.return_value.__aexit__.return_value = False
    return factory
