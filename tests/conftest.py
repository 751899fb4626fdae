"""
Pytest Configuration and Fixtures for Guildhall Tests
=====================================================

Purpose
-------
Centralized test fixtures and configuration for the Guildhall test suite.
Provides reusable fixtures for the database, the service container and mocks.

Responsibilities
----------------
- Point the configuration at a throwaway environment before ``src`` loads
- One SQLite file database per integration test (aiosqlite driver)
- Fully initialized ServiceContainer over that database
- Mock collaborators for unit tests

Non-Responsibilities
--------------------
- Test implementation (delegated to test files)
- Test data builders (see ``tests/factories.py``)

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests run the real services against SQLite; every test gets
  a fresh database file, so no cleanup between tests is needed
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

# Must run before ``src`` is imported: Config loads and validates on import
os.environ["ENVIRONMENT"] = "testing"
os.environ["TESTING"] = "true"
os.environ.setdefault("LOGS_DIR", str(Path(tempfile.gettempdir()) / "guildhall-test-logs"))

import pytest
import pytest_asyncio

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.core.services.container import ServiceContainer
from src.modules.notification.identity import StaticIdentityLookup

logger = get_logger(__name__)

CONFIG_DIR = Config.PROJECT_ROOT / "config"


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def community_config():
    """
    Fresh ConfigManager state loaded from the repository's YAML defaults.

    Scope: function (tests may override keys without leaking)
    """
    ConfigManager.clear_cache()
    ConfigManager.load_defaults(CONFIG_DIR)
    yield ConfigManager
    ConfigManager.clear_cache()


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialize DatabaseService against a new SQLite file and create the schema.

    Scope: function (clean slate per test)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'guildhall.db'}"
    await DatabaseService.shutdown()
    await DatabaseService.initialize(url)
    await DatabaseService.create_all()

    yield DatabaseService

    await DatabaseService.shutdown()


@pytest.fixture
def event_bus(community_config) -> EventBus:
    return EventBus(community_config)


@pytest.fixture
def identity_lookup() -> StaticIdentityLookup:
    return StaticIdentityLookup({1: "Ada", 2: "Grace", 3: "Linus"})


@pytest_asyncio.fixture
async def container(
    database,
    community_config,
    event_bus,
    identity_lookup,
) -> AsyncGenerator[ServiceContainer, None]:
    """
    ServiceContainer with every community service wired to the test database.

    Scope: function
    """
    services = ServiceContainer(
        community_config,
        event_bus,
        get_logger("tests.container"),
        identity_lookup=identity_lookup,
    )
    await services.initialize()

    yield services

    await event_bus.drain()
    await services.shutdown()


@pytest.fixture
def recorded_events(event_bus):
    """Collect every published event as ``(event_name, payload)``."""
    events: list[tuple[str, dict]] = []
    original = event_bus.publish

    async def _publish_spy(event_name, data):
        events.append((event_name, dict(data)))
        return await original(event_name, data)

    event_bus.publish = _publish_spy  # type: ignore[method-assign]
    return events


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests that need to mock event publishing
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock()
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager for unit tests.

    ``values`` on the returned mock maps dot-notation keys to overrides;
    anything else falls back to the caller's default.
    """
    mock_config = mocker.MagicMock()
    mock_config.values = {}
    mock_config.get = mocker.MagicMock(
        side_effect=lambda key, default=None: mock_config.values.get(key, default)
    )
    return mock_config
