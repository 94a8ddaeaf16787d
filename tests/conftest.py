# tests/conftest.py
"""
Pytest Configuration and Shared Fixtures
========================================

Fixtures provided:
- clock: Controllable time source for cache expiry
- cache: MemoryCache driven by the fake clock
- registry: Fresh ModuleRegistry (process-wide registry reset around the test)
- database: Initialized in-memory SQLite DatabaseManager with tables
- repositories: Cached domain repositories over the test database
- sample_data: Seeded users, project, tasks, expenses, notes and files
"""

import logging
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from studiodash.config import ConfigurationManager, DatabaseSettings, RetrySettings
from studiodash.core import DashboardWidget, MemoryCache, Module, ModuleRegistry, NavItem
from studiodash.database import DatabaseManager
from studiodash.repositories import Repositories, create_cached_repositories
from studiodash.seed import seed_sample_data

from . import TEST_DATABASE_URL

# Reduce noise from external libraries during testing
logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
logging.getLogger('asyncio').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that use the SQLite test database"
    )


def pytest_collection_modifyitems(config, items):
    """Mark database-backed tests as integration tests."""
    for item in items:
        if "database" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.integration)


# ==================== TEST UTILITIES ====================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_module(
    module_id: str,
    enabled: bool = True,
    nav_labels: Optional[List[str]] = None,
    widget_priorities: Optional[List[int]] = None,
    initialize: Any = None,
) -> Module:
    """Build a module with generated nav items and widgets."""
    nav_items = [
        NavItem(label=label, href=f"/dashboard/{module_id}/{label.lower()}", icon="circle")
        for label in (nav_labels or [])
    ]
    widgets = None
    if widget_priorities is not None:
        widgets = [
            DashboardWidget(title=f"{module_id}-{priority}", priority=priority, component=f"{module_id}Widget")
            for priority in widget_priorities
        ]
    return Module(
        id=module_id,
        name=module_id.title(),
        description=f"{module_id} module",
        enabled=enabled,
        icon="circle",
        nav_items=nav_items,
        widgets=widgets,
        initialize=initialize,
    )


# ==================== CORE FIXTURES ====================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> MemoryCache:
    """MemoryCache with the default 60 second TTL and a fake clock."""
    return MemoryCache(clock=clock)


@pytest.fixture
def registry():
    """Fresh registry; the process-wide instance is reset before and after."""
    ModuleRegistry.reset_instance()
    yield ModuleRegistry()
    ModuleRegistry.reset_instance()


@pytest.fixture(autouse=True)
def reset_configuration():
    """Forget any configuration loaded by a previous test."""
    ConfigurationManager.reset()
    yield
    ConfigurationManager.reset()


# ==================== DATABASE FIXTURES ====================

@pytest.fixture
def retry_settings() -> RetrySettings:
    return RetrySettings(max_retries=3, initial_delay=0.001)


@pytest.fixture
def database(retry_settings):
    """
    In-memory SQLite database with all tables created.

    Yields:
        DatabaseManager: Initialized manager, closed after the test
    """
    manager = DatabaseManager(DatabaseSettings(url=TEST_DATABASE_URL), retry_settings)
    manager.initialize()
    manager.create_tables()
    logger.debug("Created test database")

    yield manager

    manager.close()
    logger.debug("Closed test database")


@pytest.fixture
def repositories(database, cache) -> Repositories:
    return create_cached_repositories(database, cache=cache, default_ttl=300)


@pytest_asyncio.fixture
async def sample_data(repositories) -> Dict[str, str]:
    """
    Seed the sample studio data.

    Returns:
        Ids of the admin user, the member user and the project
    """
    ids = await seed_sample_data(repositories)
    repositories.invalidate_all()
    return ids
