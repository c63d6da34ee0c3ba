"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from personalization.analytics import InMemoryAnalyticsSink  # noqa: E402
from personalization.core.clock import FixedClock  # noqa: E402
from personalization.core.ids import CounterIdGenerator  # noqa: E402
from personalization.engine import PersonalizationEngine  # noqa: E402
from personalization.models import UserProfile  # noqa: E402
from personalization.repositories.memory import InMemoryCatalogStore, InMemoryProfileStore  # noqa: E402
from tests.helpers import START, make_event, sample_catalog_items  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (sqlite / in-process HTTP)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def ids():
    return CounterIdGenerator()


@pytest.fixture
def catalog():
    return InMemoryCatalogStore(sample_catalog_items())


@pytest.fixture
def profiles():
    return InMemoryProfileStore(
        [
            UserProfile(
                user_id="user-1",
                region="US",
                age=25,
                taste_preferences=frozenset({"berry", "citrus"}),
                cultural_flavors=frozenset({"sweet"}),
            ),
        ]
    )


@pytest.fixture
def sink():
    return InMemoryAnalyticsSink()


@pytest.fixture
def engine(profiles, catalog, clock, ids, sink):
    """Fully in-memory engine on a fixed clock."""
    return PersonalizationEngine(
        profiles,
        catalog,
        analytics=sink,
        clock=clock,
        id_generator=ids,
        cache_ttl_seconds=300,
    )


@pytest.fixture
def event_factory():
    return make_event
