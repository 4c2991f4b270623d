"""
Global pytest Configuration and Fixtures

Shared fixtures for the session lifecycle test suite: a controllable clock, fresh
namespace registries, in-memory stores and ready-made lifecycle managers.

Key Components:
- FakeClock for deterministic timeout tests without sleeping
- Isolated NamespaceRegistry per test so namespaces never leak between tests
- InMemoryBackend / SessionStore fixtures
- Lifecycle manager factory using the short test timeouts (idle 2s, renewal 1s, lifetime 5s)
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest

from sessionward.cache.backends import InMemoryBackend
from sessionward.session.manager import SessionLifecycleManager
from sessionward.session.registry import NamespaceRegistry
from sessionward.session.store import SessionStore


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        "markers",
        "unit: Unit tests with isolated component testing"
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests with external service dependencies"
    )
    config.addinivalue_line(
        "markers",
        "testcontainers: Tests requiring Docker containers"
    )
    config.addinivalue_line(
        "markers",
        "slow: Tests that sleep in real time"
    )


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.current = self.current + timedelta(seconds=seconds, **kwargs)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> Generator[NamespaceRegistry, None, None]:
    namespace_registry = NamespaceRegistry()
    yield namespace_registry
    namespace_registry.clear()


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def store(backend: InMemoryBackend) -> SessionStore:
    return SessionStore(backend)


@pytest.fixture
def make_manager(store, registry, clock) -> Generator[Callable[..., SessionLifecycleManager], None, None]:
    """
    Factory for lifecycle managers sharing the test store, registry and clock.

    Defaults to idle 2s, renewal 1s and lifetime 5s; keyword arguments override
    any constructor argument.
    """
    created = []

    def _make(namespace: str = "test", **kwargs) -> SessionLifecycleManager:
        options = {
            'idle_timeout': timedelta(seconds=2),
            'renewal_timeout': timedelta(seconds=1),
            'lifetime': timedelta(seconds=5),
            'registry': registry,
            'clock': clock,
        }
        options.update(kwargs)
        manager = SessionLifecycleManager(namespace, options.pop('store', store), **options)
        created.append(manager)
        return manager

    yield _make

    for manager in created:
        manager.close()


@pytest.fixture
def manager(make_manager) -> SessionLifecycleManager:
    return make_manager()

