# tests/conftest.py
"""
Shared Test Fixtures

Provides an in-memory store, a local notification center, a controllable
clock, a task registry and a fake rate-fetch collaborator for the service
tests.

Files that USE this module:
- pytest (fixtures are injected into tests by name)

Files that this module USES:
- fxpad.adapters.persistence (InMemoryStore)
- fxpad.adapters.notifications (LocalNotificationCenter)
- fxpad.application.task_registry (TaskRegistry)
"""
from datetime import datetime, timedelta  # Clock values for deterministic tests

import pytest  # Testing framework for writing and running tests

from fxpad.adapters.notifications import LocalNotificationCenter
from fxpad.adapters.persistence import InMemoryStore
from fxpad.application.task_registry import TaskRegistry


class FixedClock:
    """Callable clock returning a settable aware datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRates:
    """Stands in for ExchangeRatesService; `rates = None` simulates an outage, `error` a crash."""

    def __init__(self, rates=None):
        self.rates = rates
        self.error = None
        self.calls = 0

    async def fetch_global_exchange_rates(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.rates) if self.rates else None


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifications():
    return LocalNotificationCenter()


@pytest.fixture
def clock():
    # 09:30 local time, so "today" is unambiguous in every timezone
    return FixedClock(datetime(2024, 5, 1, 9, 30).astimezone())


@pytest.fixture
def registry(store, clock):
    return TaskRegistry(store, clock=clock)


@pytest.fixture
def rates():
    return FakeRates({"USD": 1.0, "KES": 130.0, "EUR": 0.9, "GBP": 0.8})
