"""Pytest configuration and shared fixtures."""

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.registry import GameRegistry  # noqa: E402


def make_timeline(days=3, prices=None, start=date(2025, 4, 9)):
    """Ordered {date: {symbol: price}} with the same prices every day."""
    prices = prices or {"AAPL": 100.0, "TSLA": 200.0}
    return {start + timedelta(days=i): dict(prices) for i in range(days)}


class FakeClock:
    """Millisecond clock the tests can move by hand."""

    def __init__(self, start=1_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def timeline():
    return make_timeline()


@pytest.fixture
def registry():
    return GameRegistry()


@pytest.fixture
def clock():
    return FakeClock()
