"""Shared fixtures for regime allocation tests."""

import pandas as pd
import pytest


@pytest.fixture
def make_dates():
    """Factory for consecutive business-day dates."""
    def _make(n, start="2023-01-02"):
        return list(pd.bdate_range(start, periods=n).date)
    return _make


@pytest.fixture
def rising_prices():
    """60 strictly increasing prices."""
    return [100.0 + i for i in range(60)]


@pytest.fixture
def drop_scenario_prices():
    """
    Choppy start with a sharp drop, then steady 0.1% daily growth.

    100, 102, 101, 105, 104, 110, 90, 85, 95, 100, then 100 * 1.001^k.
    60 prices, 59 returns.
    """
    head = [100.0, 102.0, 101.0, 105.0, 104.0, 110.0, 90.0, 85.0, 95.0, 100.0]
    tail = [100.0 * 1.001 ** k for k in range(1, 51)]
    return head + tail


@pytest.fixture
def momentum_returns():
    """Calm 0.1% days with three consecutive -1% days at indices 30-32."""
    return [0.001] * 30 + [-0.01] * 3 + [0.001] * 37


@pytest.fixture
def choppy_returns():
    """Alternating +/-3% days: high volatility with no net momentum."""
    return [0.03, -0.03] * 30
