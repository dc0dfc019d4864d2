"""
Shared Test Fixtures
Provides reusable price series, forecast ensembles and commodity configs
"""

import numpy as np
import pandas as pd
import pytest

from harvest_trader.config import get_commodity_config


@pytest.fixture
def coffee_config():
    """Coffee: 50 tons over May-September (153 days)"""
    return get_commodity_config('coffee')


@pytest.fixture
def flat_prices():
    """One non-leap year of constant daily prices"""
    dates = pd.date_range('2022-01-01', '2022-12-31', freq='D')
    return pd.DataFrame({'date': dates, 'price': 150.0})


@pytest.fixture
def daily_prices():
    """
    Two years of daily prices (random walk, fixed seed)

    Returns:
        DataFrame with columns ['date', 'price']
    """
    rng = np.random.default_rng(7)
    dates = pd.date_range('2022-01-01', '2023-12-31', freq='D')
    prices = 150 + np.cumsum(rng.normal(0, 1.5, len(dates)))
    return pd.DataFrame({'date': dates, 'price': np.clip(prices, 50, None)})


@pytest.fixture
def daily_predictions(daily_prices):
    """
    Ensemble for every date: 30 paths x 14 horizons around the day's price

    Returns:
        Dict mapping {timestamp: numpy_array(30, 14)}
    """
    rng = np.random.default_rng(11)
    return {
        pd.Timestamp(date): price * (1 + rng.normal(0.002, 0.03, (30, 14)))
        for date, price in zip(daily_prices['date'], daily_prices['price'])
    }


@pytest.fixture
def history_factory():
    """Build a price history DataFrame from a list of prices"""
    def make_history(prices, start='2024-01-01'):
        return pd.DataFrame({
            'date': pd.date_range(start, periods=len(prices), freq='D'),
            'price': np.asarray(prices, dtype=float)
        })
    return make_history


@pytest.fixture
def ensemble_factory():
    """
    Build an ensemble whose median is `center` and whose coefficient of
    variation is exactly `cv` at every horizon
    """
    def make_ensemble(center, cv, n_paths=100, horizon=14):
        z = np.linspace(-1.0, 1.0, n_paths)
        z = z / z.std()
        column = center * (1 + cv * z)
        return np.tile(column[:, None], (1, horizon))
    return make_ensemble
