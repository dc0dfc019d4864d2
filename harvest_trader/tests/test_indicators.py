"""
Unit Tests for Technical Indicators
"""

import numpy as np
import pandas as pd
import pytest

from harvest_trader.strategies.indicators import (
    NEUTRAL_ADX,
    NEUTRAL_RSI,
    calculate_adx,
    calculate_adx_predicted,
    calculate_prediction_confidence,
    calculate_rsi,
    calculate_rsi_predicted,
    calculate_std_dev_historical
)


class TestRSI:

    def test_insufficient_history_is_neutral(self):
        assert calculate_rsi([100, 101, 102], period=14) == NEUTRAL_RSI

    def test_only_gains(self):
        assert calculate_rsi(np.arange(100, 120), period=14) == 100.0

    def test_only_losses(self):
        assert calculate_rsi(np.arange(120, 100, -1), period=14) == pytest.approx(0.0)

    def test_known_value(self):
        # gains [1], losses [0.5] -> rs = 2 -> 66.67
        assert calculate_rsi([10.0, 11.0, 10.5], period=2) == pytest.approx(200 / 3)

    def test_uses_last_window_only(self):
        prices = list(np.arange(50, 10, -1)) + [100, 101]
        assert calculate_rsi(prices, period=1) == 100.0

    def test_accepts_dataframe(self, history_factory):
        history = history_factory(np.arange(100, 120))
        assert calculate_rsi(history) == 100.0


class TestADX:

    def test_insufficient_history_is_neutral(self, history_factory):
        assert calculate_adx(history_factory([100] * 5)) == NEUTRAL_ADX

    def test_flat_prices(self, history_factory):
        assert calculate_adx(history_factory([100] * 30)) == (0.0, 0.0, 0.0)

    def test_steady_uptrend(self, history_factory):
        adx, plus_di, minus_di = calculate_adx(history_factory(np.arange(100, 130)))
        assert adx == pytest.approx(100.0)
        assert plus_di > minus_di

    def test_steady_downtrend(self, history_factory):
        adx, plus_di, minus_di = calculate_adx(history_factory(np.arange(130, 100, -1)))
        assert adx == pytest.approx(100.0)
        assert minus_di > plus_di

    def test_uses_high_low_when_present(self):
        history = pd.DataFrame({
            'price': np.full(20, 100.0),
            'high': np.full(20, 101.0),
            'low': np.full(20, 99.0)
        })
        adx, plus_di, minus_di = calculate_adx(history)
        # Constant range, no directional movement
        assert (adx, plus_di, minus_di) == (0.0, 0.0, 0.0)

    def test_accepts_array(self):
        adx, _, _ = calculate_adx(np.arange(100, 130, dtype=float))
        assert adx == pytest.approx(100.0)


class TestHistoricalVolatility:

    def test_insufficient_history_default(self):
        assert calculate_std_dev_historical([100, 101]) == 0.10

    def test_constant_returns(self):
        prices = 100 * 1.01 ** np.arange(20)
        assert calculate_std_dev_historical(prices) == pytest.approx(0.0, abs=1e-12)


class TestPredictionConfidence:

    def test_missing_ensemble_is_max_uncertainty(self):
        assert calculate_prediction_confidence(None, 13) == 1.0
        assert calculate_prediction_confidence(np.empty((0, 14)), 13) == 1.0

    def test_known_cv(self, ensemble_factory):
        predictions = ensemble_factory(100.0, 0.08)
        assert calculate_prediction_confidence(predictions, 13) == pytest.approx(0.08)

    def test_horizon_clipped_to_width(self, ensemble_factory):
        predictions = ensemble_factory(100.0, 0.08, horizon=5)
        assert calculate_prediction_confidence(predictions, 50) == pytest.approx(0.08)

    def test_reads_requested_column(self, ensemble_factory):
        predictions = ensemble_factory(100.0, 0.02)
        predictions[:, 3] = ensemble_factory(100.0, 0.3)[:, 0]
        assert calculate_prediction_confidence(predictions, 3) == pytest.approx(0.3)
        assert calculate_prediction_confidence(predictions, 13) == pytest.approx(0.02)

    def test_non_positive_median(self):
        predictions = np.full((10, 14), -5.0)
        assert calculate_prediction_confidence(predictions, 13) == 1.0


class TestPredictedIndicators:

    def test_rsi_on_rising_median_path(self):
        path = np.arange(100, 114, dtype=float)
        predictions = np.tile(path, (20, 1))
        assert calculate_rsi_predicted(predictions) == 100.0

    def test_adx_on_rising_median_path(self):
        path = np.arange(100, 114, dtype=float)
        predictions = np.tile(path, (20, 1))
        adx, plus_di, minus_di = calculate_adx_predicted(predictions)
        assert adx == pytest.approx(100.0)
        assert plus_di > minus_di

    def test_missing_predictions_neutral(self):
        assert calculate_rsi_predicted(None) == NEUTRAL_RSI
        assert calculate_adx_predicted(None) == NEUTRAL_ADX
