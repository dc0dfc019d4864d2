"""
Technical Indicator Calculations

Momentum (RSI), trend strength (ADX) and ensemble confidence (coefficient of
variation). Insufficient input never raises: each indicator falls back to a
documented neutral value so the daily loop keeps running.
"""

import numpy as np
import pandas as pd

NEUTRAL_RSI = 50.0
NEUTRAL_ADX = (20.0, 0.0, 0.0)
MAX_UNCERTAINTY_CV = 1.0


def _as_prices(prices):
    if isinstance(prices, pd.DataFrame):
        prices = prices['price']
    return np.asarray(prices, dtype=float)


def calculate_rsi(prices, period=14):
    """
    Relative Strength Index over the last `period + 1` prices.

    Args:
        prices: price array, Series, or DataFrame with a 'price' column
        period: RSI period (default 14)

    Returns:
        float in [0, 100]; 50.0 with insufficient history, 100.0 when the
        window contains no losses
    """
    prices = _as_prices(prices)
    if period < 1 or len(prices) < period + 1:
        return NEUTRAL_RSI

    deltas = np.diff(prices[-period - 1:])
    avg_gain = np.mean(np.clip(deltas, 0, None))
    avg_loss = np.mean(np.clip(-deltas, 0, None))

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def calculate_adx(price_history, period=14):
    """
    Average Directional Index (single-window DX form).

    Args:
        price_history: DataFrame with 'price' column (and optionally
                       'high'/'low'), or a plain price array
        period: ADX period (default 14)

    Returns:
        tuple: (adx, plus_di, minus_di); (20.0, 0.0, 0.0) with insufficient history
    """
    if isinstance(price_history, pd.DataFrame):
        close = price_history['price'].to_numpy(dtype=float)
        if 'high' in price_history.columns and 'low' in price_history.columns:
            high = price_history['high'].to_numpy(dtype=float)
            low = price_history['low'].to_numpy(dtype=float)
        else:
            high = low = close
    else:
        close = _as_prices(price_history)
        high = low = close

    if period < 1 or len(close) < period + 1:
        return NEUTRAL_ADX

    true_range = np.maximum(high[1:] - low[1:],
                            np.maximum(np.abs(high[1:] - close[:-1]),
                                       np.abs(low[1:] - close[:-1])))

    up_move = high[1:] - high[:-1]
    down_move = low[:-1] - low[1:]
    plus_dm = np.where(up_move > down_move, np.maximum(up_move, 0), 0.0)
    minus_dm = np.where(down_move > up_move, np.maximum(down_move, 0), 0.0)

    atr = np.mean(true_range[-period:])
    if atr <= 0:
        return 0.0, 0.0, 0.0

    plus_di = 100 * np.mean(plus_dm[-period:]) / atr
    minus_di = 100 * np.mean(minus_dm[-period:]) / atr

    di_sum = plus_di + minus_di
    adx = 100 * abs(plus_di - minus_di) / di_sum if di_sum > 0 else 0.0

    return float(adx), float(plus_di), float(minus_di)


def calculate_std_dev_historical(prices, period=14):
    """Standard deviation of recent simple returns; 0.10 with insufficient history"""
    prices = _as_prices(prices)
    if len(prices) < period + 1:
        return 0.10

    recent = prices[-period - 1:]
    returns = np.diff(recent) / recent[:-1]
    return float(np.std(returns))


def calculate_prediction_confidence(predictions, horizon_day):
    """
    Ensemble confidence as coefficient of variation at one horizon.

    cv = population std / median of the ensemble column `horizon_day`
    (0-indexed, clipped to the last available column).

    Returns:
        float: cv, or 1.0 (maximum uncertainty) for a missing/empty ensemble
        or a non-positive median
    """
    if predictions is None or predictions.size == 0:
        return MAX_UNCERTAINTY_CV

    predictions = np.atleast_2d(predictions)
    horizon_day = min(max(horizon_day, 0), predictions.shape[1] - 1)

    day_predictions = predictions[:, horizon_day]
    median_pred = np.median(day_predictions)
    if median_pred <= 0:
        return MAX_UNCERTAINTY_CV

    return float(np.std(day_predictions) / median_pred)


def ensemble_median_path(predictions):
    """Median price per horizon day across ensemble paths"""
    return np.median(np.atleast_2d(predictions), axis=0)


def calculate_rsi_predicted(predictions, period=14):
    """RSI on the ensemble median trajectory"""
    if predictions is None or predictions.size == 0:
        return NEUTRAL_RSI

    path = ensemble_median_path(predictions)
    return calculate_rsi(path, period=min(period, len(path) - 1))


def calculate_adx_predicted(predictions, period=14):
    """ADX on the ensemble median trajectory"""
    if predictions is None or predictions.size == 0:
        return NEUTRAL_ADX

    path = ensemble_median_path(predictions)
    return calculate_adx(pd.DataFrame({'price': path}), period=min(period, len(path) - 1))
