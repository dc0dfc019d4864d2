"""
Forecast signal analysis shared by the forecast-aware strategies.

All thresholds are percentages of the current price, so decisions are
scale-invariant across commodities.
"""

from dataclasses import dataclass

import numpy as np

from ..core.costs import storage_cost, transaction_cost
from .indicators import calculate_prediction_confidence

HIGH = 'HIGH'
MEDIUM = 'MEDIUM'
LOW = 'LOW'

STRONG_UPWARD = 'STRONG_UPWARD'
MODERATE_UPWARD = 'MODERATE_UPWARD'
NEUTRAL = 'NEUTRAL'
MODERATE_DOWNWARD = 'MODERATE_DOWNWARD'
STRONG_DOWNWARD = 'STRONG_DOWNWARD'

UPWARD = (STRONG_UPWARD, MODERATE_UPWARD)
DOWNWARD = (STRONG_DOWNWARD, MODERATE_DOWNWARD)


@dataclass(frozen=True)
class ForecastSignal:
    confidence: str
    direction: str
    net_benefit_pct: float
    cv: float
    optimal_day: int


def has_ensemble(predictions) -> bool:
    return predictions is not None and np.size(predictions) > 0


def find_optimal_sale_day(current_price, predictions, storage_rate, transaction_rate):
    """
    Best horizon day to sell one ton, net of storage and transaction costs.

    ev(h) = median(predictions[:, h]) - storage(h + 1 days) - transaction(median)
    ev_today = current_price - transaction(current_price)

    Storage is charged on today's price for each day waited.

    Returns:
        tuple: (optimal_day (0-indexed), net_benefit_pct)
    """
    predictions = np.atleast_2d(predictions)
    medians = np.median(predictions, axis=0)
    days_to_wait = np.arange(1, predictions.shape[1] + 1)

    ev_by_day = (medians
                 - storage_cost(1.0, current_price, storage_rate, days_to_wait)
                 - transaction_cost(1.0, medians, transaction_rate))
    ev_today = current_price - transaction_cost(1.0, current_price, transaction_rate)

    optimal_day = int(np.argmax(ev_by_day))
    net_benefit_pct = 100 * (ev_by_day[optimal_day] - ev_today) / current_price
    return optimal_day, float(net_benefit_pct)


def classify_confidence(cv, high_confidence_cv=0.05, medium_confidence_cv=0.15) -> str:
    # A cv exactly on a cutoff falls in the less confident tier
    if cv < high_confidence_cv:
        return HIGH
    if cv < medium_confidence_cv:
        return MEDIUM
    return LOW


def classify_direction(net_benefit_pct,
                       strong_positive_threshold=2.0,
                       strong_negative_threshold=-1.0,
                       moderate_threshold=0.5) -> str:
    if net_benefit_pct > strong_positive_threshold:
        return STRONG_UPWARD
    if net_benefit_pct > moderate_threshold:
        return MODERATE_UPWARD
    if net_benefit_pct < strong_negative_threshold:
        return STRONG_DOWNWARD
    if net_benefit_pct < -moderate_threshold:
        return MODERATE_DOWNWARD
    return NEUTRAL


def analyze_forecast(current_price, predictions, storage_rate, transaction_rate,
                     high_confidence_cv=0.05,
                     medium_confidence_cv=0.15,
                     strong_positive_threshold=2.0,
                     strong_negative_threshold=-1.0,
                     moderate_threshold=0.5,
                     confidence_horizon_day=13) -> ForecastSignal:
    """
    Direction, magnitude and confidence of an ensemble forecast.

    Confidence is the ensemble CV at `confidence_horizon_day` (0-indexed,
    clipped to the forecast width).
    """
    optimal_day, net_benefit_pct = find_optimal_sale_day(
        current_price, predictions, storage_rate, transaction_rate)
    cv = calculate_prediction_confidence(predictions, horizon_day=confidence_horizon_day)

    return ForecastSignal(
        confidence=classify_confidence(cv, high_confidence_cv, medium_confidence_cv),
        direction=classify_direction(net_benefit_pct, strong_positive_threshold,
                                     strong_negative_threshold, moderate_threshold),
        net_benefit_pct=net_benefit_pct,
        cv=cv,
        optimal_day=optimal_day
    )


def horizon_outlook(current_price, predictions, evaluation_day, storage_rate, transaction_rate):
    """
    Single-horizon view used by Consensus and Risk-Adjusted.

    Args:
        evaluation_day: 1-based forecast day (14 = two weeks out), clipped to
                        the forecast width

    Returns:
        dict: eval_index, day_predictions, expected_return, net_benefit_pct, cv
    """
    predictions = np.atleast_2d(predictions)
    eval_index = min(max(evaluation_day - 1, 0), predictions.shape[1] - 1)
    day_predictions = predictions[:, eval_index]

    expected_return = (np.median(day_predictions) - current_price) / current_price
    days_to_wait = eval_index + 1
    net_benefit_pct = 100 * (expected_return - storage_rate * days_to_wait - transaction_rate)

    return {
        'eval_index': eval_index,
        'day_predictions': day_predictions,
        'expected_return': float(expected_return),
        'net_benefit_pct': float(net_benefit_pct),
        'cv': calculate_prediction_confidence(predictions, eval_index)
    }
