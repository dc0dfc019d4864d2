"""
Trading Strategies

Rule-based baselines, forecast-aware strategies and the rolling-horizon
optimizer, all implementing Strategy.decide().
"""

from .base import Decision, SaleClock, Strategy, forced_liquidation_decision
from .baseline import (
    EqualBatchStrategy,
    ImmediateSaleStrategy,
    MovingAverageStrategy,
    PriceThresholdStrategy
)
from .lp_optimizer import WindowSolution, solve_optimal_liquidation_lp, solve_window_lp
from .prediction import (
    ConsensusStrategy,
    ExpectedValueStrategy,
    ForecastGatedStrategy,
    MovingAveragePredictive,
    PriceThresholdPredictive,
    RiskAdjustedStrategy
)
from .rolling_horizon_mpc import RollingHorizonMPC

__all__ = [
    'Strategy',
    'Decision',
    'SaleClock',
    'forced_liquidation_decision',
    # Baselines
    'ImmediateSaleStrategy',
    'EqualBatchStrategy',
    'PriceThresholdStrategy',
    'MovingAverageStrategy',
    # Forecast-aware
    'ForecastGatedStrategy',
    'PriceThresholdPredictive',
    'MovingAveragePredictive',
    'ExpectedValueStrategy',
    'ConsensusStrategy',
    'RiskAdjustedStrategy',
    # Optimization
    'RollingHorizonMPC',
    'WindowSolution',
    'solve_window_lp',
    'solve_optimal_liquidation_lp'
]
