"""
Harvest Trader

Harvest-aware commodity selling simulator: daily backtests of rule-based,
forecast-aware and rolling-horizon LP strategies under storage and
transaction costs with a hard holding deadline.
"""

from .config import CommodityConfig, get_commodity_config
from .core.backtest_engine import BacktestEngine, calculate_metrics, calculate_metrics_by_year, trades_to_frame
from .exceptions import ConfigurationError, HarvestTraderError, SolverFailure, StateInvariantViolation

__version__ = '1.0.0'

__all__ = [
    'BacktestEngine',
    'CommodityConfig',
    'get_commodity_config',
    'calculate_metrics',
    'calculate_metrics_by_year',
    'trades_to_frame',
    'HarvestTraderError',
    'ConfigurationError',
    'SolverFailure',
    'StateInvariantViolation'
]
