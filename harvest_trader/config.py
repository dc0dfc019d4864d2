"""
Harvest Trader Configuration

Default commodity and strategy parameters, plus the CommodityConfig
dataclass that validates a commodity configuration before any simulation.

Default tables are read-only; use `thaw()` (or the get_* helpers) to obtain a
private, mutable copy for a run.
"""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .core.costs import CENTS_PER_LB_TO_DOLLARS_PER_TON, CostParameters
from .core.harvest import normalize_windows
from .core.logger import get_logger
from .exceptions import ConfigurationError

logger = get_logger(__name__)


def _freeze(value):
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value):
    """Deep, mutable copy of a (possibly read-only) parameter table"""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(thaw(v) for v in value)
    return value


# =============================================================================
# COMMODITY CONFIGURATIONS
# =============================================================================

COMMODITY_CONFIGS = _freeze({
    'coffee': {
        'commodity': 'coffee',
        'harvest_volume': 50,                # tons per year
        'harvest_windows': [(5, 9)],         # May-September (153 days)
        'storage_cost_pct_per_day': 0.005,   # 0.005% per day
        'transaction_cost_pct': 0.01,        # 0.01% per sale
        'min_inventory_to_trade': 1.0,
        'max_holding_days': 365
    },
    'sugar': {
        'commodity': 'sugar',
        'harvest_volume': 50,
        'harvest_windows': [(10, 12)],       # October-December
        'storage_cost_pct_per_day': 0.005,
        'transaction_cost_pct': 0.01,
        'min_inventory_to_trade': 1.0,
        'max_holding_days': 365
    }
})

# =============================================================================
# STRATEGY PARAMETERS
# =============================================================================

# Rule-based strategies (no forecasts)
BASELINE_PARAMS = _freeze({
    'immediate_sale': {
        'min_batch_size': 5.0,
        'sale_frequency_days': 7
    },
    'equal_batch': {
        'batch_size': 0.25,
        'frequency_days': 30
    },
    'price_threshold': {
        'threshold_pct': 0.05,
        'ma_window': 30
    },
    'moving_average': {
        'ma_period': 30
    }
})

# Forecast-aware and optimization strategies. Cost parameters are injected
# from the commodity config at strategy construction time.
PREDICTION_PARAMS = _freeze({
    'consensus': {
        'consensus_threshold': 0.70,
        'evaluation_day': 14
    },
    'expected_value': {
        'min_net_benefit_pct': 0.5
    },
    'risk_adjusted': {
        'min_return': 0.03,
        'max_uncertainty_low': 0.05,
        'max_uncertainty_medium': 0.10,
        'max_uncertainty_high': 0.20
    },
    'price_threshold_predictive': {
        'threshold_pct': 0.05
    },
    'moving_average_predictive': {
        'ma_period': 30
    },
    'rolling_horizon_mpc': {
        'horizon_days': 14,
        'terminal_value_decay': 0.95,
        'shadow_price_smoothing': None   # None = decayed price; 0.1-0.5 = smoothed dual
    }
})

ANALYSIS_CONFIG = _freeze({
    'forecast_horizon': 14,
    'lp_time_limit_seconds': 10.0,
    'liquidate_at_end': True
})


def get_commodity_config(commodity: str) -> Dict[str, Any]:
    if commodity not in COMMODITY_CONFIGS:
        raise ConfigurationError(
            f"Unknown commodity: {commodity}. Available: {list(COMMODITY_CONFIGS.keys())}")
    return thaw(COMMODITY_CONFIGS[commodity])


def get_baseline_params() -> Dict[str, Dict[str, Any]]:
    return thaw(BASELINE_PARAMS)


def get_prediction_params() -> Dict[str, Dict[str, Any]]:
    return thaw(PREDICTION_PARAMS)


# =============================================================================
# VALIDATED COMMODITY CONFIG
# =============================================================================

_REQUIRED_KEYS = ('harvest_volume', 'harvest_windows',
                  'storage_cost_pct_per_day', 'transaction_cost_pct')


@dataclass(frozen=True)
class CommodityConfig:
    """
    Validated per-commodity configuration.

    Construction fails with ConfigurationError on malformed harvest windows,
    negative costs or a non-positive holding limit, so a bad configuration
    aborts before any simulation day runs.
    """
    commodity: str
    harvest_volume: float
    harvest_windows: Tuple
    storage_cost_pct_per_day: float
    transaction_cost_pct: float
    min_inventory_to_trade: float = 1.0
    max_holding_days: int = 365
    price_multiplier: float = CENTS_PER_LB_TO_DOLLARS_PER_TON
    costs: CostParameters = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.harvest_volume <= 0:
            raise ConfigurationError(f"harvest_volume must be positive, got {self.harvest_volume}")
        if self.min_inventory_to_trade < 0:
            raise ConfigurationError(
                f"min_inventory_to_trade must be >= 0, got {self.min_inventory_to_trade}")
        if self.price_multiplier <= 0:
            raise ConfigurationError(f"price_multiplier must be positive, got {self.price_multiplier}")

        object.__setattr__(self, 'harvest_windows', tuple(normalize_windows(self.harvest_windows)))
        object.__setattr__(self, 'costs', CostParameters(
            storage_cost_pct_per_day=self.storage_cost_pct_per_day,
            transaction_cost_pct=self.transaction_cost_pct,
            max_holding_days=self.max_holding_days
        ))

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> 'CommodityConfig':
        if isinstance(config, CommodityConfig):
            return config

        missing = [key for key in _REQUIRED_KEYS if key not in config]
        if missing:
            raise ConfigurationError(f"Commodity config missing keys: {missing}")

        known = {'commodity', 'min_inventory_to_trade', 'max_holding_days',
                 'price_multiplier', *_REQUIRED_KEYS}
        unknown = set(config) - known
        if unknown:
            logger.debug(f"Ignoring unknown commodity config keys: {sorted(unknown)}")

        kwargs = {key: config[key] for key in known if key in config}
        kwargs.setdefault('commodity', 'unknown')
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'commodity': self.commodity,
            'harvest_volume': self.harvest_volume,
            'harvest_windows': list(self.harvest_windows),
            'storage_cost_pct_per_day': self.storage_cost_pct_per_day,
            'transaction_cost_pct': self.transaction_cost_pct,
            'min_inventory_to_trade': self.min_inventory_to_trade,
            'max_holding_days': self.max_holding_days,
            'price_multiplier': self.price_multiplier
        }


# =============================================================================
# OPTIMIZED PARAMETER OVERRIDES
# =============================================================================

def load_params_json(path: str, defaults: Optional[Mapping[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Merge optimized strategy parameters from a JSON file over defaults.

    JSON format:
        {'strategies': {strategy_key: {'parameters': {...}, 'best_value': ...}}}

    Args:
        path: JSON file path
        defaults: parameter table to merge into (default: baseline + prediction params)

    Returns:
        Dict of {strategy_key: params}
    """
    if defaults is None:
        merged = {**get_baseline_params(), **get_prediction_params()}
    else:
        merged = thaw(defaults)

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read optimized parameters from {path}: {e}") from e

    strategies = data.get('strategies', {})
    for strategy_key, strategy_data in strategies.items():
        merged.setdefault(strategy_key, {}).update(strategy_data.get('parameters', {}))

    logger.info(f"Loaded optimized parameters for {len(strategies)} strategies from {path}")
    return merged
