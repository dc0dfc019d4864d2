"""
Multi-Commodity Runner
Runs independent (commodity, model version) backtests in parallel

Each run builds its own engine, strategies and LP solves; runs share only
read-only inputs, so they can go to separate processes. Every commodity config
is validated before the first run starts. ConfigurationError and
StateInvariantViolation abort the whole batch; any other failing run is logged
and recorded without stopping the others.
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd

from ..config import COMMODITY_CONFIGS, CommodityConfig, thaw
from ..core.logger import get_logger
from ..exceptions import ConfigurationError, StateInvariantViolation
from .strategy_runner import StrategyRunner

logger = get_logger(__name__)

EXECUTORS = ('process', 'thread', 'inline')

# Raised out of run_all instead of being recorded as a per-run failure
FATAL_ERRORS = (ConfigurationError, StateInvariantViolation)


def run_commodity_model(
    commodity: str,
    model_version: str,
    prices: pd.DataFrame,
    prediction_matrices: Dict[Any, Any],
    commodity_config: Dict[str, Any],
    baseline_params: Optional[Dict[str, Any]] = None,
    prediction_params: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Run all strategies for a single commodity-model pair.

    Module-level so it can be shipped to a worker process.
    """
    runner = StrategyRunner(
        prices=prices,
        prediction_matrices=prediction_matrices,
        commodity_config=commodity_config,
        baseline_params=baseline_params,
        prediction_params=prediction_params
    )

    results_dict, metrics_df = runner.run_all_strategies(commodity, model_version)
    analysis = runner.analyze_best_performers(metrics_df, commodity, model_version)

    return {
        'commodity': commodity,
        'model_version': model_version,
        'results_df': metrics_df,
        'results_by_year_df': runner.metrics_by_year(results_dict),
        'results_dict': results_dict,
        'best_baseline': analysis['best_baseline'],
        'best_prediction': analysis['best_prediction'],
        'best_overall': analysis['best_overall'],
        'earnings_diff': analysis['earnings_diff'],
        'pct_diff': analysis['pct_diff'],
        'liquidation_analysis': runner.analyze_forced_liquidations(results_dict)
    }


class MultiCommodityRunner:
    """Orchestrates backtest execution across commodity-model combinations"""

    def __init__(
        self,
        commodity_configs: Optional[Mapping[str, Any]] = None,
        baseline_params: Optional[Dict[str, Any]] = None,
        prediction_params: Optional[Dict[str, Any]] = None,
        executor: str = 'process',
        max_workers: Optional[int] = None
    ):
        """
        Args:
            commodity_configs: {commodity: config} (None = COMMODITY_CONFIGS)
            baseline_params: Baseline strategy parameters (None = defaults)
            prediction_params: Prediction strategy parameters (None = defaults)
            executor: 'process', 'thread' or 'inline'
            max_workers: Pool size (None = executor default)
        """
        if executor not in EXECUTORS:
            raise ConfigurationError(f"executor must be one of {EXECUTORS}, got {executor!r}")

        self.commodity_configs = thaw(commodity_configs if commodity_configs is not None
                                      else COMMODITY_CONFIGS)
        self.baseline_params = baseline_params
        self.prediction_params = prediction_params
        self.executor = executor
        self.max_workers = max_workers

        self.all_commodity_results = {}
        self.failures = {}

    def run_all(
        self,
        datasets: Mapping[Tuple[str, str], Tuple[pd.DataFrame, Dict[Any, Any]]]
    ) -> Dict[str, Dict[str, Any]]:
        """
        Run every (commodity, model_version) dataset.

        Args:
            datasets: {(commodity, model_version): (prices, prediction_matrices)}

        Returns:
            {commodity: {model_version: run results}}; failed runs are in
            self.failures as {(commodity, model_version): error message}

        Raises:
            ConfigurationError: unknown commodity or malformed config (before
                any run starts), or invalid run inputs
            StateInvariantViolation: a run broke the inventory bookkeeping
        """
        jobs = {}
        validated = set()
        for (commodity, model_version), (prices, prediction_matrices) in datasets.items():
            if commodity not in self.commodity_configs:
                raise ConfigurationError(f"No configuration for commodity {commodity!r}")
            if commodity not in validated:
                try:
                    CommodityConfig.from_dict(self.commodity_configs[commodity])
                except ConfigurationError as e:
                    raise ConfigurationError(f"Invalid configuration for {commodity!r}: {e}") from e
                validated.add(commodity)
            jobs[(commodity, model_version)] = (
                commodity, model_version, prices, prediction_matrices,
                self.commodity_configs[commodity], self.baseline_params, self.prediction_params
            )

        logger.info(f"Starting {len(jobs)} backtest runs ({self.executor} executor)")

        if self.executor == 'inline':
            for key, args in jobs.items():
                try:
                    payload = run_commodity_model(*args)
                except FATAL_ERRORS:
                    raise
                except Exception as e:
                    self._record_failure(key, e)
                    continue
                self._store(key, payload)
        else:
            pool_cls = ProcessPoolExecutor if self.executor == 'process' else ThreadPoolExecutor
            with pool_cls(max_workers=self.max_workers) as pool:
                future_map = {pool.submit(run_commodity_model, *args): key
                              for key, args in jobs.items()}
                for future in as_completed(future_map):
                    key = future_map[future]
                    try:
                        payload = future.result()
                    except FATAL_ERRORS:
                        logger.error(f"Aborting batch: {key[0]} - {key[1]} failed fatally")
                        for pending in future_map:
                            pending.cancel()
                        raise
                    except Exception as e:
                        self._record_failure(key, e)
                        continue
                    self._store(key, payload)

        logger.info(f"Completed {len(jobs) - len(self.failures)}/{len(jobs)} runs")
        return self.all_commodity_results

    def _store(self, key, payload):
        commodity, model_version = key
        self.all_commodity_results.setdefault(commodity, {})[model_version] = payload
        logger.info(f"Run complete: {commodity.upper()} - {model_version}")

    def _record_failure(self, key, error):
        commodity, model_version = key
        self.failures[key] = f"{type(error).__name__}: {error}"
        logger.error(f"Run failed: {commodity} - {model_version}: {error}", exc_info=error)

    def summary_frame(self) -> pd.DataFrame:
        """Cross-commodity/model metrics table, one row per strategy per run"""
        frames = [run['results_df']
                  for runs in self.all_commodity_results.values()
                  for run in runs.values()]
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True).sort_values(
            ['commodity', 'model_version', 'net_earnings'], ascending=[True, True, False]
        ).reset_index(drop=True)
