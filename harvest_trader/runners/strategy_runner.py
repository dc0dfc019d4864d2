"""
Strategy Runner Module
Initializes strategies and executes backtests
"""

from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..config import ANALYSIS_CONFIG, CommodityConfig, get_baseline_params, get_prediction_params, thaw
from ..core.backtest_engine import BacktestEngine, calculate_metrics, calculate_metrics_by_year
from ..core.logger import get_logger
from ..strategies import (
    ConsensusStrategy,
    EqualBatchStrategy,
    ExpectedValueStrategy,
    ImmediateSaleStrategy,
    MovingAveragePredictive,
    MovingAverageStrategy,
    PriceThresholdPredictive,
    PriceThresholdStrategy,
    RiskAdjustedStrategy,
    RollingHorizonMPC
)

logger = get_logger(__name__)


class StrategyRunner:
    """Runs all 10 trading strategies through one backtest engine"""

    def __init__(
        self,
        prices: pd.DataFrame,
        prediction_matrices: Dict[Any, Any],
        commodity_config,
        baseline_params: Optional[Dict[str, Any]] = None,
        prediction_params: Optional[Dict[str, Any]] = None,
        liquidate_at_end: bool = ANALYSIS_CONFIG['liquidate_at_end']
    ):
        """
        Args:
            prices: Price DataFrame with columns ['date', 'price']
            prediction_matrices: Dict mapping {timestamp: numpy_array}
            commodity_config: CommodityConfig or commodity config dict
            baseline_params: Baseline strategy parameters (None = defaults)
            prediction_params: Prediction strategy parameters (None = defaults)
            liquidate_at_end: Sell leftover inventory on the last day
        """
        self.commodity_config = CommodityConfig.from_dict(commodity_config)
        self.baseline_params = thaw(baseline_params) if baseline_params is not None else get_baseline_params()
        self.prediction_params = (thaw(prediction_params) if prediction_params is not None
                                  else get_prediction_params())

        self.engine = BacktestEngine(
            prices=prices,
            prediction_matrices=prediction_matrices,
            producer_config=self.commodity_config,
            liquidate_at_end=liquidate_at_end
        )

    def initialize_strategies(self) -> Tuple[List, List]:
        """
        Initialize all 10 strategies from their parameter dicts.

        The holding limit is injected into every strategy; cost parameters
        (storage_cost_pct_per_day, transaction_cost_pct) are injected from the
        commodity config into the prediction strategies.

        Returns:
            Tuple of (baseline_strategies, prediction_strategies)
        """
        config = self.commodity_config

        def with_limit(params: dict) -> dict:
            p = dict(params)
            p['max_holding_days'] = config.max_holding_days
            return p

        def with_costs(params: dict) -> dict:
            p = with_limit(params)
            p['storage_cost_pct_per_day'] = config.storage_cost_pct_per_day
            p['transaction_cost_pct'] = config.transaction_cost_pct
            return p

        mpc_params = with_costs(self.prediction_params.get('rolling_horizon_mpc', {}))
        mpc_params['price_multiplier'] = config.price_multiplier
        mpc_params.setdefault('lp_time_limit', ANALYSIS_CONFIG['lp_time_limit_seconds'])

        baselines = [
            ImmediateSaleStrategy(**with_limit(self.baseline_params.get('immediate_sale', {}))),
            EqualBatchStrategy(**with_limit(self.baseline_params.get('equal_batch', {}))),
            PriceThresholdStrategy(**with_limit(self.baseline_params.get('price_threshold', {}))),
            MovingAverageStrategy(**with_limit(self.baseline_params.get('moving_average', {})))
        ]

        prediction_strategies = [
            ConsensusStrategy(**with_costs(self.prediction_params.get('consensus', {}))),
            ExpectedValueStrategy(**with_costs(self.prediction_params.get('expected_value', {}))),
            RiskAdjustedStrategy(**with_costs(self.prediction_params.get('risk_adjusted', {}))),
            PriceThresholdPredictive(**with_costs(self.prediction_params.get('price_threshold_predictive', {}))),
            MovingAveragePredictive(**with_costs(self.prediction_params.get('moving_average_predictive', {}))),
            RollingHorizonMPC(**mpc_params)
        ]

        return baselines, prediction_strategies

    def run_all_strategies(
        self,
        commodity: Optional[str] = None,
        model_version: str = 'default'
    ) -> Tuple[Dict[str, Any], pd.DataFrame]:
        """
        Run backtest for all strategies

        Returns:
            Tuple of (results_dict, metrics_df)
            - results_dict: {strategy_name: backtest_results}
            - metrics_df: DataFrame with all strategy metrics, best first
        """
        commodity = commodity or self.commodity_config.commodity
        baselines, prediction_strategies = self.initialize_strategies()
        all_strategies = baselines + prediction_strategies

        logger.info(f"Running {len(all_strategies)} strategies - {commodity.upper()} - {model_version} "
                    f"({len(baselines)} baseline, {len(prediction_strategies)} prediction)")

        results_dict = {}
        metrics_list = []
        for i, strategy in enumerate(all_strategies, 1):
            results = self.engine.run(strategy)
            metrics = calculate_metrics(results)

            results_dict[strategy.name] = results
            metrics_list.append(metrics)

            logger.info(f"[{i}/{len(all_strategies)}] {strategy.name}: "
                        f"net ${metrics['net_earnings']:,.2f}, {metrics['n_trades']} trades, "
                        f"avg price ${metrics['avg_sale_price']:.2f}")

        metrics_df = pd.DataFrame(metrics_list)
        baseline_names = {s.name for s in baselines}
        metrics_df['type'] = metrics_df['strategy'].apply(
            lambda name: 'Baseline' if name in baseline_names else 'Prediction')
        metrics_df['commodity'] = commodity
        metrics_df['model_version'] = model_version

        return results_dict, metrics_df.sort_values('net_earnings', ascending=False).reset_index(drop=True)

    @staticmethod
    def metrics_by_year(results_dict: Dict[str, Any]) -> pd.DataFrame:
        """Year-by-year metrics for every strategy in one DataFrame"""
        rows = [metrics
                for results in results_dict.values()
                for metrics in calculate_metrics_by_year(results).values()]
        return pd.DataFrame(rows)

    def analyze_best_performers(
        self,
        metrics_df: pd.DataFrame,
        commodity: Optional[str] = None,
        model_version: str = 'default'
    ) -> Dict[str, Any]:
        """
        Identify the best baseline, best prediction and best overall strategy

        Args:
            metrics_df: Metrics DataFrame from run_all_strategies
        """
        ranked = metrics_df.sort_values('net_earnings', ascending=False)
        baselines = ranked[ranked['type'] == 'Baseline']
        predictions = ranked[ranked['type'] == 'Prediction']

        best_baseline = baselines.iloc[0].to_dict() if len(baselines) else None
        best_prediction = predictions.iloc[0].to_dict() if len(predictions) else None

        earnings_diff = pct_diff = 0.0
        if best_baseline is not None and best_prediction is not None:
            earnings_diff = best_prediction['net_earnings'] - best_baseline['net_earnings']
            if best_baseline['net_earnings'] != 0:
                pct_diff = earnings_diff / abs(best_baseline['net_earnings']) * 100

        analysis = {
            'best_baseline': best_baseline,
            'best_prediction': best_prediction,
            'best_overall': ranked.iloc[0].to_dict(),
            'earnings_diff': earnings_diff,
            'pct_diff': pct_diff,
            'commodity': commodity or self.commodity_config.commodity,
            'model_version': model_version
        }

        logger.info(f"Best overall: {analysis['best_overall']['strategy']} "
                    f"(${analysis['best_overall']['net_earnings']:,.2f}); "
                    f"prediction advantage ${earnings_diff:+,.2f} ({pct_diff:+.1f}%)")
        return analysis

    def analyze_forced_liquidations(
        self,
        results_dict: Dict[str, Any],
        strategy_name: Optional[str] = None
    ) -> Dict[str, Dict[str, Any]]:
        """
        Count forced and pre-harvest liquidation events per strategy

        Args:
            results_dict: Results from run_all_strategies
            strategy_name: Restrict to one strategy (None = all)

        Returns:
            {strategy_name: {n_events, total_tons, avg_tons_per_event, pct_of_harvest}}
        """
        names = [strategy_name] if strategy_name is not None else list(results_dict)
        analysis = {}

        for name in names:
            if name not in results_dict:
                continue
            results = results_dict[name]
            forced = [t for t in results['trades']
                      if 'forced' in t['reason'].lower() or 'liquidate' in t['reason'].lower()]
            total = sum(t['amount'] for t in forced)
            total_harvest = results.get('total_harvest', 0.0)

            analysis[name] = {
                'n_events': len(forced),
                'total_tons': total,
                'avg_tons_per_event': total / len(forced) if forced else 0.0,
                'pct_of_harvest': total / total_harvest * 100 if total_harvest > 0 else 0.0
            }
            if forced:
                logger.info(f"{name}: {len(forced)} forced liquidations, {total:.2f} tons "
                            f"({analysis[name]['pct_of_harvest']:.1f}% of harvest)")

        return analysis
