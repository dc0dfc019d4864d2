"""
Unit Tests for StrategyRunner and MultiCommodityRunner
"""

from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from harvest_trader.config import get_commodity_config
from harvest_trader.exceptions import ConfigurationError, StateInvariantViolation
from harvest_trader.runners import MultiCommodityRunner, StrategyRunner, run_commodity_model
from harvest_trader.strategies import (
    ConsensusStrategy,
    EqualBatchStrategy,
    ImmediateSaleStrategy,
    MovingAveragePredictive,
    MovingAverageStrategy,
    PriceThresholdPredictive,
    PriceThresholdStrategy,
    RollingHorizonMPC
)


@pytest.fixture
def one_year(daily_prices, daily_predictions):
    prices = daily_prices.iloc[:365].reset_index(drop=True)
    predictions = {date: daily_predictions[date] for date in prices['date']}
    return prices, predictions


class TestStrategyInitialization:

    def test_ten_strategies(self, one_year, coffee_config):
        prices, predictions = one_year
        runner = StrategyRunner(prices, predictions, coffee_config)
        baselines, prediction_strategies = runner.initialize_strategies()

        assert [type(s) for s in baselines] == [
            ImmediateSaleStrategy, EqualBatchStrategy, PriceThresholdStrategy, MovingAverageStrategy]
        assert len(prediction_strategies) == 6
        assert isinstance(prediction_strategies[-1], RollingHorizonMPC)
        assert len({s.name for s in baselines + prediction_strategies}) == 10

    def test_config_injected(self, one_year, coffee_config):
        prices, predictions = one_year
        coffee_config.update(max_holding_days=200, storage_cost_pct_per_day=0.01)
        runner = StrategyRunner(prices, predictions, coffee_config)
        baselines, prediction_strategies = runner.initialize_strategies()

        assert all(s.max_holding_days == 200 for s in baselines + prediction_strategies)
        consensus = next(s for s in prediction_strategies if isinstance(s, ConsensusStrategy))
        mpc = prediction_strategies[-1]
        assert consensus.storage_cost_pct_per_day == 0.01
        assert mpc.storage_cost_pct_per_day == 0.01
        assert mpc.price_multiplier == 20
        assert mpc.lp_time_limit == 10.0

    def test_pairs_use_matching_baselines(self, one_year, coffee_config):
        prices, predictions = one_year
        _, prediction_strategies = StrategyRunner(prices, predictions, coffee_config).initialize_strategies()

        pt_pair = next(s for s in prediction_strategies if isinstance(s, PriceThresholdPredictive))
        ma_pair = next(s for s in prediction_strategies if isinstance(s, MovingAveragePredictive))
        assert isinstance(pt_pair.baseline, PriceThresholdStrategy)
        assert isinstance(ma_pair.baseline, MovingAverageStrategy)

    def test_parameter_overrides(self, one_year, coffee_config):
        prices, predictions = one_year
        runner = StrategyRunner(prices, predictions, coffee_config,
                                baseline_params={'equal_batch': {'batch_size': 0.5, 'frequency_days': 10}})
        baselines, _ = runner.initialize_strategies()

        equal_batch = baselines[1]
        assert equal_batch.batch_size == 0.5
        assert equal_batch.frequency_days == 10


class TestRunAllStrategies:

    @pytest.fixture
    def run(self, one_year, coffee_config):
        prices, predictions = one_year
        runner = StrategyRunner(prices, predictions, coffee_config)
        results_dict, metrics_df = runner.run_all_strategies(model_version='test_model')
        return runner, results_dict, metrics_df

    def test_every_strategy_runs(self, run):
        _, results_dict, metrics_df = run

        assert len(results_dict) == 10
        assert len(metrics_df) == 10
        assert set(metrics_df['type']) == {'Baseline', 'Prediction'}
        assert (metrics_df['commodity'] == 'coffee').all()
        assert (metrics_df['model_version'] == 'test_model').all()

    def test_sorted_best_first(self, run):
        _, _, metrics_df = run
        earnings = metrics_df['net_earnings'].to_numpy()
        assert np.all(np.diff(earnings) <= 0)

    def test_all_inventory_sold(self, run):
        _, results_dict, _ = run
        for results in results_dict.values():
            assert results['final_inventory'] == 0.0
            assert results['total_harvest'] == pytest.approx(50.0)
            daily = results['daily_state']
            np.testing.assert_allclose(
                daily['cumulative_harvest'] - daily['cumulative_sales'], daily['inventory'], atol=1e-6)

    def test_best_performers(self, run):
        runner, _, metrics_df = run
        analysis = runner.analyze_best_performers(metrics_df)

        assert analysis['best_overall']['strategy'] == metrics_df.iloc[0]['strategy']
        assert analysis['best_baseline']['type'] == 'Baseline'
        assert analysis['best_prediction']['type'] == 'Prediction'
        assert analysis['earnings_diff'] == pytest.approx(
            analysis['best_prediction']['net_earnings'] - analysis['best_baseline']['net_earnings'])

    def test_forced_liquidation_analysis(self, run):
        runner, results_dict, _ = run
        analysis = runner.analyze_forced_liquidations(results_dict)

        assert set(analysis) == set(results_dict)
        single = runner.analyze_forced_liquidations(results_dict, 'Equal Batches')
        assert list(single) == ['Equal Batches']
        assert single['Equal Batches']['n_events'] >= 0

    def test_metrics_by_year(self, run):
        runner, results_dict, _ = run
        by_year = runner.metrics_by_year(results_dict)
        assert len(by_year) == 10
        assert set(by_year['year']) == {2022}


class TestMultiCommodityRunner:

    def test_invalid_executor(self):
        with pytest.raises(ConfigurationError):
            MultiCommodityRunner(executor='cluster')

    def test_unknown_commodity(self, one_year):
        runner = MultiCommodityRunner(executor='inline')
        with pytest.raises(ConfigurationError):
            runner.run_all({('cocoa', 'v1'): one_year})

    def test_inline_runs(self, one_year):
        runner = MultiCommodityRunner(executor='inline')
        results = runner.run_all({('coffee', 'v1'): one_year, ('sugar', 'v1'): one_year})

        assert set(results) == {'coffee', 'sugar'}
        assert results['sugar']['v1']['best_overall'] is not None
        assert runner.failures == {}

        summary = runner.summary_frame()
        assert len(summary) == 20
        assert list(summary['commodity'].unique()) == ['coffee', 'sugar']

    def test_thread_executor_matches_inline(self, one_year):
        inline = MultiCommodityRunner(executor='inline').run_all({('coffee', 'v1'): one_year})
        threaded = MultiCommodityRunner(executor='thread', max_workers=2).run_all({('coffee', 'v1'): one_year})

        pd.testing.assert_frame_equal(inline['coffee']['v1']['results_df'],
                                      threaded['coffee']['v1']['results_df'])

    def test_malformed_config_aborts_before_any_run(self, one_year):
        configs = {
            'coffee': get_commodity_config('coffee'),
            'sugar': dict(get_commodity_config('sugar'), storage_cost_pct_per_day=-1)
        }
        runner = MultiCommodityRunner(commodity_configs=configs, executor='inline')

        with patch('harvest_trader.runners.multi_commodity_runner.run_commodity_model') as run_model:
            with pytest.raises(ConfigurationError, match='sugar'):
                runner.run_all({('coffee', 'v1'): one_year, ('sugar', 'v1'): one_year})

        run_model.assert_not_called()
        assert runner.all_commodity_results == {}

    @pytest.mark.parametrize('executor', ['inline', 'thread'])
    def test_invalid_run_inputs_raise(self, one_year, executor):
        bad_prices = pd.DataFrame({'date': ['2022-01-01'], 'price': [-1.0]})
        runner = MultiCommodityRunner(executor=executor)

        with pytest.raises(ConfigurationError):
            runner.run_all({('coffee', 'v1'): one_year, ('coffee', 'broken'): (bad_prices, {})})

    def test_state_violation_raises(self, one_year):
        def broken_run(commodity, model_version, *args):
            raise StateInvariantViolation("inventory went negative", day=3)

        runner = MultiCommodityRunner(executor='inline')
        with patch('harvest_trader.runners.multi_commodity_runner.run_commodity_model',
                   side_effect=broken_run):
            with pytest.raises(StateInvariantViolation, match='day 3'):
                runner.run_all({('coffee', 'v1'): one_year})

    def test_failed_run_recorded(self, one_year):
        def flaky_run(commodity, model_version, *args):
            if model_version == 'broken':
                raise RuntimeError("worker lost")
            return run_commodity_model(commodity, model_version, *args)

        runner = MultiCommodityRunner(executor='inline')
        with patch('harvest_trader.runners.multi_commodity_runner.run_commodity_model',
                   side_effect=flaky_run):
            results = runner.run_all({('coffee', 'v1'): one_year, ('coffee', 'broken'): one_year})

        assert list(results['coffee']) == ['v1']
        assert runner.failures == {('coffee', 'broken'): 'RuntimeError: worker lost'}

    def test_run_commodity_model_payload(self, one_year, coffee_config):
        prices, predictions = one_year
        payload = run_commodity_model('coffee', 'v1', prices, predictions, coffee_config)

        assert payload['commodity'] == 'coffee'
        assert len(payload['results_df']) == 10
        assert set(payload['liquidation_analysis']) == set(payload['results_dict'])

    def test_empty_summary(self):
        assert MultiCommodityRunner(executor='inline').summary_frame().empty
