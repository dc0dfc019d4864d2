"""
Unit Tests for the LP Optimizers and Rolling Horizon MPC
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from harvest_trader.exceptions import ConfigurationError, SolverFailure
from harvest_trader.strategies import RollingHorizonMPC, solve_optimal_liquidation_lp, solve_window_lp
from harvest_trader.strategies.base import HOLD, SELL


class TestWindowLP:

    def test_rising_prices_sell_on_last_day(self):
        prices = np.arange(100, 114, dtype=float)
        solution = solve_window_lp(10.0, prices, np.zeros(14), 0.0, 0.0)

        assert solution.sell[-1] == pytest.approx(10.0)
        np.testing.assert_allclose(solution.sell[:-1], 0.0, atol=1e-7)
        assert solution.objective_value == pytest.approx(1130.0)

    def test_falling_prices_sell_today(self):
        prices = np.arange(113, 99, -1, dtype=float)
        solution = solve_window_lp(10.0, prices, np.zeros(14), 0.0, 0.0)

        assert solution.sell[0] == pytest.approx(10.0)
        np.testing.assert_allclose(solution.inventory, 0.0, atol=1e-7)

    def test_mass_balance_with_inflow(self):
        prices = np.arange(100, 114, dtype=float)
        harvest = np.zeros(14)
        harvest[1] = 5.0
        harvest[6] = 2.5
        solution = solve_window_lp(10.0, prices, harvest, 0.00005, 0.0001)

        assert solution.sell.sum() + solution.inventory[-1] == pytest.approx(17.5)
        assert np.all(solution.sell >= -1e-9)
        assert np.all(solution.inventory >= -1e-9)

    def test_without_terminal_value_window_drains(self):
        prices = np.full(14, 2000.0)
        solution = solve_window_lp(10.0, prices, np.zeros(14), 0.00005, 0.01)

        assert solution.inventory[-1] == pytest.approx(0.0, abs=1e-7)
        assert solution.sell[0] == pytest.approx(10.0)

    def test_terminal_value_keeps_inventory(self):
        prices = np.full(14, 2000.0)
        solution = solve_window_lp(10.0, prices, np.zeros(14), 0.00005, 0.01,
                                   terminal_value_per_unit=2000.0)

        assert solution.inventory[-1] == pytest.approx(10.0)
        np.testing.assert_allclose(solution.sell, 0.0, atol=1e-7)

    def test_terminal_shadow_price(self):
        prices = np.full(14, 2000.0)
        solution = solve_window_lp(10.0, prices, np.zeros(14), 0.00005, 0.01,
                                   terminal_value_per_unit=2000.0)

        # One more ton at the horizon is held: terminal value less a day of storage
        assert solution.terminal_shadow_price == pytest.approx(1999.9, rel=1e-6)

    def test_terminal_value_on_rising_prices(self):
        prices = np.arange(100, 114, dtype=float)
        without_terminal = solve_window_lp(10.0, prices, np.zeros(14), 0.00005, 0.01)
        with_terminal = solve_window_lp(10.0, prices, np.zeros(14), 0.00005, 0.01,
                                        terminal_value_per_unit=prices[-1])

        # Without a terminal value the whole inventory is dumped on the last window day
        assert without_terminal.sell.sum() == pytest.approx(10.0)
        assert without_terminal.sell[-1] == pytest.approx(10.0)
        assert with_terminal.sell.sum() == pytest.approx(0.0, abs=1e-7)
        assert with_terminal.inventory[-1] == pytest.approx(10.0)

    def test_receding_horizon_consistency(self):
        prices = 100 + 8 * np.sin(np.arange(40) / 3.0)
        harvest = np.zeros(40)
        harvest[2:9] = 1.5
        on_hand = 10.0
        total_sold = 0.0

        for day in range(20):
            window = prices[day:day + 14]
            window_harvest = harvest[day:day + 14]
            solution = solve_window_lp(on_hand, window, window_harvest, 0.00005, 0.0001,
                                       terminal_value_per_unit=window[-1] * 0.95)

            available = on_hand + window_harvest[0]
            assert -1e-9 <= solution.sell[0] <= available + 1e-7
            assert solution.inventory[0] == pytest.approx(available - solution.sell[0], abs=1e-7)

            total_sold += solution.sell[0]
            on_hand = max(float(solution.inventory[0]), 0.0)

        assert total_sold + on_hand == pytest.approx(10.0 + harvest[:20].sum(), abs=1e-6)

    def test_misaligned_harvest(self):
        with pytest.raises(ConfigurationError):
            solve_window_lp(10.0, np.ones(5), np.zeros(4), 0.0, 0.0)

    def test_empty_window(self):
        with pytest.raises(ConfigurationError):
            solve_window_lp(10.0, np.array([]), np.array([]), 0.0, 0.0)

    def test_invalid_input_is_solver_failure(self):
        prices = np.array([100.0, np.nan, 101.0])
        with pytest.raises(SolverFailure):
            solve_window_lp(10.0, prices, np.zeros(3), 0.0, 0.0)

    def test_unsuccessful_solve(self):
        failed = MagicMock(success=False, message='Time limit reached', status=1)
        with patch('harvest_trader.strategies.lp_optimizer.linprog', return_value=failed):
            with pytest.raises(SolverFailure) as excinfo:
                solve_window_lp(10.0, np.ones(3), np.zeros(3), 0.0, 0.0, time_limit=0.5)
        assert excinfo.value.status == 1


class TestOptimalLiquidationLP:

    def test_sells_at_best_price(self):
        result = solve_optimal_liquidation_lp([10.0, 20.0, 15.0], [1.0, 0.0, 0.0], 0.0, 0.0)

        assert result['max_net_earnings'] == pytest.approx(400.0)
        assert [t['day'] for t in result['trades']] == [1]
        assert result['inventory_schedule'][-1] == pytest.approx(0.0, abs=1e-9)

    def test_late_harvest_sold_after_arrival(self):
        result = solve_optimal_liquidation_lp([20.0, 15.0, 10.0], [0.0, 0.0, 1.0], 0.0, 0.01)

        assert result['max_net_earnings'] == pytest.approx(198.0)
        assert result['total_transaction_costs'] == pytest.approx(2.0)
        assert result['trades'][0]['day'] == 2

    def test_storage_costs_reported(self):
        result = solve_optimal_liquidation_lp([10.0, 10.0, 30.0], [1.0, 0.0, 0.0], 0.01, 0.0)

        # Hold two days at 2 $/day, sell at 600
        assert result['total_storage_costs'] == pytest.approx(4.0)
        assert result['max_net_earnings'] == pytest.approx(596.0)
        assert len(result['daily_state']) == 3

    def test_dates_in_trade_log(self, daily_prices):
        prices = daily_prices['price'].to_numpy()[:30]
        inflows = np.zeros(30)
        inflows[0] = 5.0
        result = solve_optimal_liquidation_lp(prices, inflows, 0.00005, 0.0001,
                                              dates=list(daily_prices['date'][:30]))

        assert sum(t['amount'] for t in result['trades']) == pytest.approx(5.0)
        assert all(t['date'] == daily_prices['date'].iloc[t['day']] for t in result['trades'])

    def test_misaligned_inputs(self):
        with pytest.raises(ConfigurationError):
            solve_optimal_liquidation_lp([10.0, 20.0], [1.0], 0.0, 0.0)


class TestRollingHorizonMPC:

    def test_decision_matches_window_lp(self):
        path = np.arange(99, 85, -1, dtype=float)
        predictions = np.tile(path, (5, 1))
        mpc = RollingHorizonMPC()

        decision = mpc.decide(0, 10.0, 100.0, None, predictions)

        window = np.concatenate([[100.0], path])[:14] * 20
        expected = solve_window_lp(10.0, window, np.zeros(14), 0.00005, 0.0001,
                                   terminal_value_per_unit=window[-1] * 0.95)
        assert decision.action == SELL
        assert decision.reason == 'mpc_optimize'
        assert decision.amount == pytest.approx(expected.sell[0])
        assert decision.amount == pytest.approx(10.0)

    def test_rising_forecast_holds(self):
        predictions = np.tile(np.arange(101, 115, dtype=float), (5, 1))
        decision = RollingHorizonMPC().decide(0, 10.0, 100.0, None, predictions)

        assert decision.action == HOLD
        assert decision.reason == 'mpc_hold'

    def test_terminal_value_prevents_end_of_horizon_dump(self):
        predictions = np.full((10, 14), 99.5)
        kwargs = dict(storage_cost_pct_per_day=0.0, transaction_cost_pct=1.0, terminal_value_decay=1.0)

        with_terminal = RollingHorizonMPC(**kwargs).decide(0, 10.0, 100.0, None, predictions)
        without_terminal = RollingHorizonMPC(use_terminal_value=False, **kwargs).decide(
            0, 10.0, 100.0, None, predictions)

        assert with_terminal.action == HOLD
        assert without_terminal.action == SELL
        assert without_terminal.amount == pytest.approx(10.0)

    def test_decayed_terminal_value_can_still_sell(self):
        predictions = np.full((10, 14), 99.5)
        mpc = RollingHorizonMPC(storage_cost_pct_per_day=0.0, transaction_cost_pct=1.0,
                                terminal_value_decay=0.95)
        assert mpc.decide(0, 10.0, 100.0, None, predictions).action == SELL

    def test_solver_failure_holds(self):
        predictions = np.full((10, 14), 100.0)
        with patch('harvest_trader.strategies.rolling_horizon_mpc.solve_window_lp',
                   side_effect=SolverFailure('infeasible')):
            decision = RollingHorizonMPC().decide(0, 10.0, 100.0, None, predictions)

        assert decision.action == HOLD
        assert decision.reason == 'solver_failure'

    def test_no_predictions(self):
        assert RollingHorizonMPC().decide(0, 10.0, 100.0, None, None).reason == 'no_predictions'

    def test_forced_liquidation(self):
        mpc = RollingHorizonMPC(max_holding_days=10)
        mpc.set_harvest_start(0)
        decision = mpc.decide(10, 4.0, 100.0, None, np.full((5, 14), 150.0))
        assert decision.reason == 'forced_liquidation_10d'

    def test_window_prices_truncated_to_horizon(self):
        mpc = RollingHorizonMPC(horizon_days=5)
        window = mpc.window_prices(100.0, np.tile(np.arange(1, 15, dtype=float), (3, 1)))
        np.testing.assert_allclose(window, [100.0, 1.0, 2.0, 3.0, 4.0])

    def test_window_prices_accepts_single_path(self):
        window = RollingHorizonMPC().window_prices(100.0, np.array([101.0, 102.0]))
        np.testing.assert_allclose(window, [100.0, 101.0, 102.0])

    def test_window_harvest_uses_bound_schedule(self):
        mpc = RollingHorizonMPC()
        mpc.bind_harvest_schedule(np.arange(7, dtype=float))

        np.testing.assert_allclose(mpc.window_harvest(2, 4), [0.0, 3.0, 4.0, 5.0])
        np.testing.assert_allclose(mpc.window_harvest(5, 4), [0.0, 6.0, 0.0, 0.0])

    def test_window_harvest_without_schedule(self):
        np.testing.assert_allclose(RollingHorizonMPC().window_harvest(0, 3), 0.0)

    def test_shadow_price_smoothing(self):
        mpc = RollingHorizonMPC(shadow_price_smoothing=0.5)
        mpc._update_shadow_price(10.0)
        mpc._update_shadow_price(20.0)
        assert mpc.smoothed_shadow_price == pytest.approx(15.0)
        assert mpc.terminal_value(np.array([100.0])) == pytest.approx(15.0)

        mpc.reset()
        assert mpc.smoothed_shadow_price is None
        assert mpc.terminal_value(np.array([100.0])) == pytest.approx(95.0)

    def test_smoothed_shadow_price_from_solve(self):
        mpc = RollingHorizonMPC(shadow_price_smoothing=0.3)
        mpc.decide(0, 10.0, 100.0, None, np.full((5, 14), 100.0))
        assert mpc.smoothed_shadow_price is not None

    @pytest.mark.parametrize('kwargs', [
        {'horizon_days': 0},
        {'shadow_price_smoothing': 0.0},
        {'shadow_price_smoothing': 1.5},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            RollingHorizonMPC(**kwargs)
