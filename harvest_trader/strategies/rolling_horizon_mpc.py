"""
Rolling Horizon Model Predictive Control (MPC) Strategy

Each day:
1. Build a price window: today's price followed by the forecast mean path
2. Solve a local LP for that window (lp_optimizer.solve_window_lp)
3. Execute ONLY the first day's decision
4. Roll the window forward to the next day (Receding Horizon Control)

A terminal value on inventory left at the window end keeps the LP from
dumping everything just because the horizon stops ("End-of-Horizon" effect).
"""

from typing import Any, Optional

import numpy as np
import pandas as pd

from ..core.costs import CENTS_PER_LB_TO_DOLLARS_PER_TON, pct_to_rate
from ..core.logger import get_logger
from ..exceptions import ConfigurationError, SolverFailure
from .base import Decision, Strategy
from .forecast_signals import has_ensemble
from .lp_optimizer import solve_window_lp

logger = get_logger(__name__)


class RollingHorizonMPC(Strategy):
    """
    Rolling Horizon MPC strategy with limited foresight.

    The realistic "farmer" scenario: only `horizon_days` of forecast are
    visible, and the known harvest schedule tells the LP what arrives inside
    the window.
    """

    def __init__(
        self,
        name: str = "Rolling Horizon MPC",
        storage_cost_pct_per_day: float = 0.005,
        transaction_cost_pct: float = 0.01,
        horizon_days: int = 14,
        terminal_value_decay: float = 0.95,
        shadow_price_smoothing: Optional[float] = None,
        min_sell_amount: float = 0.1,
        use_terminal_value: bool = True,
        price_multiplier: float = CENTS_PER_LB_TO_DOLLARS_PER_TON,
        lp_time_limit: Optional[float] = None,
        max_holding_days: int = 365
    ):
        """
        Args:
            name: Strategy name
            storage_cost_pct_per_day: Daily storage cost as % of inventory value
            transaction_cost_pct: Transaction cost as % of sale revenue
            horizon_days: Window length including today (default: 14 days)
            terminal_value_decay: Discount on the last window price used as
                                  terminal value per ton (default: 0.95)
            shadow_price_smoothing: If provided, exponential smoothing alpha for
                                   the LP's terminal dual; None = decayed price
            min_sell_amount: Planned sales below this (tons) are held
            use_terminal_value: Disable to expose the End-of-Horizon effect
            price_multiplier: Quoted price -> value per ton
            lp_time_limit: HiGHS time limit per solve (seconds)
        """
        super().__init__(name, max_holding_days)
        if horizon_days <= 0:
            raise ConfigurationError(f"horizon_days must be positive, got {horizon_days}")
        if shadow_price_smoothing is not None and not 0 < shadow_price_smoothing <= 1:
            raise ConfigurationError(
                f"shadow_price_smoothing must be in (0, 1], got {shadow_price_smoothing}")

        self.storage_cost_pct_per_day = storage_cost_pct_per_day
        self.transaction_cost_pct = transaction_cost_pct
        self.horizon_days = horizon_days
        self.terminal_value_decay = terminal_value_decay
        self.shadow_price_smoothing = shadow_price_smoothing
        self.min_sell_amount = min_sell_amount
        self.use_terminal_value = use_terminal_value
        self.price_multiplier = price_multiplier
        self.lp_time_limit = lp_time_limit

        self.smoothed_shadow_price = None

    def decide(
        self,
        day: int,
        inventory: float,
        current_price: float,
        price_history: pd.DataFrame,
        predictions: Any = None
    ) -> Decision:
        """
        Solve the local window LP, execute the first decision only.

        Args:
            predictions: (n_paths, n_horizons) ensemble or a single 1-D path
        """
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        if not has_ensemble(predictions):
            return Decision.hold('no_predictions')

        window_prices = self.window_prices(current_price, predictions)
        window_len = len(window_prices)
        prices_per_ton = window_prices * self.price_multiplier

        try:
            solution = solve_window_lp(
                current_inventory=inventory,
                future_prices=prices_per_ton,
                future_harvest=self.window_harvest(day, window_len),
                storage_rate=pct_to_rate(self.storage_cost_pct_per_day),
                transaction_rate=pct_to_rate(self.transaction_cost_pct),
                terminal_value_per_unit=self.terminal_value(prices_per_ton),
                time_limit=self.lp_time_limit
            )
        except SolverFailure as e:
            logger.warning(f"{self.name} day {day}: {e}; holding")
            return Decision.hold('solver_failure')

        self._update_shadow_price(solution.terminal_shadow_price)

        sell_today = solution.sell[0]
        if sell_today < self.min_sell_amount:
            return Decision.hold('mpc_hold', window_len=window_len)

        return Decision.sell(
            min(sell_today, inventory), 'mpc_optimize',
            window_len=window_len,
            predicted_net_value=solution.objective_value
        )

    def window_prices(self, current_price, predictions):
        """Today's price followed by the forecast mean path, cut to the horizon"""
        predictions = np.asarray(predictions, dtype=float)
        path = predictions.mean(axis=0) if predictions.ndim == 2 else predictions.ravel()
        return np.concatenate([[current_price], path])[:self.horizon_days]

    def window_harvest(self, day, window_len):
        """Inflow for each window day; today's inflow is already in inventory"""
        harvest = np.zeros(window_len)
        if self.harvest_inflows is not None and window_len > 1:
            upcoming = np.asarray(self.harvest_inflows[day + 1:day + window_len], dtype=float)
            harvest[1:1 + len(upcoming)] = upcoming
        return harvest

    def terminal_value(self, prices_per_ton):
        if not self.use_terminal_value:
            return None
        if self.shadow_price_smoothing is not None and self.smoothed_shadow_price is not None:
            return self.smoothed_shadow_price
        return prices_per_ton[-1] * self.terminal_value_decay

    def _update_shadow_price(self, shadow_price):
        if self.shadow_price_smoothing is None or shadow_price is None:
            return
        if self.smoothed_shadow_price is None:
            self.smoothed_shadow_price = shadow_price
        else:
            alpha = self.shadow_price_smoothing
            self.smoothed_shadow_price = alpha * shadow_price + (1 - alpha) * self.smoothed_shadow_price

    def reset(self):
        super().reset()
        self.smoothed_shadow_price = None
