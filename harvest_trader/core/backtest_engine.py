"""
Backtesting Engine

Daily simulation loop with harvest-based inventory:
- Harvest cycles: inventory starts at 0 and accumulates during harvest windows
- Price conversion: price_per_ton = price * 20 (cents/lb to $/ton)
- Percentage-based costs: storage and transaction scale with commodity value
- Multi-cycle support: handles multiple harvest seasons
- Forced liquidation: max holding period, pre-harvest and end-of-run liquidation
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from ..config import CommodityConfig
from ..exceptions import ConfigurationError, StateInvariantViolation
from ..strategies.base import Decision, HOLD, SELL, forced_liquidation_decision
from .costs import price_per_ton, storage_cost, transaction_cost
from .harvest import HarvestSchedule
from .logger import get_logger

logger = get_logger(__name__)

# Sells within this much of inventory are snapped to the inventory
AMOUNT_TOLERANCE = 1e-9
MASS_BALANCE_TOLERANCE = 1e-6

TRADE_COLUMNS = ['day', 'date', 'price', 'price_per_ton', 'amount', 'revenue',
                 'transaction_cost', 'net_revenue', 'reason', 'inventory_after']


@dataclass
class SimulationState:
    """Mutable state of one backtest run, owned by the engine"""
    day: int = 0
    inventory: float = 0.0
    last_sale_day: Optional[int] = None
    harvest_start: Optional[int] = None
    cumulative_harvest: float = 0.0
    cumulative_sales: float = 0.0
    total_storage_costs: float = 0.0

    def check_mass_balance(self):
        expected = self.cumulative_harvest - self.cumulative_sales
        if abs(expected - self.inventory) > MASS_BALANCE_TOLERANCE * max(1.0, self.cumulative_harvest):
            raise StateInvariantViolation(
                f"mass balance broken: harvest {self.cumulative_harvest:.6f} - "
                f"sales {self.cumulative_sales:.6f} != inventory {self.inventory:.6f}",
                day=self.day)


def _coerce_decision(decision) -> Decision:
    # Strategies may also return the plain {'action', 'amount', 'reason'} dict form
    if isinstance(decision, Decision):
        return decision
    if isinstance(decision, Mapping):
        details = {k: v for k, v in decision.items() if k not in ('action', 'amount', 'reason')}
        action = decision.get('action', HOLD)
        amount = decision.get('amount', 0.0) if action == SELL else 0.0
        return Decision(action, float(amount), decision.get('reason', ''), details)
    raise StateInvariantViolation(f"Strategy returned {type(decision).__name__}, expected Decision")


def _read_only(predictions):
    if predictions is None:
        return None
    view = np.asarray(predictions).view()
    view.flags.writeable = False
    return view


class BacktestEngine:
    """
    Backtesting engine with harvest-based inventory.

    One engine can run many strategies over the same prices and forecasts;
    each run() starts from zero inventory with a reset strategy.
    """

    def __init__(self, prices: pd.DataFrame, prediction_matrices: Optional[Dict],
                 producer_config, liquidate_at_end: bool = True):
        """
        Initialize backtest engine.

        Args:
            prices: DataFrame with columns ['date', 'price'] (optionally 'high', 'low')
            prediction_matrices: dict mapping dates to (n_paths, n_horizons) arrays
            producer_config: CommodityConfig or dict with commodity configuration:
                - commodity: str
                - harvest_volume: float (tons/year)
                - harvest_windows: list of (start_month, end_month) tuples
                - storage_cost_pct_per_day: float
                - transaction_cost_pct: float
                - max_holding_days: int (default 365)
                - min_inventory_to_trade: float (default 1.0)
            liquidate_at_end: sell leftover inventory on the last day

        Raises:
            ConfigurationError: malformed config or price series
        """
        self.config = CommodityConfig.from_dict(producer_config)
        self.prices = self._validate_prices(prices)
        self.prediction_matrices = {pd.Timestamp(date): matrix
                                    for date, matrix in (prediction_matrices or {}).items()}
        self.liquidate_at_end = liquidate_at_end

        self.harvest_schedule = HarvestSchedule.build(
            self.prices['date'], self.config.harvest_windows, self.config.harvest_volume)

        self.n_runs = self.n_horizons = None
        if self.prediction_matrices:
            sample_matrix = np.atleast_2d(next(iter(self.prediction_matrices.values())))
            self.n_runs, self.n_horizons = sample_matrix.shape

    @staticmethod
    def _validate_prices(prices):
        if prices is None or len(prices) == 0:
            raise ConfigurationError("Price series is empty")
        missing = {'date', 'price'} - set(prices.columns)
        if missing:
            raise ConfigurationError(f"Price series missing columns: {sorted(missing)}")

        prices = prices.copy()
        prices['date'] = pd.to_datetime(prices['date'])
        prices = prices.sort_values('date').reset_index(drop=True)

        if prices['date'].duplicated().any():
            raise ConfigurationError("Price series has duplicate dates")
        if prices['price'].isna().any() or (prices['price'] <= 0).any():
            raise ConfigurationError("Price series has missing or non-positive prices")
        return prices

    @property
    def costs(self):
        return self.config.costs

    def run(self, strategy) -> Dict:
        """
        Run backtest for a strategy.

        Args:
            strategy: Strategy with decide(), reset(), set_harvest_start()

        Returns:
            dict with:
                - strategy_name: str
                - trades: list of trade dicts
                - daily_state: DataFrame
                - total_revenue, total_transaction_costs, total_storage_costs
                - net_earnings: float
                - total_harvest, final_inventory
                - forced_overrides: days the engine overrode the strategy
                - harvest_schedule: DataFrame
        """
        strategy.reset()
        strategy.bind_harvest_schedule(self.harvest_schedule.inflows)

        self.state = SimulationState()
        self.trades = []
        self.daily_state = []
        self.forced_overrides = 0

        logger.info(f"Backtest {strategy.name} ({self.config.commodity}): "
                    f"{len(self.prices)} days, {len(self.prediction_matrices)} forecast dates")

        for idx in range(len(self.prices)):
            self._step(strategy, idx)

        if self.liquidate_at_end and self.state.inventory > 0:
            last = len(self.prices) - 1
            self._execute_trade(last, self.prices.at[last, 'date'], self.prices.at[last, 'price'],
                                self.state.inventory, 'end_of_simulation_forced_liquidation')
            self.daily_state[-1].update(inventory=self.state.inventory,
                                        cumulative_sales=self.state.cumulative_sales,
                                        action=SELL,
                                        reason='end_of_simulation_forced_liquidation')
            self.state.check_mass_balance()

        total_revenue = sum(t['revenue'] for t in self.trades)
        total_transaction_costs = sum(t['transaction_cost'] for t in self.trades)
        net_earnings = total_revenue - total_transaction_costs - self.state.total_storage_costs

        logger.info(f"Backtest {strategy.name} done: net ${net_earnings:,.2f}, "
                    f"{len(self.trades)} trades")

        return {
            'strategy_name': strategy.name,
            'commodity': self.config.commodity,
            'trades': self.trades,
            'daily_state': pd.DataFrame(self.daily_state),
            'total_revenue': total_revenue,
            'total_transaction_costs': total_transaction_costs,
            'total_storage_costs': self.state.total_storage_costs,
            'net_earnings': net_earnings,
            'total_harvest': self.state.cumulative_harvest,
            'final_inventory': self.state.inventory,
            'forced_overrides': self.forced_overrides,
            'harvest_schedule': self.harvest_schedule.to_frame()
        }

    def run_backtest(self, strategy) -> Dict:
        """Alias of run() used by parameter search code"""
        return self.run(strategy)

    def _step(self, strategy, idx):
        state = self.state
        state.day = idx
        schedule = self.harvest_schedule
        current_date = self.prices.at[idx, 'date']
        current_price = self.prices.at[idx, 'price']
        is_window_start = schedule.is_window_start(idx)

        # Force liquidation before new harvest
        if is_window_start and state.inventory > 0:
            liquidation = strategy.force_liquidate_before_new_harvest(state.inventory)
            if liquidation is not None and liquidation.is_sell:
                self._execute_trade(idx, current_date, current_price,
                                    min(liquidation.amount, state.inventory), liquidation.reason)

        # A run starting mid-season counts its first day as the season start
        if is_window_start or (idx == 0 and schedule.is_harvest_window(idx)):
            state.harvest_start = idx
            strategy.set_harvest_start(idx)

        harvest_added = schedule.inflow(idx)
        state.inventory += harvest_added
        state.cumulative_harvest += harvest_added

        # Storage accrues on inventory held after inflow, before today's sale
        value_per_ton = price_per_ton(current_price, self.config.price_multiplier)
        daily_storage_cost = storage_cost(state.inventory, value_per_ton, self.costs.storage_rate)
        state.total_storage_costs += daily_storage_cost

        predictions = _read_only(self.prediction_matrices.get(current_date))
        price_history = self.prices.iloc[:idx + 1]

        decision = _coerce_decision(strategy.decide(
            idx, state.inventory, current_price, price_history, predictions))
        decision = self._enforce_holding_limit(strategy, idx, decision)

        executed = self._apply_decision(idx, current_date, current_price, decision)

        state.check_mass_balance()
        self.daily_state.append({
            'date': current_date,
            'day': idx,
            'price': current_price,
            'inventory': state.inventory,
            'harvest_added': harvest_added,
            'is_harvest_window': schedule.is_harvest_window(idx),
            'harvest_year': schedule.harvest_year(idx),
            'daily_storage_cost': daily_storage_cost,
            'cumulative_storage_cost': state.total_storage_costs,
            'cumulative_harvest': state.cumulative_harvest,
            'cumulative_sales': state.cumulative_sales,
            'action': SELL if executed else HOLD,
            'reason': decision.reason
        })

    def _enforce_holding_limit(self, strategy, idx, decision):
        state = self.state
        forced = forced_liquidation_decision(idx, state.inventory, state.harvest_start,
                                             self.costs.max_holding_days)
        if forced is None:
            return decision
        if decision.is_sell and decision.amount >= state.inventory - AMOUNT_TOLERANCE:
            return decision

        self.forced_overrides += 1
        logger.warning(f"{strategy.name} day {idx}: holding limit of {self.costs.max_holding_days} "
                       f"days reached with {state.inventory:.2f}t; overriding '{decision.reason}'")
        return forced

    def _apply_decision(self, idx, date, price, decision) -> bool:
        """Validate and execute a SELL; returns True when a trade was made"""
        if not decision.is_sell:
            return False

        state = self.state
        amount = decision.amount
        if amount > state.inventory + AMOUNT_TOLERANCE:
            raise StateInvariantViolation(
                f"sell {amount:.6f} exceeds inventory {state.inventory:.6f} ({decision.reason})",
                day=idx)

        full_liquidation = amount >= state.inventory - AMOUNT_TOLERANCE
        amount = state.inventory if full_liquidation else amount

        if amount < self.config.min_inventory_to_trade and not full_liquidation:
            logger.debug(f"day {idx}: skipping {amount:.3f}t sale below minimum trade size")
            return False

        self._execute_trade(idx, date, price, amount, decision.reason)
        return True

    def _execute_trade(self, day: int, date, price: float, amount: float, reason: str):
        """
        Execute trade with production formulas.

        Uses price_per_ton = price * price_multiplier (20 for cents/lb).
        """
        state = self.state
        value_per_ton = price_per_ton(price, self.config.price_multiplier)
        revenue = amount * value_per_ton
        trade_cost = transaction_cost(amount, value_per_ton, self.costs.transaction_rate)

        state.inventory -= amount
        if abs(state.inventory) < AMOUNT_TOLERANCE:
            state.inventory = 0.0
        if state.inventory < 0:
            raise StateInvariantViolation(f"negative inventory {state.inventory}", day=day)

        state.cumulative_sales += amount
        state.last_sale_day = day

        self.trades.append({
            'day': day,
            'date': date,
            'price': price,
            'price_per_ton': value_per_ton,
            'amount': amount,
            'revenue': revenue,
            'transaction_cost': trade_cost,
            'net_revenue': revenue - trade_cost,
            'reason': reason,
            'inventory_after': state.inventory
        })
        logger.debug(f"day {day}: sold {amount:.2f}t @ {price:.2f} ({reason})")


def trades_to_frame(trades: List[Dict]) -> pd.DataFrame:
    """Trade log as a DataFrame with the standard column order"""
    frame = pd.DataFrame(list(trades))
    if frame.empty:
        return pd.DataFrame(columns=TRADE_COLUMNS)
    extra = [c for c in frame.columns if c not in TRADE_COLUMNS]
    return frame[[c for c in TRADE_COLUMNS if c in frame.columns] + extra]


def _trade_stats(trades, total_revenue):
    n_trades = len(trades)
    if n_trades == 0:
        return {
            'avg_sale_price': 0.0,
            'first_sale_price': 0.0,
            'last_sale_price': 0.0,
            'days_to_liquidate': 0,
            'avg_days_between_trades': 0.0
        }

    total_volume = sum(t['amount'] for t in trades)
    trade_days = [t['day'] for t in trades]
    return {
        'avg_sale_price': total_revenue / total_volume if total_volume > 0 else 0.0,
        'first_sale_price': trades[0]['price'],
        'last_sale_price': trades[-1]['price'],
        'days_to_liquidate': trade_days[-1] - trade_days[0],
        'avg_days_between_trades': float(np.mean(np.diff(trade_days))) if n_trades > 1 else 0.0
    }


def calculate_metrics(results: Dict) -> Dict:
    """
    Calculate performance metrics.

    Args:
        results: Output from BacktestEngine.run()

    Returns:
        dict with performance metrics
    """
    trades = results['trades']
    total_transaction_costs = results['total_transaction_costs']
    total_storage_costs = results['total_storage_costs']

    metrics = {
        'strategy': results['strategy_name'],
        'net_earnings': results['net_earnings'],
        'total_revenue': results['total_revenue'],
        'total_costs': total_transaction_costs + total_storage_costs,
        'transaction_costs': total_transaction_costs,
        'storage_costs': total_storage_costs,
        'n_trades': len(trades),
        'volume_sold': sum(t['amount'] for t in trades),
        'n_forced_liquidations': sum(1 for t in trades if 'forced_liquidation' in t['reason']),
        'forced_overrides': results.get('forced_overrides', 0)
    }
    metrics.update(_trade_stats(trades, results['total_revenue']))
    return metrics


def calculate_metrics_by_year(results: Dict) -> Dict[int, Dict]:
    """
    Performance metrics broken down by calendar year.

    Different forecast models cover different periods, so year-by-year
    comparison keeps model comparisons fair.

    Returns:
        Dict mapping {year: metrics_dict}
    """
    trades = results['trades']
    daily_state = results['daily_state']

    trades_by_year = {}
    for trade in trades:
        trades_by_year.setdefault(pd.Timestamp(trade['date']).year, []).append(trade)

    if len(daily_state) > 0:
        years = pd.to_datetime(daily_state['date']).dt.year
        storage_by_year = daily_state['daily_storage_cost'].groupby(years.values).sum().to_dict()
        days_by_year = years.value_counts().to_dict()
    else:
        storage_by_year, days_by_year = {}, {}

    metrics_by_year = {}
    for year in sorted(set(trades_by_year) | set(days_by_year)):
        year_trades = trades_by_year.get(year, [])
        year_revenue = sum(t['revenue'] for t in year_trades)
        year_transaction_costs = sum(t['transaction_cost'] for t in year_trades)
        year_storage_costs = float(storage_by_year.get(year, 0.0))

        metrics = {
            'year': year,
            'strategy': results['strategy_name'],
            'net_earnings': year_revenue - year_transaction_costs - year_storage_costs,
            'total_revenue': year_revenue,
            'total_costs': year_transaction_costs + year_storage_costs,
            'transaction_costs': year_transaction_costs,
            'storage_costs': year_storage_costs,
            'n_trades': len(year_trades),
            'n_days_in_year': int(days_by_year.get(year, 0))
        }
        metrics.update(_trade_stats(year_trades, year_revenue))
        metrics_by_year[year] = metrics

    return metrics_by_year
