"""
Linear Programming Optimizers

Two formulations of the same inventory liquidation problem:

- solve_window_lp: the short-horizon problem solved each day by the
  rolling-horizon MPC strategy, with a terminal value on leftover inventory
- solve_optimal_liquidation_lp: the perfect-foresight benchmark over the
  whole price series, with all inventory sold by the last day

Mathematical Formulation:
  Decision Variables:
    - sell[t] >= 0: tons sold on day t
    - inv[t] >= 0: tons held at the end of day t

  Objective: Maximize
    sum_t [ sell[t] * price[t] * (1 - transaction_rate) ]
    - sum_t [ inv[t] * price[t] * storage_rate ]
    + terminal_value * inv[T-1]

  Constraints:
    - sell[t] + inv[t] - inv[t-1] = harvest[t]   (inventory balance)
    - sell[0] + inv[0] = inventory_0 + harvest[0]

Solved with scipy.optimize.linprog (HiGHS). Prices must already be in value
per ton.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd
from scipy.optimize import linprog

from ..core.costs import CENTS_PER_LB_TO_DOLLARS_PER_TON
from ..core.logger import get_logger
from ..exceptions import ConfigurationError, SolverFailure

logger = get_logger(__name__)

# Sell amounts below this are numerical noise
TRADE_THRESHOLD = 0.01


@dataclass(frozen=True)
class WindowSolution:
    sell: np.ndarray
    inventory: np.ndarray
    objective_value: float
    terminal_shadow_price: Optional[float]


def _build_balance_constraints(n_days, initial_inventory, harvest):
    """A_eq, b_eq for sell[t] + inv[t] - inv[t-1] = harvest[t]"""
    A_eq = np.hstack([np.eye(n_days), np.eye(n_days) - np.eye(n_days, k=-1)])
    b_eq = np.asarray(harvest, dtype=float).copy()
    b_eq[0] += initial_inventory
    return A_eq, b_eq


def _solve(c, A_eq, b_eq, time_limit=None):
    options = {'disp': False, 'presolve': True}
    if time_limit is not None:
        options['time_limit'] = float(time_limit)

    try:
        result = linprog(
            c=c,
            A_eq=A_eq,
            b_eq=b_eq,
            bounds=[(0, None)] * len(c),
            method='highs',
            options=options
        )
    except ValueError as e:
        raise SolverFailure(f"LP rejected: {e}") from e

    if not result.success:
        raise SolverFailure(f"LP solver failed: {result.message}", status=result.status)
    return result


def solve_window_lp(current_inventory,
                    future_prices,
                    future_harvest,
                    storage_rate,
                    transaction_rate,
                    terminal_value_per_unit=None,
                    time_limit=None) -> WindowSolution:
    """
    Solve the local LP for one forecast window.

    Args:
        current_inventory: tons on hand at the start of day 0
        future_prices: predicted prices per ton for the window (day 0 = today)
        future_harvest: inflow per window day, same length as future_prices
        storage_rate: daily storage cost fraction
        transaction_rate: transaction cost fraction
        terminal_value_per_unit: value credited per ton left at the window end;
                                 None leaves terminal inventory worthless
        time_limit: HiGHS time limit in seconds

    Returns:
        WindowSolution. terminal_shadow_price is the dual of the last balance
        row: the marginal objective value of one more ton at the horizon.

    Raises:
        SolverFailure: solver did not reach an optimal solution
    """
    future_prices = np.asarray(future_prices, dtype=float)
    n_days = len(future_prices)
    if n_days == 0:
        raise ConfigurationError("Forecast window is empty")
    if len(future_harvest) != n_days:
        raise ConfigurationError(
            f"future_harvest has {len(future_harvest)} days, expected {n_days}")

    # linprog minimizes, so profit terms are negated
    c = np.concatenate([
        -future_prices * (1 - transaction_rate),
        future_prices * storage_rate
    ])
    if terminal_value_per_unit is not None:
        c[2 * n_days - 1] -= terminal_value_per_unit

    A_eq, b_eq = _build_balance_constraints(n_days, current_inventory, future_harvest)
    result = _solve(c, A_eq, b_eq, time_limit)

    shadow_price = None
    eqlin = getattr(result, 'eqlin', None)
    if eqlin is not None and getattr(eqlin, 'marginals', None) is not None:
        shadow_price = float(-eqlin.marginals[-1])

    return WindowSolution(
        sell=result.x[:n_days],
        inventory=result.x[n_days:],
        objective_value=float(-result.fun),
        terminal_shadow_price=shadow_price
    )


def solve_optimal_liquidation_lp(prices,
                                 inflows,
                                 storage_rate,
                                 transaction_rate,
                                 price_multiplier=CENTS_PER_LB_TO_DOLLARS_PER_TON,
                                 dates=None,
                                 time_limit=None) -> Dict:
    """
    Perfect-foresight benchmark: the best achievable net earnings for a
    price series and harvest inflow, with inventory forced to zero on the
    last day.

    Args:
        prices: quoted prices, one per simulation day (cents/lb)
        inflows: harvest inflow per simulation day (tons)
        storage_rate: daily storage cost fraction
        transaction_rate: transaction cost fraction
        price_multiplier: quoted price -> value per ton
        dates: optional dates for the trade log
        time_limit: HiGHS time limit in seconds

    Returns:
        Dict with max_net_earnings, totals, trades, daily_state,
        sell_schedule and inventory_schedule
    """
    prices = np.asarray(prices, dtype=float)
    inflows = np.asarray(inflows, dtype=float)
    n_days = len(prices)
    if n_days == 0 or len(inflows) != n_days:
        raise ConfigurationError(
            f"prices ({n_days}) and inflows ({len(inflows)}) must be non-empty and aligned")

    logger.info(f"Optimal liquidation LP: {n_days} days, {inflows.sum():.1f} tons harvested, "
                f"{2 * n_days:,} variables")

    value_per_ton = prices * price_multiplier
    storage_coeff = value_per_ton * storage_rate
    c = np.concatenate([-value_per_ton * (1 - transaction_rate), storage_coeff])

    A_eq, b_eq = _build_balance_constraints(n_days, 0.0, inflows)

    # Liquidate everything by the last day
    final_row = np.zeros(2 * n_days)
    final_row[2 * n_days - 1] = 1
    A_eq = np.vstack([A_eq, final_row])
    b_eq = np.append(b_eq, 0.0)

    result = _solve(c, A_eq, b_eq, time_limit)

    sell_solution = result.x[:n_days]
    inv_solution = result.x[n_days:]
    net_earnings = float(-result.fun)

    if dates is None:
        dates = pd.RangeIndex(n_days)

    trades = []
    for t in np.flatnonzero(sell_solution > TRADE_THRESHOLD):
        revenue = sell_solution[t] * value_per_ton[t]
        trades.append({
            'day': int(t),
            'date': dates[t],
            'price': prices[t],
            'amount': sell_solution[t],
            'revenue': revenue,
            'transaction_cost': revenue * transaction_rate
        })

    total_revenue = sum(trade['revenue'] for trade in trades)
    total_transaction_costs = sum(trade['transaction_cost'] for trade in trades)
    total_storage_costs = float(np.sum(inv_solution * storage_coeff))

    daily_state = pd.DataFrame({
        'day': np.arange(n_days),
        'date': list(dates),
        'price': prices,
        'inventory': inv_solution,
        'sell_amount': sell_solution,
        'storage_cost': inv_solution * storage_coeff
    })

    logger.info(f"Optimal solution: net earnings ${net_earnings:,.2f}, "
                f"{len(trades)} trades, storage ${total_storage_costs:,.2f}")

    return {
        'max_net_earnings': net_earnings,
        'total_revenue': total_revenue,
        'total_transaction_costs': total_transaction_costs,
        'total_storage_costs': total_storage_costs,
        'trades': trades,
        'daily_state': daily_state,
        'sell_schedule': sell_solution,
        'inventory_schedule': inv_solution
    }
