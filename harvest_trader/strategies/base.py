"""
Base Strategy Class

Every strategy implements `decide(day, inventory, current_price,
price_history, predictions=None) -> Decision`. Shared behaviour lives in
small composable helpers rather than a deep class hierarchy:

- forced_liquidation_decision: hard holding-period deadline
- SaleClock: days since the last sale, for cooldowns and fallbacks
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError, StateInvariantViolation

SELL = 'SELL'
HOLD = 'HOLD'


@dataclass(frozen=True)
class Decision:
    """One day's trading decision"""
    action: str
    amount: float = 0.0
    reason: str = ''
    details: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if self.action not in (SELL, HOLD):
            raise StateInvariantViolation(f"Unknown action {self.action!r}")
        if self.amount < 0:
            raise StateInvariantViolation(f"Negative sell amount {self.amount} ({self.reason})")
        if self.action == HOLD and self.amount != 0:
            raise StateInvariantViolation(f"HOLD with non-zero amount {self.amount} ({self.reason})")

    @property
    def is_sell(self) -> bool:
        return self.action == SELL and self.amount > 0

    @classmethod
    def hold(cls, reason, **details) -> 'Decision':
        return cls(HOLD, 0.0, reason, details)

    @classmethod
    def sell(cls, amount, reason, **details) -> 'Decision':
        return cls(SELL, float(amount), reason, details)

    def to_dict(self) -> Dict[str, Any]:
        return {'action': self.action, 'amount': self.amount,
                'reason': self.reason, **self.details}


def forced_liquidation_decision(day, inventory, harvest_start, max_holding_days) -> Optional[Decision]:
    """
    Sell everything once the holding deadline is reached.

    Hard cutoff only: at `day - harvest_start >= max_holding_days` all
    remaining inventory is sold; nothing happens before the deadline.
    """
    if harvest_start is None or inventory <= 0:
        return None

    days_since_harvest = day - harvest_start
    if days_since_harvest >= max_holding_days:
        return Decision.sell(inventory, f'forced_liquidation_{max_holding_days}d',
                             days_since_harvest=days_since_harvest)
    return None


class SaleClock:
    """
    Tracks the day of the last policy-initiated sale.

    Forecast-gated strategies share their baseline's clock, so a sale made
    under either signal restarts the same cooldown.
    """

    def __init__(self, initial_last_sale_day=0):
        self.initial_last_sale_day = initial_last_sale_day
        self.last_sale_day = initial_last_sale_day

    def reset(self):
        self.last_sale_day = self.initial_last_sale_day

    def days_since(self, day) -> int:
        return day - self.last_sale_day

    def in_cooldown(self, day, cooldown_days) -> bool:
        return self.days_since(day) < cooldown_days

    def record(self, day):
        self.last_sale_day = day


def sell_fraction(clock, day, inventory, fraction, reason, **details) -> Decision:
    """Sell `fraction` of inventory and restart the clock; a zero fraction is a HOLD"""
    if fraction <= 0:
        return Decision.hold(reason, **details)
    clock.record(day)
    return Decision.sell(inventory * min(fraction, 1.0), reason, batch_size=fraction, **details)


class Strategy(ABC):
    """Base class for all trading strategies"""

    def __init__(self, name, max_holding_days=365):
        if max_holding_days <= 0:
            raise ConfigurationError(f"max_holding_days must be positive, got {max_holding_days}")
        self.name = name
        self.max_holding_days = max_holding_days
        self.harvest_start = None
        self.harvest_inflows = None

    @abstractmethod
    def decide(self, day, inventory, current_price, price_history, predictions=None) -> Decision:
        """
        Make trading decision for current day.

        Args:
            day: Current day index
            inventory: Current inventory (tons), after today's harvest inflow
            current_price: Current price (cents/lb)
            price_history: DataFrame with columns ['date', 'price'], ending today
            predictions: Optional numpy array (n_paths, n_horizons)

        Returns:
            Decision
        """

    def reset(self):
        """Reset strategy state before a backtest run"""
        self.harvest_start = None

    def set_harvest_start(self, day):
        """Set the day when the current harvest season started"""
        self.harvest_start = day

    def bind_harvest_schedule(self, inflows):
        """Receive the run's daily inflow array (read-only)"""
        self.harvest_inflows = inflows

    def force_liquidate_before_new_harvest(self, inventory) -> Optional[Decision]:
        """
        Liquidate old inventory when a new harvest season starts.
        Called by the backtest engine on the first day of each season.
        """
        if inventory > 0:
            return Decision.sell(inventory, 'new_harvest_starting_liquidate_old_inventory')
        return None

    def _forced_liquidation(self, day, inventory) -> Optional[Decision]:
        return forced_liquidation_decision(day, inventory, self.harvest_start, self.max_holding_days)

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"
