"""
Cost Model

Storage and transaction costs as pure functions. Rates are fractions
(0.00005 = 0.005 %); commodity configs carry percentages, converted by
`pct_to_rate` / `CostParameters`.
"""

from dataclasses import dataclass

from ..exceptions import ConfigurationError

# cents/lb -> $/ton (2000 lbs per ton, 100 cents per dollar)
CENTS_PER_LB_TO_DOLLARS_PER_TON = 20.0


def pct_to_rate(pct):
    return pct / 100.0


def price_per_ton(price, multiplier=CENTS_PER_LB_TO_DOLLARS_PER_TON):
    """Convert a quoted price into value per ton of inventory"""
    return price * multiplier


def storage_cost(inventory, price, rate_per_day, days=1):
    """
    Storage cost of holding `inventory` for `days` days.

    storage_cost = inventory * price * rate_per_day * days
    """
    return inventory * price * rate_per_day * days


def transaction_cost(sale_amount, price, rate):
    """
    Cost levied on an executed sale.

    transaction_cost = sale_amount * price * rate
    """
    return sale_amount * price * rate


@dataclass(frozen=True)
class CostParameters:
    """
    Per-run cost configuration.

    Attributes:
        storage_cost_pct_per_day: daily storage cost, % of inventory value
        transaction_cost_pct: transaction cost, % of sale value
        max_holding_days: days after harvest start before forced liquidation
    """
    storage_cost_pct_per_day: float = 0.005
    transaction_cost_pct: float = 0.01
    max_holding_days: int = 365

    def __post_init__(self):
        if self.storage_cost_pct_per_day < 0:
            raise ConfigurationError(
                f"storage_cost_pct_per_day must be >= 0, got {self.storage_cost_pct_per_day}")
        if self.transaction_cost_pct < 0:
            raise ConfigurationError(
                f"transaction_cost_pct must be >= 0, got {self.transaction_cost_pct}")
        if self.max_holding_days <= 0:
            raise ConfigurationError(
                f"max_holding_days must be positive, got {self.max_holding_days}")

    @property
    def storage_rate(self):
        return pct_to_rate(self.storage_cost_pct_per_day)

    @property
    def transaction_rate(self):
        return pct_to_rate(self.transaction_cost_pct)
