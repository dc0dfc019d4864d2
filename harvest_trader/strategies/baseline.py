"""
Baseline Trading Strategies

Rule-based strategies that ignore forecasts:
1. ImmediateSaleStrategy - Scheduled full liquidation
2. EqualBatchStrategy - Fixed-fraction disposal on a schedule
3. PriceThresholdStrategy - Breakout above the trailing mean + indicators
4. MovingAverageStrategy - Downward MA crossover + indicators

PriceThreshold and MovingAverage expose `daily_signal()` (technical signal plus
the fallback sale) so the forecast-gated strategies can ask "what would the
baseline do today" without trading.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from .base import Decision, SaleClock, Strategy, sell_fraction
from .indicators import calculate_adx, calculate_rsi


@dataclass(frozen=True)
class BaselineSignal:
    triggered: bool
    batch_size: float
    reason: str
    indicators: Dict[str, Any] = field(default_factory=dict)
    fallback: bool = False


class SignalBaselineStrategy(Strategy):
    """
    Baseline driven by a daily technical signal plus a fallback sale.

    Subclasses implement `signal()` and `daily_signal()`; the cooldown gates
    technical signals only, never the fallback.
    """

    def fallback_signal(self, day):
        """Sell `batch_baseline` once `max_days_without_sale` days pass without a sale"""
        days_since_sale = self.clock.days_since(day)
        if days_since_sale >= self.max_days_without_sale:
            return BaselineSignal(True, self.batch_baseline, f'fallback_{days_since_sale}d', fallback=True)
        return None

    def decide(self, day, inventory, current_price, price_history, predictions=None):
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        signal = self.daily_signal(day, current_price, price_history)
        if not signal.triggered:
            return Decision.hold(signal.reason)

        days_since_sale = self.clock.days_since(day)
        if not signal.fallback and days_since_sale < self.cooldown_days:
            return Decision.hold(f'cooldown_{self.cooldown_days - days_since_sale}d')

        return sell_fraction(self.clock, day, inventory, signal.batch_size, signal.reason,
                             **signal.indicators)

    def reset(self):
        super().reset()
        self.clock.reset()


class ImmediateSaleStrategy(Strategy):
    """
    Baseline: sell the whole inventory every `sale_frequency_days`
    once at least `min_batch_size` tons have accumulated.
    """

    def __init__(self,
                 min_batch_size=5.0,
                 sale_frequency_days=7,
                 max_holding_days=365):
        super().__init__("Immediate Sale", max_holding_days)
        self.min_batch_size = min_batch_size
        self.sale_frequency_days = sale_frequency_days
        # Ready to sell on the first eligible day
        self.clock = SaleClock(initial_last_sale_day=-sale_frequency_days)

    def decide(self, day, inventory, current_price, price_history, predictions=None):
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        if inventory < self.min_batch_size:
            return Decision.hold(f'accumulating_need_{self.min_batch_size:.1f}t')

        days_since_sale = self.clock.days_since(day)
        if days_since_sale < self.sale_frequency_days:
            return Decision.hold(f'waiting_for_sale_day_{days_since_sale}')

        return sell_fraction(self.clock, day, inventory, 1.0,
                             f'immediate_sale_{inventory:.1f}t')

    def reset(self):
        super().reset()
        self.clock.reset()


class EqualBatchStrategy(Strategy):
    """Baseline: sell a fixed fraction of inventory every `frequency_days`, ignoring price"""

    def __init__(self,
                 batch_size=0.25,
                 frequency_days=30,
                 max_holding_days=365):
        super().__init__("Equal Batches", max_holding_days)
        self.batch_size = batch_size
        self.frequency_days = frequency_days
        self.clock = SaleClock(initial_last_sale_day=-frequency_days)

    def decide(self, day, inventory, current_price, price_history, predictions=None):
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        if self.clock.days_since(day) >= self.frequency_days:
            return sell_fraction(self.clock, day, inventory, self.batch_size, 'scheduled_batch')

        return Decision.hold('waiting_for_schedule')

    def reset(self):
        super().reset()
        self.clock.reset()


class PriceThresholdStrategy(SignalBaselineStrategy):
    """
    Baseline: price breakout above the trailing mean

    - signal when price > MA(ma_window) * (1 + threshold_pct)
    - batch size from RSI (overbought?) x ADX (strong trend?) table
    - cooldown between sales, fallback sale after max_days_without_sale
    """

    def __init__(self,
                 threshold_pct=0.05,
                 ma_window=30,
                 # Batch sizing
                 batch_baseline=0.25,
                 batch_overbought_strong=0.35,
                 batch_overbought=0.30,
                 batch_strong_trend=0.20,
                 # RSI/ADX thresholds
                 rsi_overbought=70,
                 rsi_moderate=65,
                 adx_strong=25,
                 indicator_period=14,
                 # Timing
                 cooldown_days=7,
                 max_days_without_sale=60,
                 max_holding_days=365):

        super().__init__("Price Threshold", max_holding_days)
        self.threshold_pct = threshold_pct
        self.ma_window = ma_window

        self.batch_baseline = batch_baseline
        self.batch_overbought_strong = batch_overbought_strong
        self.batch_overbought = batch_overbought
        self.batch_strong_trend = batch_strong_trend

        self.rsi_overbought = rsi_overbought
        self.rsi_moderate = rsi_moderate
        self.adx_strong = adx_strong
        self.indicator_period = indicator_period

        self.cooldown_days = cooldown_days
        self.max_days_without_sale = max_days_without_sale
        self.clock = SaleClock(initial_last_sale_day=0)

    def threshold(self, current_price, price_history):
        if len(price_history) >= self.ma_window:
            moving_average = price_history['price'].tail(self.ma_window).mean()
            return moving_average * (1 + self.threshold_pct)
        # Not enough history: the threshold sits above today's price
        return current_price * (1 + self.threshold_pct)

    def signal(self, current_price, price_history) -> BaselineSignal:
        threshold = self.threshold(current_price, price_history)
        if current_price <= threshold:
            return BaselineSignal(False, 0.0, f'below_threshold_{current_price:.2f}<={threshold:.2f}')

        batch_size, reason, indicators = self._analyze_technicals(price_history)
        return BaselineSignal(True, batch_size, reason, indicators)

    def daily_signal(self, day, current_price, price_history) -> BaselineSignal:
        """Breakout signal, or the fallback sale when there is no breakout"""
        signal = self.signal(current_price, price_history)
        if signal.triggered:
            return signal
        return self.fallback_signal(day) or signal

    def _analyze_technicals(self, price_history):
        rsi = calculate_rsi(price_history['price'].to_numpy(), period=self.indicator_period)
        adx, _, _ = calculate_adx(price_history, period=self.indicator_period)
        indicators = {'rsi': rsi, 'adx': adx}

        if rsi > self.rsi_overbought and adx > self.adx_strong:
            return self.batch_overbought_strong, f'overbought_strong_trend_rsi{rsi:.0f}_adx{adx:.0f}', indicators
        if rsi > self.rsi_overbought:
            return self.batch_overbought, f'overbought_rsi{rsi:.0f}', indicators
        if adx > self.adx_strong and rsi < self.rsi_moderate:
            return self.batch_strong_trend, f'strong_trend_rsi{rsi:.0f}_adx{adx:.0f}', indicators
        return self.batch_baseline, f'baseline_rsi{rsi:.0f}_adx{adx:.0f}', indicators


class MovingAverageStrategy(SignalBaselineStrategy):
    """
    Baseline: moving average crossover

    Downward cross (price falls through its MA) sells; upward cross holds for
    higher prices; no cross holds.
    """

    def __init__(self,
                 ma_period=30,
                 # Batch sizing
                 batch_baseline=0.25,
                 batch_strong_momentum=0.20,
                 batch_overbought_strong=0.35,
                 batch_overbought=0.30,
                 # RSI/ADX thresholds
                 rsi_overbought=70,
                 rsi_min=45,
                 adx_strong=25,
                 indicator_period=14,
                 # Timing
                 cooldown_days=7,
                 max_days_without_sale=60,
                 max_holding_days=365):

        super().__init__("Moving Average", max_holding_days)
        self.ma_period = ma_period

        self.batch_baseline = batch_baseline
        self.batch_strong_momentum = batch_strong_momentum
        self.batch_overbought_strong = batch_overbought_strong
        self.batch_overbought = batch_overbought

        self.rsi_overbought = rsi_overbought
        self.rsi_min = rsi_min
        self.adx_strong = adx_strong
        self.indicator_period = indicator_period

        self.cooldown_days = cooldown_days
        self.max_days_without_sale = max_days_without_sale
        self.clock = SaleClock(initial_last_sale_day=0)

    def has_history(self, price_history):
        return len(price_history) >= self.ma_period + 1

    def crossover(self, current_price, price_history):
        """Return 'up', 'down' or None for today's MA crossover"""
        recent = price_history['price'].tail(self.ma_period + 1).to_numpy(dtype=float)
        ma_current = np.mean(recent[-self.ma_period:])
        ma_prev = np.mean(recent[:-1])
        prev_price = recent[-2]

        if prev_price <= ma_prev and current_price > ma_current:
            return 'up'
        if prev_price >= ma_prev and current_price < ma_current:
            return 'down'
        return None

    def signal(self, current_price, price_history) -> BaselineSignal:
        if not self.has_history(price_history):
            return BaselineSignal(False, 0.0, 'insufficient_history')

        cross = self.crossover(current_price, price_history)
        if cross == 'up':
            return BaselineSignal(False, 0.0, 'upward_crossover_bullish')
        if cross is None:
            return BaselineSignal(False, 0.0, 'no_crossover')

        batch_size, reason, indicators = self._analyze_technicals(price_history)
        return BaselineSignal(True, batch_size, reason, indicators)

    def daily_signal(self, day, current_price, price_history) -> BaselineSignal:
        """The fallback sale takes precedence over the crossover signal"""
        return self.fallback_signal(day) or self.signal(current_price, price_history)

    def _analyze_technicals(self, price_history):
        rsi = calculate_rsi(price_history['price'].to_numpy(), period=self.indicator_period)
        adx, _, _ = calculate_adx(price_history, period=self.indicator_period)
        indicators = {'rsi': rsi, 'adx': adx}

        if adx > self.adx_strong and self.rsi_min <= rsi <= self.rsi_overbought:
            return self.batch_strong_momentum, f'strong_momentum_rsi{rsi:.0f}_adx{adx:.0f}', indicators
        if rsi > self.rsi_overbought and adx > self.adx_strong:
            return self.batch_overbought_strong, f'overbought_strong_trend_rsi{rsi:.0f}_adx{adx:.0f}', indicators
        if rsi > self.rsi_overbought:
            return self.batch_overbought, f'overbought_rsi{rsi:.0f}', indicators
        return self.batch_baseline, f'baseline_crossover_rsi{rsi:.0f}_adx{adx:.0f}', indicators
