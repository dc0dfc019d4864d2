"""
Prediction-Based Trading Strategies

Contains 5 forecast-aware strategies:
1. PriceThresholdPredictive - Matched pair (PriceThreshold + forecast gate)
2. MovingAveragePredictive - Matched pair (MovingAverage + forecast gate)
3. ExpectedValueStrategy - Standalone (EV optimization)
4. ConsensusStrategy - Standalone (ensemble consensus)
5. RiskAdjustedStrategy - Standalone (risk/return tiers)

MATCHED PAIRS use three-tier forecast usage:
1. HIGH confidence -> OVERRIDE the baseline
2. MEDIUM confidence -> BLEND baseline and forecast
3. LOW/NO confidence -> the baseline's own decision, unchanged

Cost parameters are percentages (0.005 = 0.005 % per day) and are injected
from the commodity config.
"""

from ..core.costs import pct_to_rate
from .base import Decision, SaleClock, Strategy, sell_fraction
from .baseline import MovingAverageStrategy, PriceThresholdStrategy
from .forecast_signals import (DOWNWARD, HIGH, LOW, MODERATE_DOWNWARD, MODERATE_UPWARD,
                               STRONG_DOWNWARD, STRONG_UPWARD, UPWARD, analyze_forecast,
                               find_optimal_sale_day, has_ensemble, horizon_outlook)
from .indicators import calculate_adx, calculate_prediction_confidence


# =============================================================================
# MATCHED PAIRS
# =============================================================================

class ForecastGatedStrategy(Strategy):
    """
    Forecast gate wrapped around a rule-based baseline.

    The baseline instance owns the sale clock, so the pair shares one
    cooldown. Without a usable forecast the baseline decides on its own,
    which makes the pair identical to its baseline under LOW confidence.
    """

    def __init__(self,
                 name,
                 baseline,
                 storage_cost_pct_per_day=0.005,
                 transaction_cost_pct=0.01,
                 # Confidence thresholds
                 high_confidence_cv=0.05,
                 medium_confidence_cv=0.15,
                 # Direction thresholds (net benefit %)
                 strong_positive_threshold=2.0,
                 strong_negative_threshold=-1.0,
                 moderate_threshold=0.5,
                 # Forecast-driven batch sizes
                 batch_pred_hold=0.0,
                 batch_pred_aggressive=0.40,
                 batch_pred_cautious=0.15,
                 blend_reduction=0.5):

        super().__init__(name, baseline.max_holding_days)
        self.baseline = baseline

        self.storage_cost_pct_per_day = storage_cost_pct_per_day
        self.transaction_cost_pct = transaction_cost_pct
        self.high_confidence_cv = high_confidence_cv
        self.medium_confidence_cv = medium_confidence_cv
        self.strong_positive_threshold = strong_positive_threshold
        self.strong_negative_threshold = strong_negative_threshold
        self.moderate_threshold = moderate_threshold
        self.batch_pred_hold = batch_pred_hold
        self.batch_pred_aggressive = batch_pred_aggressive
        self.batch_pred_cautious = batch_pred_cautious
        self.blend_reduction = blend_reduction

    @property
    def clock(self):
        return self.baseline.clock

    @property
    def cooldown_days(self):
        return self.baseline.cooldown_days

    def decide(self, day, inventory, current_price, price_history, predictions=None):
        """
        DECISION HIERARCHY:
        1. Forced liquidation
        2. No forecast or LOW confidence -> baseline decides
        3. Cooldown check
        4. HIGH -> override, MEDIUM -> blend
        """
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        if not has_ensemble(predictions):
            return self.baseline.decide(day, inventory, current_price, price_history)

        signal = self.analyze(current_price, predictions)
        if signal.confidence == LOW:
            return self.baseline.decide(day, inventory, current_price, price_history, predictions)

        days_since_sale = self.clock.days_since(day)
        if days_since_sale < self.cooldown_days:
            return Decision.hold(f'cooldown_{self.cooldown_days - days_since_sale}d')

        if signal.confidence == HIGH:
            return self._override(day, inventory, signal)
        return self._blend(day, inventory, current_price, price_history, signal)

    def analyze(self, current_price, predictions):
        return analyze_forecast(
            current_price, predictions,
            storage_rate=pct_to_rate(self.storage_cost_pct_per_day),
            transaction_rate=pct_to_rate(self.transaction_cost_pct),
            high_confidence_cv=self.high_confidence_cv,
            medium_confidence_cv=self.medium_confidence_cv,
            strong_positive_threshold=self.strong_positive_threshold,
            strong_negative_threshold=self.strong_negative_threshold,
            moderate_threshold=self.moderate_threshold
        )

    def _override(self, day, inventory, signal):
        """HIGH confidence: the forecast replaces the baseline signal"""
        net, cv = signal.net_benefit_pct, signal.cv

        if signal.direction == STRONG_UPWARD:
            batch_size = self.batch_pred_hold
            reason = f'OVERRIDE_hold_strong_upward_net{net:.2f}%_cv{cv:.2%}'
        elif signal.direction == MODERATE_UPWARD:
            batch_size = self.batch_pred_cautious
            reason = f'OVERRIDE_small_hedge_mod_upward_net{net:.2f}%_cv{cv:.2%}'
        elif signal.direction == STRONG_DOWNWARD:
            batch_size = self.batch_pred_aggressive
            reason = f'OVERRIDE_aggressive_strong_downward_net{net:.2f}%_cv{cv:.2%}'
        elif signal.direction == MODERATE_DOWNWARD:
            batch_size = self.baseline.batch_baseline
            reason = f'OVERRIDE_baseline_mod_downward_net{net:.2f}%_cv{cv:.2%}'
        else:
            batch_size = self.baseline.batch_baseline
            reason = f'OVERRIDE_neutral_net{net:.2f}%_cv{cv:.2%}'

        return sell_fraction(self.clock, day, inventory, batch_size, reason,
                             confidence=signal.confidence, net_benefit_pct=net, cv=cv)

    def _blend(self, day, inventory, current_price, price_history, signal):
        """MEDIUM confidence: moderate the baseline when the forecast disagrees"""
        baseline_signal = self.baseline.daily_signal(day, current_price, price_history)
        net = signal.net_benefit_pct

        if baseline_signal.triggered:
            if signal.direction in UPWARD:
                batch_size = baseline_signal.batch_size * self.blend_reduction
                reason = f'BLEND_reduce_sell_pred_upward_net{net:.2f}%'
            else:
                batch_size = baseline_signal.batch_size
                reason = f'BLEND_follow_baseline_{baseline_signal.reason}'
        elif signal.direction in DOWNWARD:
            batch_size = self.batch_pred_cautious
            reason = f'BLEND_cautious_sell_pred_downward_net{net:.2f}%'
        else:
            return Decision.hold('BLEND_hold_pred_agrees')

        return sell_fraction(self.clock, day, inventory, batch_size, reason,
                             confidence=signal.confidence, net_benefit_pct=net, cv=signal.cv)

    def reset(self):
        super().reset()
        self.baseline.reset()

    def set_harvest_start(self, day):
        super().set_harvest_start(day)
        self.baseline.set_harvest_start(day)

    def bind_harvest_schedule(self, inflows):
        super().bind_harvest_schedule(inflows)
        self.baseline.bind_harvest_schedule(inflows)


class PriceThresholdPredictive(ForecastGatedStrategy):
    """
    Matched Pair: PriceThreshold + Predictions

    Baseline keyword arguments (threshold_pct, batch sizes, RSI/ADX
    thresholds, cooldown_days, max_days_without_sale) are identical to
    PriceThresholdStrategy.
    """

    def __init__(self,
                 storage_cost_pct_per_day=0.005,
                 transaction_cost_pct=0.01,
                 high_confidence_cv=0.05,
                 medium_confidence_cv=0.15,
                 strong_positive_threshold=2.0,
                 strong_negative_threshold=-1.0,
                 moderate_threshold=0.5,
                 batch_pred_hold=0.0,
                 batch_pred_aggressive=0.40,
                 batch_pred_cautious=0.15,
                 max_holding_days=365,
                 **baseline_params):

        super().__init__(
            "Price Threshold Predictive",
            PriceThresholdStrategy(max_holding_days=max_holding_days, **baseline_params),
            storage_cost_pct_per_day=storage_cost_pct_per_day,
            transaction_cost_pct=transaction_cost_pct,
            high_confidence_cv=high_confidence_cv,
            medium_confidence_cv=medium_confidence_cv,
            strong_positive_threshold=strong_positive_threshold,
            strong_negative_threshold=strong_negative_threshold,
            moderate_threshold=moderate_threshold,
            batch_pred_hold=batch_pred_hold,
            batch_pred_aggressive=batch_pred_aggressive,
            batch_pred_cautious=batch_pred_cautious
        )


class MovingAveragePredictive(ForecastGatedStrategy):
    """
    Matched Pair: MovingAverage + Predictions

    Baseline keyword arguments (ma_period, batch sizes, RSI/ADX thresholds,
    cooldown_days, max_days_without_sale) are identical to
    MovingAverageStrategy.
    """

    def __init__(self,
                 storage_cost_pct_per_day=0.005,
                 transaction_cost_pct=0.01,
                 high_confidence_cv=0.05,
                 medium_confidence_cv=0.15,
                 strong_positive_threshold=2.0,
                 strong_negative_threshold=-1.0,
                 moderate_threshold=0.5,
                 batch_pred_hold=0.0,
                 batch_pred_aggressive=0.40,
                 batch_pred_cautious=0.15,
                 max_holding_days=365,
                 **baseline_params):

        super().__init__(
            "Moving Average Predictive",
            MovingAverageStrategy(max_holding_days=max_holding_days, **baseline_params),
            storage_cost_pct_per_day=storage_cost_pct_per_day,
            transaction_cost_pct=transaction_cost_pct,
            high_confidence_cv=high_confidence_cv,
            medium_confidence_cv=medium_confidence_cv,
            strong_positive_threshold=strong_positive_threshold,
            strong_negative_threshold=strong_negative_threshold,
            moderate_threshold=moderate_threshold,
            batch_pred_hold=batch_pred_hold,
            batch_pred_aggressive=batch_pred_aggressive,
            batch_pred_cautious=batch_pred_cautious
        )


# =============================================================================
# STANDALONE FORECAST STRATEGIES
# =============================================================================

class StandaloneForecastStrategy(Strategy):
    """
    Shared skeleton: forced liquidation, cooldown, periodic fallback sale when
    no forecast is supplied, then `_analyze` picks the batch size.
    """

    def __init__(self, name, storage_cost_pct_per_day, transaction_cost_pct,
                 cooldown_days=7, fallback_batch=0.20, fallback_frequency_days=30,
                 max_holding_days=365):
        super().__init__(name, max_holding_days)
        self.storage_cost_pct_per_day = storage_cost_pct_per_day
        self.transaction_cost_pct = transaction_cost_pct
        self.cooldown_days = cooldown_days
        self.fallback_batch = fallback_batch
        self.fallback_frequency_days = fallback_frequency_days
        self.clock = SaleClock(initial_last_sale_day=-cooldown_days)

    @property
    def storage_rate(self):
        return pct_to_rate(self.storage_cost_pct_per_day)

    @property
    def transaction_rate(self):
        return pct_to_rate(self.transaction_cost_pct)

    def decide(self, day, inventory, current_price, price_history, predictions=None):
        if inventory <= 0:
            return Decision.hold('no_inventory')

        forced = self._forced_liquidation(day, inventory)
        if forced:
            return forced

        days_since_sale = self.clock.days_since(day)
        if days_since_sale < self.cooldown_days:
            return Decision.hold(f'cooldown_{self.cooldown_days - days_since_sale}d')

        if not has_ensemble(predictions):
            if days_since_sale >= self.fallback_frequency_days:
                return sell_fraction(self.clock, day, inventory, self.fallback_batch,
                                     'no_predictions_fallback')
            return Decision.hold('no_predictions_waiting')

        batch_size, reason, details = self._analyze(current_price, price_history, predictions)
        return sell_fraction(self.clock, day, inventory, batch_size, reason, **details)

    def _analyze(self, current_price, price_history, predictions):
        raise NotImplementedError

    def _trend_strength(self, price_history):
        adx, _, _ = calculate_adx(price_history, period=min(14, len(price_history) - 1))
        return adx

    def reset(self):
        super().reset()
        self.clock.reset()


class ExpectedValueStrategy(StandaloneForecastStrategy):
    """
    Standalone prediction: Expected value optimization

    Net benefit of waiting for the best forecast day, crossed with forecast
    confidence (CV) and trend strength (ADX).
    """

    def __init__(self,
                 storage_cost_pct_per_day,
                 transaction_cost_pct,
                 min_net_benefit_pct=0.5,
                 negative_threshold_pct=-0.3,
                 high_confidence_cv=0.05,
                 medium_confidence_cv=0.10,
                 strong_trend_adx=25,
                 batch_positive_confident=0.0,
                 batch_positive_uncertain=0.10,
                 batch_marginal=0.15,
                 batch_negative_mild=0.25,
                 batch_negative_strong=0.35,
                 cooldown_days=7,
                 baseline_batch=0.15,
                 baseline_frequency=30,
                 max_holding_days=365):

        super().__init__("Expected Value", storage_cost_pct_per_day, transaction_cost_pct,
                         cooldown_days=cooldown_days,
                         fallback_batch=baseline_batch,
                         fallback_frequency_days=baseline_frequency,
                         max_holding_days=max_holding_days)
        self.min_net_benefit_pct = min_net_benefit_pct
        self.negative_threshold_pct = negative_threshold_pct
        self.high_confidence_cv = high_confidence_cv
        self.medium_confidence_cv = medium_confidence_cv
        self.strong_trend_adx = strong_trend_adx
        self.batch_positive_confident = batch_positive_confident
        self.batch_positive_uncertain = batch_positive_uncertain
        self.batch_marginal = batch_marginal
        self.batch_negative_mild = batch_negative_mild
        self.batch_negative_strong = batch_negative_strong

    def _analyze(self, current_price, price_history, predictions):
        optimal_day, net_benefit_pct = find_optimal_sale_day(
            current_price, predictions, self.storage_rate, self.transaction_rate)
        cv = calculate_prediction_confidence(predictions, horizon_day=13)
        adx = self._trend_strength(price_history)
        details = {'net_benefit_pct': net_benefit_pct, 'cv': cv, 'adx': adx,
                   'optimal_day': optimal_day}

        if net_benefit_pct > self.min_net_benefit_pct:
            if cv < self.high_confidence_cv and adx > self.strong_trend_adx:
                return (self.batch_positive_confident,
                        f'net_benefit_{net_benefit_pct:.2f}%_high_conf_hold_to_day{optimal_day}', details)
            if cv < self.medium_confidence_cv:
                return (self.batch_positive_uncertain,
                        f'net_benefit_{net_benefit_pct:.2f}%_med_conf_small_hedge_day{optimal_day}', details)
            return self.batch_marginal, f'net_benefit_{net_benefit_pct:.2f}%_low_conf_hedge', details

        if net_benefit_pct > 0:
            return self.batch_marginal, f'marginal_benefit_{net_benefit_pct:.2f}%_gradual_liquidation', details

        if net_benefit_pct > self.negative_threshold_pct:
            return self.batch_negative_mild, f'mild_negative_{net_benefit_pct:.2f}%_avoid_storage', details

        return self.batch_negative_strong, f'strong_negative_{net_benefit_pct:.2f}%_sell_to_cut_losses', details


class ConsensusStrategy(StandaloneForecastStrategy):
    """
    Ensemble consensus at a single evaluation day.

    Decision Logic:
    1. Share of paths whose return beats min_return (bullish fraction)
    2. Very strong consensus + net benefit: HOLD
    3. Bearish consensus: SELL aggressively
    4. Batch size modulated by consensus strength in between
    """

    def __init__(self,
                 storage_cost_pct_per_day,
                 transaction_cost_pct,
                 # Consensus thresholds
                 consensus_threshold=0.70,
                 very_strong_consensus=0.85,
                 moderate_consensus=0.60,
                 # Percentage-based decision thresholds
                 min_return=0.03,
                 min_net_benefit_pct=0.5,
                 high_confidence_cv=0.05,
                 # 1-based forecast day to evaluate
                 evaluation_day=14,
                 # Batch sizing
                 batch_strong_consensus=0.0,
                 batch_moderate=0.15,
                 batch_weak=0.25,
                 batch_bearish=0.35,
                 # Timing
                 cooldown_days=7,
                 fallback_batch=0.20,
                 fallback_frequency_days=30,
                 max_holding_days=365):

        super().__init__("Consensus", storage_cost_pct_per_day, transaction_cost_pct,
                         cooldown_days=cooldown_days,
                         fallback_batch=fallback_batch,
                         fallback_frequency_days=fallback_frequency_days,
                         max_holding_days=max_holding_days)
        self.consensus_threshold = consensus_threshold
        self.very_strong_consensus = very_strong_consensus
        self.moderate_consensus = moderate_consensus
        self.min_return = min_return
        self.min_net_benefit_pct = min_net_benefit_pct
        self.high_confidence_cv = high_confidence_cv
        self.evaluation_day = evaluation_day
        self.batch_strong_consensus = batch_strong_consensus
        self.batch_moderate = batch_moderate
        self.batch_weak = batch_weak
        self.batch_bearish = batch_bearish

    def _analyze(self, current_price, price_history, predictions):
        outlook = horizon_outlook(current_price, predictions, self.evaluation_day,
                                  self.storage_rate, self.transaction_rate)
        day_returns = (outlook['day_predictions'] - current_price) / current_price
        bullish_pct = float((day_returns > self.min_return).mean())
        net_benefit_pct = outlook['net_benefit_pct']
        cv = outlook['cv']
        details = {'bullish_pct': bullish_pct, 'net_benefit_pct': net_benefit_pct, 'cv': cv}

        if bullish_pct >= self.very_strong_consensus and net_benefit_pct > self.min_net_benefit_pct:
            return (self.batch_strong_consensus,
                    f'very_strong_consensus_{bullish_pct:.0%}_net_{net_benefit_pct:.2f}%_hold', details)

        if bullish_pct >= self.consensus_threshold and net_benefit_pct > self.min_net_benefit_pct:
            if cv < self.high_confidence_cv:
                return self.batch_strong_consensus, f'strong_consensus_{bullish_pct:.0%}_high_conf_hold', details
            return self.batch_moderate, f'strong_consensus_{bullish_pct:.0%}_med_conf_gradual', details

        if bullish_pct >= self.moderate_consensus:
            return self.batch_moderate, f'moderate_consensus_{bullish_pct:.0%}_gradual', details

        if bullish_pct < (1 - self.consensus_threshold):
            return self.batch_bearish, f'bearish_consensus_{bullish_pct:.0%}_sell', details

        return self.batch_weak, f'weak_consensus_{bullish_pct:.0%}_sell', details


class RiskAdjustedStrategy(StandaloneForecastStrategy):
    """
    Risk-adjusted strategy: expected return gated by uncertainty tiers.

    With sufficient expected return and net benefit, the ensemble CV picks
    the risk tier (low/medium/high/very high); otherwise sell.
    """

    def __init__(self,
                 storage_cost_pct_per_day,
                 transaction_cost_pct,
                 min_return=0.03,
                 min_net_benefit_pct=0.5,
                 # Uncertainty thresholds (CV)
                 max_uncertainty_low=0.05,
                 max_uncertainty_medium=0.10,
                 max_uncertainty_high=0.20,
                 strong_trend_adx=25,
                 evaluation_day=14,
                 # Batch sizing by risk tier
                 batch_low_risk=0.0,
                 batch_medium_risk=0.10,
                 batch_high_risk=0.25,
                 batch_very_high_risk=0.35,
                 cooldown_days=7,
                 fallback_batch=0.20,
                 fallback_frequency_days=30,
                 max_holding_days=365):

        super().__init__("Risk-Adjusted", storage_cost_pct_per_day, transaction_cost_pct,
                         cooldown_days=cooldown_days,
                         fallback_batch=fallback_batch,
                         fallback_frequency_days=fallback_frequency_days,
                         max_holding_days=max_holding_days)
        self.min_return = min_return
        self.min_net_benefit_pct = min_net_benefit_pct
        self.max_uncertainty_low = max_uncertainty_low
        self.max_uncertainty_medium = max_uncertainty_medium
        self.max_uncertainty_high = max_uncertainty_high
        self.strong_trend_adx = strong_trend_adx
        self.evaluation_day = evaluation_day
        self.batch_low_risk = batch_low_risk
        self.batch_medium_risk = batch_medium_risk
        self.batch_high_risk = batch_high_risk
        self.batch_very_high_risk = batch_very_high_risk

    def _analyze(self, current_price, price_history, predictions):
        outlook = horizon_outlook(current_price, predictions, self.evaluation_day,
                                  self.storage_rate, self.transaction_rate)
        expected_return = outlook['expected_return']
        net_benefit_pct = outlook['net_benefit_pct']
        cv = outlook['cv']
        adx = self._trend_strength(price_history)
        details = {'expected_return': expected_return, 'net_benefit_pct': net_benefit_pct,
                   'cv': cv, 'adx': adx}

        if expected_return >= self.min_return and net_benefit_pct > self.min_net_benefit_pct:
            if cv < self.max_uncertainty_low and adx > self.strong_trend_adx:
                return (self.batch_low_risk,
                        f'low_risk_cv{cv:.2%}_return{expected_return:.2%}_hold', details)
            if cv < self.max_uncertainty_medium:
                return (self.batch_medium_risk,
                        f'medium_risk_cv{cv:.2%}_return{expected_return:.2%}_small_hedge', details)
            if cv < self.max_uncertainty_high:
                return (self.batch_high_risk,
                        f'high_risk_cv{cv:.2%}_return{expected_return:.2%}_hedge', details)
            return self.batch_very_high_risk, f'very_high_risk_cv{cv:.2%}_sell', details

        if net_benefit_pct < 0:
            return self.batch_very_high_risk, f'negative_net_benefit_{net_benefit_pct:.2f}%_sell', details
        return self.batch_high_risk, f'insufficient_return_{expected_return:.2%}_sell', details
