"""Rule-based signal strategies and the periodic signal generator."""

from __future__ import annotations

import random
import time
from collections import deque
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Protocol, Sequence

from sim_trading.features.indicators import (
    Price,
    mean_deviation_pct,
    momentum_pct,
    trend_spread_pct,
)
from sim_trading.types import Signal, SignalAction, StrategyId
from sim_trading.utils.logging import get_logger, log_trade_signal

_FALLBACK_PROBABILITY = 0.1
_MAX_CONFIDENCE = 95.0


class SignalStrategy(Protocol):
    """Strategy interface for signal evaluation."""

    strategy_id: StrategyId

    def analyze(self, history: Sequence[Price]) -> Signal | None:
        """Return a signal for the given price window, if any."""


class _ThresholdStrategy:
    """Threshold rule on one window metric, plus the demo fallback.

    When the metric stays inside ``fallback_band`` the strategy may still emit
    a low-confidence signal with probability 0.1 so the demo keeps trading in
    quiet markets. The random source is injected for reproducibility.
    """

    strategy_id: StrategyId
    min_samples: int
    threshold: float
    confidence_scale: float
    fallback_band: float

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        stochastic_fallback: bool = True,
    ) -> None:
        self._rng = rng or random.Random()
        self._stochastic_fallback = stochastic_fallback

    def analyze(self, history: Sequence[Price]) -> Signal | None:
        if len(history) < self.min_samples:
            return None
        metric = self._metric(history)
        if metric is None:
            return None

        action = self._action(metric)
        if action is not None:
            confidence = min(_MAX_CONFIDENCE, 50 + abs(metric) * self.confidence_scale)
        elif self._stochastic_fallback and self._fallback_triggered(metric):
            action = self._fallback_action(metric)
            confidence = 55 + self._rng.random() * 20
        else:
            return None

        return Signal(
            action=action,
            confidence=round(confidence),
            timestamp=datetime.now(timezone.utc).isoformat(),
            price=Decimal(str(history[-1])),
            strategy_id=self.strategy_id,
        )

    def _fallback_triggered(self, metric: float) -> bool:
        return self._rng.random() < _FALLBACK_PROBABILITY and abs(metric) < self.fallback_band

    def _metric(self, history: Sequence[Price]) -> float | None:
        raise NotImplementedError

    def _action(self, metric: float) -> SignalAction | None:
        raise NotImplementedError

    def _fallback_action(self, metric: float) -> SignalAction:
        raise NotImplementedError


class MomentumStrategy(_ThresholdStrategy):
    """Follow the percent move over the last five samples."""

    strategy_id: StrategyId = "momentum"
    min_samples = 5
    threshold = 0.05
    confidence_scale = 30.0
    fallback_band = 0.1

    def _metric(self, history: Sequence[Price]) -> float | None:
        return momentum_pct(history, lookback=5)

    def _action(self, metric: float) -> SignalAction | None:
        if metric > self.threshold:
            return "BUY"
        if metric < -self.threshold:
            return "SELL"
        return None

    def _fallback_action(self, metric: float) -> SignalAction:
        return "BUY" if self._rng.random() > 0.5 else "SELL"


class MeanReversionStrategy(_ThresholdStrategy):
    """Fade deviations of the last sample from the ten-sample mean."""

    strategy_id: StrategyId = "mean_reversion"
    min_samples = 5
    threshold = 0.1
    confidence_scale = 40.0
    fallback_band = 0.2

    def _metric(self, history: Sequence[Price]) -> float | None:
        return mean_deviation_pct(history, window=10)

    def _action(self, metric: float) -> SignalAction | None:
        if metric > self.threshold:
            return "SELL"
        if metric < -self.threshold:
            return "BUY"
        return None

    def _fallback_action(self, metric: float) -> SignalAction:
        return "SELL" if metric > 0 else "BUY"


class TrendFollowingStrategy(_ThresholdStrategy):
    """Compare the five-sample mean with the fifteen samples before it."""

    strategy_id: StrategyId = "trend_following"
    min_samples = 20
    threshold = 0.05
    confidence_scale = 40.0
    fallback_band = 0.1

    def _metric(self, history: Sequence[Price]) -> float | None:
        return trend_spread_pct(history, short_window=5, long_window=20)

    def _action(self, metric: float) -> SignalAction | None:
        if metric > self.threshold:
            return "BUY"
        if metric < -self.threshold:
            return "SELL"
        return None

    def _fallback_action(self, metric: float) -> SignalAction:
        return "BUY" if metric > 0 else "SELL"


_STRATEGIES: dict[str, type[_ThresholdStrategy]] = {
    "momentum": MomentumStrategy,
    "mean_reversion": MeanReversionStrategy,
    "trend_following": TrendFollowingStrategy,
}


def build_strategy(
    strategy_id: str,
    rng: random.Random | None = None,
    *,
    stochastic_fallback: bool = True,
) -> SignalStrategy:
    """Instantiate a strategy by id."""
    try:
        strategy_cls = _STRATEGIES[strategy_id]
    except KeyError:
        raise ValueError(f"unknown_strategy: {strategy_id}") from None
    return strategy_cls(rng, stochastic_fallback=stochastic_fallback)


class SignalGenerator:
    """Rolling price windows per instrument and cooldown-gated analysis."""

    def __init__(
        self,
        strategy: StrategyId = "momentum",
        *,
        history_size: int = 50,
        cooldown_sec: float = 2.0,
        rng: random.Random | None = None,
        stochastic_fallback: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rng = rng or random.Random()
        self._stochastic_fallback = stochastic_fallback
        self._history_size = history_size
        self._cooldown_sec = cooldown_sec
        self._clock = clock
        self._histories: dict[str, deque[Decimal]] = {}
        self._last_signal_at: dict[tuple[str, str], float] = {}
        self._strategy = self._build(strategy)
        self._pending_strategy: StrategyId | None = None
        self._logger = get_logger("sim_trading.strategy.signals")

    @property
    def strategy_id(self) -> StrategyId:
        return self._strategy.strategy_id

    def set_strategy(self, strategy_id: StrategyId) -> None:
        """Select a strategy; it takes effect on the next analysis cycle."""
        if strategy_id not in _STRATEGIES:
            raise ValueError(f"unknown_strategy: {strategy_id}")
        self._pending_strategy = strategy_id

    def on_tick(self, instrument: str, price: Decimal) -> None:
        window = self._histories.get(instrument)
        if window is None:
            window = deque(maxlen=self._history_size)
            self._histories[instrument] = window
        window.append(price)

    def history(self, instrument: str) -> list[Decimal]:
        return list(self._histories.get(instrument, ()))

    def analyze(self, instrument: str) -> Signal | None:
        """Run one analysis cycle for ``instrument``."""
        if self._pending_strategy is not None:
            if self._pending_strategy != self._strategy.strategy_id:
                self._strategy = self._build(self._pending_strategy)
            self._pending_strategy = None

        history = self._histories.get(instrument)
        if not history:
            return None
        signal = self._strategy.analyze(history)
        if signal is None:
            return None

        now = self._clock()
        key = (instrument, signal.strategy_id)
        last = self._last_signal_at.get(key)
        if last is not None and now - last < self._cooldown_sec:
            return None
        self._last_signal_at[key] = now

        log_trade_signal(
            self._logger,
            symbol=instrument,
            direction=signal.action,
            signal_type=signal.strategy_id,
            confidence=signal.confidence,
            price=signal.price,
        )
        return signal

    def _build(self, strategy_id: StrategyId) -> SignalStrategy:
        return build_strategy(
            strategy_id,
            self._rng,
            stochastic_fallback=self._stochastic_fallback,
        )
