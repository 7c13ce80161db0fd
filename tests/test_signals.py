from __future__ import annotations

import random
from decimal import Decimal

import pytest

from sim_trading.features.indicators import (
    compute_price_features,
    mean_deviation_pct,
    momentum_pct,
    trend_spread_pct,
)
from sim_trading.strategy import (
    MeanReversionStrategy,
    MomentumStrategy,
    SignalGenerator,
    TrendFollowingStrategy,
    build_strategy,
)


class _ScriptedRandom(random.Random):
    """Returns queued values from ``random()``."""

    def __init__(self, values: list[float]) -> None:
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _prices(*values: float) -> list[Decimal]:
    return [Decimal(str(v)) for v in values]


def test_indicators() -> None:
    prices = _prices(100, 100, 100, 100, 102)
    assert momentum_pct(prices) == pytest.approx(2.0)
    assert mean_deviation_pct(prices) == pytest.approx((102 - 100.4) / 100.4 * 100)
    assert trend_spread_pct(prices) is None

    trend = _prices(*([100] * 15 + [101] * 5))
    assert trend_spread_pct(trend) == pytest.approx(1.0)

    features = compute_price_features(trend)
    assert features["samples"] == 20
    assert features["last_price"] == 101
    assert features["trend_spread_pct"] == pytest.approx(1.0)
    assert compute_price_features([])["momentum_pct"] is None


def test_momentum_follows_direction() -> None:
    strategy = MomentumStrategy(stochastic_fallback=False)
    assert strategy.analyze(_prices(100, 100, 100, 101)) is None

    signal = strategy.analyze(_prices(100, 100, 100, 100, 101))
    assert signal is not None
    assert signal.action == "BUY"
    assert signal.confidence == 80
    assert signal.price == Decimal("101")
    assert signal.strategy_id == "momentum"

    signal = strategy.analyze(_prices(100, 100, 100, 100, 99))
    assert signal is not None
    assert signal.action == "SELL"


def test_mean_reversion_fades_deviation() -> None:
    strategy = MeanReversionStrategy(stochastic_fallback=False)
    assert strategy.analyze(_prices(100, 100, 100, 110)) is None

    signal = strategy.analyze(_prices(100, 100, 100, 100, 110))
    assert signal is not None
    assert signal.action == "SELL"
    assert signal.confidence == 95

    signal = strategy.analyze(_prices(100, 100, 100, 100, 90))
    assert signal is not None
    assert signal.action == "BUY"

    assert strategy.analyze(_prices(100, 100, 100, 100, 100)) is None


def test_trend_following_needs_full_window() -> None:
    strategy = TrendFollowingStrategy(stochastic_fallback=False)
    assert strategy.analyze(_prices(*([100] * 14 + [101] * 5))) is None

    signal = strategy.analyze(_prices(*([100] * 15 + [101] * 5)))
    assert signal is not None
    assert signal.action == "BUY"
    assert signal.confidence == 90

    signal = strategy.analyze(_prices(*([100] * 15 + [99] * 5)))
    assert signal is not None
    assert signal.action == "SELL"


def test_stochastic_fallback_in_quiet_market() -> None:
    rng = _ScriptedRandom([0.05, 0.7, 0.5])
    strategy = MomentumStrategy(rng)
    signal = strategy.analyze(_prices(100, 100, 100, 100, 100))
    assert signal is not None
    assert signal.action == "BUY"
    assert signal.confidence == 65

    rng = _ScriptedRandom([0.5])
    assert MomentumStrategy(rng).analyze(_prices(100, 100, 100, 100, 100)) is None


def test_build_strategy_rejects_unknown_id() -> None:
    assert build_strategy("trend_following").strategy_id == "trend_following"
    with pytest.raises(ValueError, match="unknown_strategy"):
        build_strategy("arbitrage")


def test_generator_keeps_bounded_history_per_instrument() -> None:
    generator = SignalGenerator(history_size=20, stochastic_fallback=False)
    for i in range(30):
        generator.on_tick("BTCUSDT", Decimal(100 + i))
    generator.on_tick("ETHUSDT", Decimal("10"))

    history = generator.history("BTCUSDT")
    assert len(history) == 20
    assert history[0] == Decimal("110")
    assert history[-1] == Decimal("129")
    assert generator.history("ETHUSDT") == [Decimal("10")]
    assert generator.history("SOLUSDT") == []
    assert generator.analyze("SOLUSDT") is None


def test_generator_cooldown() -> None:
    clock = _FakeClock()
    generator = SignalGenerator(cooldown_sec=2.0, stochastic_fallback=False, clock=clock)
    for price in (100, 100, 100, 100, 101):
        generator.on_tick("BTCUSDT", Decimal(price))

    assert generator.analyze("BTCUSDT") is not None
    clock.now = 1.5
    assert generator.analyze("BTCUSDT") is None
    clock.now = 2.0
    assert generator.analyze("BTCUSDT") is not None


def test_generator_strategy_switch_applies_on_next_cycle() -> None:
    generator = SignalGenerator("momentum", stochastic_fallback=False)
    generator.set_strategy("mean_reversion")
    assert generator.strategy_id == "momentum"

    for price in (100, 100, 100, 100, 110):
        generator.on_tick("BTCUSDT", Decimal(price))
    signal = generator.analyze("BTCUSDT")
    assert generator.strategy_id == "mean_reversion"
    assert signal is not None
    assert signal.action == "SELL"
    assert signal.strategy_id == "mean_reversion"

    with pytest.raises(ValueError):
        generator.set_strategy("grid")  # type: ignore[arg-type]
