"""Signal strategies and the rolling-window signal generator."""

from sim_trading.strategy.signals import (
    MeanReversionStrategy,
    MomentumStrategy,
    SignalGenerator,
    SignalStrategy,
    TrendFollowingStrategy,
    build_strategy,
)

__all__ = [
    "MeanReversionStrategy",
    "MomentumStrategy",
    "SignalGenerator",
    "SignalStrategy",
    "TrendFollowingStrategy",
    "build_strategy",
]
