"""Price-window features used by the signal strategies."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

import pandas as pd  # type: ignore[import-untyped]

Price = Decimal | float


def momentum_pct(prices: Sequence[Price], lookback: int = 5) -> float | None:
    """Percent change between the first and last of the last ``lookback`` samples."""
    series = _to_series(prices)
    if len(series) < 2:
        return None
    recent = series.iloc[-lookback:]
    first = float(recent.iloc[0])
    if first <= 0:
        return None
    return (float(recent.iloc[-1]) - first) / first * 100


def mean_deviation_pct(prices: Sequence[Price], window: int = 10) -> float | None:
    """Deviation of the latest sample from the mean of the last ``window`` samples."""
    series = _to_series(prices)
    if series.empty:
        return None
    recent = series.iloc[-window:]
    avg = float(recent.mean())
    if avg <= 0:
        return None
    return (float(recent.iloc[-1]) - avg) / avg * 100


def trend_spread_pct(
    prices: Sequence[Price],
    short_window: int = 5,
    long_window: int = 20,
) -> float | None:
    """Spread of the short mean over the mean of the preceding samples.

    Compares ``prices[-short_window:]`` with ``prices[-long_window:-short_window]``.
    """
    series = _to_series(prices)
    if len(series) < long_window:
        return None
    short_avg = float(series.iloc[-short_window:].mean())
    long_avg = float(series.iloc[-long_window:-short_window].mean())
    if long_avg <= 0:
        return None
    return (short_avg - long_avg) / long_avg * 100


def compute_price_features(prices: Sequence[Price]) -> dict[str, float | None]:
    """Compute the full feature snapshot for one price window."""
    return {
        "samples": float(len(prices)),
        "last_price": float(prices[-1]) if prices else None,
        "momentum_pct": momentum_pct(prices),
        "mean_deviation_pct": mean_deviation_pct(prices),
        "trend_spread_pct": trend_spread_pct(prices),
    }


def _to_series(prices: Sequence[Price]) -> pd.Series:
    return pd.Series([float(p) for p in prices], dtype=float)
