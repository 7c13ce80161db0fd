"""Trade history summaries for reporting."""

from __future__ import annotations

from typing import Sequence

import pandas as pd  # type: ignore[import-untyped]

from sim_trading.types import TradeRecord


def trades_frame(trades: Sequence[TradeRecord]) -> pd.DataFrame:
    """Tabulate trade records, oldest first."""
    columns = [
        "timestamp",
        "action",
        "origin",
        "strategy",
        "price",
        "quantity",
        "realized_profit",
        "realized_profit_pct",
        "is_win",
        "closes_position",
    ]
    rows = [
        {
            "timestamp": trade.timestamp,
            "action": trade.action,
            "origin": trade.origin,
            "strategy": trade.strategy_id or trade.origin,
            "price": float(trade.execution_price),
            "quantity": float(trade.quantity),
            "realized_profit": float(trade.realized_profit),
            "realized_profit_pct": float(trade.realized_profit_pct),
            "is_win": trade.is_win,
            "closes_position": trade.closes_position,
        }
        for trade in trades
    ]
    frame = pd.DataFrame(rows, columns=columns)
    return frame.sort_values("timestamp", kind="stable").reset_index(drop=True)


def summarize_trades(trades: Sequence[TradeRecord]) -> dict[str, dict[str, float | int]]:
    """Per-strategy counts, win rate and realized profit.

    Win rate and profit only consider trades that closed (part of) a position;
    opening trades count towards ``trade_count`` alone.
    """
    frame = trades_frame(trades)
    if frame.empty:
        return {}

    output: dict[str, dict[str, float | int]] = {}
    for strategy, group in frame.groupby("strategy", sort=True):
        closed = group[group["closes_position"]]
        win_rate = float(closed["is_win"].mean() * 100.0) if not closed.empty else 0.0
        output[str(strategy)] = {
            "trade_count": int(len(group)),
            "closed_count": int(len(closed)),
            "win_rate_pct": win_rate,
            "realized_profit": float(closed["realized_profit"].sum()),
            "avg_profit_pct": float(closed["realized_profit_pct"].mean()) if not closed.empty else 0.0,
        }
    return output
