from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from sim_trading.journal.stats import summarize_trades, trades_frame
from sim_trading.journal.store import JournalStore
from sim_trading.types import InstrumentCategory, Signal, TradeRecord, TradingStats


def _trade(
    timestamp: str,
    action: str,
    *,
    profit: str = "0",
    profit_pct: str = "0",
    closes: bool = False,
    origin: str = "auto",
    strategy: str | None = "momentum",
) -> TradeRecord:
    return TradeRecord(
        timestamp=timestamp,
        symbol="BTCUSDT",
        action=action,
        order_type="market",
        category=InstrumentCategory.SPOT,
        execution_price=Decimal("100"),
        quantity=Decimal("1"),
        realized_profit=Decimal(profit),
        realized_profit_pct=Decimal(profit_pct),
        is_win=closes and Decimal(profit) >= 0,
        origin=origin,  # type: ignore[arg-type]
        closes_position=closes,
        strategy_id=strategy,  # type: ignore[arg-type]
    )


TRADES = [
    _trade("2024-01-01T00:00:03+00:00", "SELL", profit="-5", profit_pct="-5", closes=True),
    _trade("2024-01-01T00:00:01+00:00", "BUY"),
    _trade("2024-01-01T00:00:02+00:00", "SELL", profit="10", profit_pct="10", closes=True),
    _trade("2024-01-01T00:00:04+00:00", "BUY", origin="manual", strategy=None),
]


def test_journal_append_and_load_recent(tmp_path: Path) -> None:
    store = JournalStore(tmp_path / "journal")
    store.append("order", TRADES[0])
    store.append(
        "signal",
        {
            "signal": Signal("BUY", 70, "2024-01-01T00:00:00+00:00", Decimal("101.5"), "momentum"),
            "features": {"momentum_pct": 0.2},
        },
    )

    rows = store.load_recent(10)
    assert [row["event_type"] for row in rows] == ["order", "signal"]
    assert rows[0]["payload"]["realized_profit"] == "-5"
    assert rows[0]["payload"]["category"] == "spot"
    assert rows[1]["payload"]["signal"]["price"] == "101.5"

    files = list((tmp_path / "journal").glob("*.jsonl"))
    assert len(files) == 1
    assert json.loads(files[0].read_text(encoding="utf-8").splitlines()[0])["event_type"] == "order"
    assert store.load_recent(0) == []


def test_journal_rejects_unknown_event(tmp_path: Path) -> None:
    store = JournalStore(tmp_path)
    with pytest.raises(ValueError, match="unsupported_event_type"):
        store.append("candidate", {})


def test_trades_frame_sorted_oldest_first() -> None:
    frame = trades_frame(TRADES)
    assert list(frame["action"]) == ["BUY", "SELL", "SELL", "BUY"]
    assert list(frame["strategy"]) == ["momentum", "momentum", "momentum", "manual"]


def test_summarize_trades_per_strategy() -> None:
    summary = summarize_trades(TRADES)
    assert set(summary) == {"momentum", "manual"}

    momentum = summary["momentum"]
    assert momentum["trade_count"] == 3
    assert momentum["closed_count"] == 2
    assert momentum["win_rate_pct"] == pytest.approx(50.0)
    assert momentum["realized_profit"] == pytest.approx(5.0)
    assert momentum["avg_profit_pct"] == pytest.approx(2.5)

    manual = summary["manual"]
    assert manual["closed_count"] == 0
    assert manual["win_rate_pct"] == 0.0
    assert summarize_trades([]) == {}


def test_trading_stats_only_counts_closes_towards_wins() -> None:
    stats = TradingStats()
    for trade in TRADES:
        stats.record(trade)
    assert stats.total_trades == 4
    assert stats.closed_trades == 2
    assert stats.wins == 1
    assert stats.win_rate == pytest.approx(50.0)
    assert stats.total_profit == Decimal("5")
    assert TradingStats().win_rate == 0.0
