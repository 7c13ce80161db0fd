from __future__ import annotations

from decimal import Decimal

import pytest

from sim_trading.config import Settings
from sim_trading.errors import ConfigError
from sim_trading.risk.rules import RiskEngine, RiskSettings
from sim_trading.types import AccountState, InstrumentCategory, Position


def _account(
    *,
    total_assets: str = "1000",
    pnl_pct: str = "0",
    open_position: bool = True,
) -> AccountState:
    position = (
        Position(InstrumentCategory.SPOT, Decimal("1"), Decimal("100"))
        if open_position
        else Position.empty(InstrumentCategory.SPOT)
    )
    return AccountState(
        symbol="BTCUSDT",
        cash_balance=Decimal("900"),
        initial_equity=Decimal("1000"),
        position=position,
        mark_price=Decimal("100"),
        current_value=Decimal("100"),
        unrealized_pnl=Decimal("0"),
        unrealized_pnl_pct=Decimal(pnl_pct),
        total_assets=Decimal(total_assets),
    )


def test_from_settings_copies_risk_fields() -> None:
    settings = Settings(journal_dir="data/journal", stop_loss_pct=3, position_size_pct=25)
    risk = RiskSettings.from_settings(settings)
    assert risk.stop_loss_pct == 3
    assert risk.take_profit_pct == 10
    assert risk.position_size_pct == 25


def test_parse_strict_rejects_invalid_payload() -> None:
    assert RiskSettings.parse_strict({"max_loss_pct": 15}).max_loss_pct == 15
    with pytest.raises(ConfigError, match="stop_loss_pct"):
        RiskSettings.parse_strict({"stop_loss_pct": 0})
    with pytest.raises(ConfigError):
        RiskSettings.parse_strict({"trailing_stop": 1})


def test_check_exit_reasons() -> None:
    engine = RiskEngine(RiskSettings())
    assert engine.check(_account(pnl_pct="-5")).exit_reason == "stop_loss"
    assert engine.check(_account(pnl_pct="10")).exit_reason == "take_profit"

    result = engine.check(_account(pnl_pct="-4.99"))
    assert result.allowed
    assert result.exit_reason is None

    assert engine.check(_account(pnl_pct="-50", open_position=False)).exit_reason is None


def test_max_loss_blocks_auto_trading() -> None:
    engine = RiskEngine(RiskSettings(max_loss_pct=20))
    result = engine.check(_account(total_assets="800", open_position=False))
    assert not result.allowed
    assert result.reasons == ["max_loss_reached"]
    assert result.exit_reason == "max_loss"
    assert engine.drawdown_pct(_account(total_assets="1100")) == 0


def test_position_fraction() -> None:
    assert RiskEngine(RiskSettings(position_size_pct=10)).position_fraction() == Decimal("0.1")
