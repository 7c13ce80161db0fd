"""Shared domain types for the simulated trading account."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Literal

OrderSide = Literal["buy", "sell", "long", "short"]
OrderType = Literal["market", "limit"]
TradeOrigin = Literal["manual", "auto", "system"]
SignalAction = Literal["BUY", "SELL"]
StrategyId = Literal["momentum", "mean_reversion", "trend_following"]
NotificationKind = Literal["buy", "sell", "liquidation", "risk"]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class InstrumentCategory(str, Enum):
    """Instrument category; selects margin and direction rules."""

    SPOT = "spot"
    FUTURES = "futures"

    @property
    def rules(self) -> CategoryRules:
        return CATEGORY_RULES[self]


@dataclass(frozen=True, slots=True)
class CategoryRules:
    """Per-category accounting rules."""

    uses_margin: bool
    max_leverage: int
    sides: tuple[str, ...]


CATEGORY_RULES: dict[InstrumentCategory, CategoryRules] = {
    InstrumentCategory.SPOT: CategoryRules(
        uses_margin=False,
        max_leverage=1,
        sides=("buy", "sell"),
    ),
    InstrumentCategory.FUTURES: CategoryRules(
        uses_margin=True,
        max_leverage=100,
        sides=("long", "short"),
    ),
}


@dataclass(frozen=True, slots=True)
class OrderRequest:
    """One order as submitted by a user or by the auto trader."""

    side: OrderSide
    quantity: Decimal
    order_type: OrderType = "market"
    limit_price: Decimal | None = None
    category: InstrumentCategory = InstrumentCategory.SPOT
    leverage: int | None = None
    origin: TradeOrigin = "manual"
    strategy_id: StrategyId | None = None
    confidence: int | None = None


@dataclass(frozen=True, slots=True)
class Position:
    """Held quantity and cost basis for one instrument.

    ``signed_amount`` is positive for long and negative for short; spot
    positions are never negative. ``leverage`` is 1 for spot.
    """

    category: InstrumentCategory
    signed_amount: Decimal = ZERO
    average_entry_price: Decimal = ZERO
    leverage: int = 1

    @classmethod
    def empty(cls, category: InstrumentCategory) -> Position:
        return cls(category=category)

    @property
    def is_open(self) -> bool:
        return self.signed_amount != 0

    @property
    def direction(self) -> int:
        if self.signed_amount > 0:
            return 1
        if self.signed_amount < 0:
            return -1
        return 0

    @property
    def abs_amount(self) -> Decimal:
        return abs(self.signed_amount)

    @property
    def cost_basis(self) -> Decimal:
        return self.average_entry_price * self.abs_amount

    @property
    def used_margin(self) -> Decimal:
        """Collateral locked by the position (full cost basis for spot)."""
        return self.cost_basis / self.leverage

    def current_value(self, price: Decimal) -> Decimal:
        return self.abs_amount * price

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        if not self.is_open:
            return ZERO
        move = (price - self.average_entry_price) * self.abs_amount * self.direction
        if self.category.rules.uses_margin:
            return move * self.leverage
        return move

    def unrealized_pnl_pct(self, price: Decimal) -> Decimal:
        basis = self.used_margin
        if not self.is_open or basis <= 0:
            return ZERO
        return self.unrealized_pnl(price) / basis * HUNDRED


@dataclass(frozen=True, slots=True)
class AccountState:
    """Read-only account snapshot at the latest observed price."""

    symbol: str
    cash_balance: Decimal
    initial_equity: Decimal
    position: Position
    mark_price: Decimal | None
    current_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    total_assets: Decimal

    @property
    def return_pct(self) -> Decimal:
        if self.initial_equity <= 0:
            return ZERO
        return (self.total_assets - self.initial_equity) / self.initial_equity * HUNDRED


@dataclass(frozen=True, slots=True)
class TradeRecord:
    """Immutable record of one applied order or liquidation."""

    timestamp: str
    symbol: str
    action: str
    order_type: str
    category: InstrumentCategory
    execution_price: Decimal
    quantity: Decimal
    realized_profit: Decimal
    realized_profit_pct: Decimal
    is_win: bool
    origin: TradeOrigin
    closes_position: bool = False
    leverage: int | None = None
    strategy_id: StrategyId | None = None
    confidence: int | None = None


@dataclass(frozen=True, slots=True)
class LiquidationEvent:
    """System-initiated forced close of a futures position."""

    symbol: str
    price: Decimal
    signed_amount: Decimal
    entry_price: Decimal
    leverage: int
    used_margin: Decimal
    current_margin: Decimal
    returned_margin: Decimal
    trade: TradeRecord

    @property
    def loss(self) -> Decimal:
        return self.used_margin - self.returned_margin


@dataclass(frozen=True, slots=True)
class Signal:
    """Algorithmic BUY/SELL recommendation."""

    action: SignalAction
    confidence: int
    timestamp: str
    price: Decimal
    strategy_id: StrategyId


@dataclass(frozen=True, slots=True)
class Notification:
    """Transient user-facing event."""

    id: int
    kind: NotificationKind
    message: str
    created_at: str
    profit: Decimal | None = None
    profit_pct: Decimal | None = None


@dataclass(slots=True)
class TradingStats:
    """Running counters over applied trades."""

    total_trades: int = 0
    closed_trades: int = 0
    wins: int = 0
    total_profit: Decimal = ZERO
    profit_pct_sum: Decimal = ZERO

    @property
    def win_rate(self) -> float:
        if self.closed_trades == 0:
            return 0.0
        return self.wins / self.closed_trades * 100.0

    def record(self, trade: TradeRecord) -> None:
        self.total_trades += 1
        if not trade.closes_position:
            return
        self.closed_trades += 1
        if trade.is_win:
            self.wins += 1
        self.total_profit += trade.realized_profit
        self.profit_pct_sum += trade.realized_profit_pct


@dataclass(slots=True)
class RiskCheckResult:
    """Result of auto-trading risk guard checks."""

    allowed: bool
    exit_reason: str | None = None
    reasons: list[str] = field(default_factory=list)
