"""Authoritative cash + position ledger for one simulated instrument."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal

from sim_trading.errors import (
    InsufficientFundsError,
    InsufficientHoldingsError,
    InsufficientMarginError,
    OrderValidationError,
)
from sim_trading.types import (
    HUNDRED,
    ZERO,
    AccountState,
    InstrumentCategory,
    LiquidationEvent,
    OrderRequest,
    Position,
    TradeRecord,
)
from sim_trading.utils.logging import get_logger, log_liquidation

DEFAULT_MAINTENANCE_MARGIN_RATE = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class _LedgerState:
    cash: Decimal
    initial_equity: Decimal
    position: Position
    last_price: Decimal | None


class PositionLedger:
    """Cash and position for one (session, instrument).

    Every mutation builds a new ``_LedgerState`` and commits it with a single
    assignment, so a rejected order leaves the previous state in place.
    The ledger is not thread-safe; callers serialize access.
    """

    def __init__(
        self,
        category: InstrumentCategory,
        initial_cash: Decimal,
        *,
        symbol: str = "",
        maintenance_margin_rate: Decimal = DEFAULT_MAINTENANCE_MARGIN_RATE,
        default_leverage: int = 1,
    ) -> None:
        if initial_cash < 0:
            raise ValueError("initial_cash_must_be_non_negative")
        self._category = category
        self._symbol = symbol
        self._maintenance_margin_rate = maintenance_margin_rate
        self._default_leverage = default_leverage
        self._logger = get_logger("sim_trading.exec.ledger")
        self._state = _LedgerState(
            cash=initial_cash,
            initial_equity=initial_cash,
            position=Position.empty(category),
            last_price=None,
        )

    @property
    def category(self) -> InstrumentCategory:
        return self._category

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def cash_balance(self) -> Decimal:
        return self._state.cash

    @property
    def position(self) -> Position:
        return self._state.position

    @property
    def last_price(self) -> Decimal | None:
        return self._state.last_price

    def apply_order(self, order: OrderRequest) -> TradeRecord:
        """Apply one order all-or-nothing and return its trade record.

        Raises an ``OrderError`` subclass on rejection; the account is then
        unchanged.
        """
        if order.category is not self._category:
            raise OrderValidationError(
                f"category_mismatch: {order.category.value} != {self._category.value}"
            )
        if order.quantity <= 0:
            raise OrderValidationError("quantity_must_be_positive")
        price = self._execution_price(order)

        if self._category is InstrumentCategory.FUTURES:
            new_state, record = self._apply_futures(self._state, order, price)
        else:
            new_state, record = self._apply_spot(self._state, order, price)
        self._state = new_state
        return record

    def on_price_tick(self, price: Decimal) -> LiquidationEvent | None:
        """Revalue at ``price`` and force-close an under-margined futures position."""
        if price <= 0:
            raise ValueError("price_must_be_positive")
        state = replace(self._state, last_price=price)
        position = state.position
        if not (position.is_open and position.category.rules.uses_margin):
            self._state = state
            return None

        used_margin = position.used_margin
        current_margin = used_margin + position.unrealized_pnl(price)
        maintenance = position.abs_amount * price * self._maintenance_margin_rate
        if not (current_margin < maintenance and current_margin < used_margin):
            self._state = state
            return None

        returned = max(ZERO, current_margin)
        loss = used_margin - returned
        loss_pct = loss / used_margin * HUNDRED if used_margin > 0 else ZERO
        record = TradeRecord(
            timestamp=_now_iso(),
            symbol=self._symbol,
            action="LIQUIDATION",
            order_type="market",
            category=self._category,
            execution_price=price,
            quantity=position.abs_amount,
            realized_profit=-loss,
            realized_profit_pct=-loss_pct,
            is_win=False,
            origin="system",
            closes_position=True,
            leverage=position.leverage,
        )
        event = LiquidationEvent(
            symbol=self._symbol,
            price=price,
            signed_amount=position.signed_amount,
            entry_price=position.average_entry_price,
            leverage=position.leverage,
            used_margin=used_margin,
            current_margin=current_margin,
            returned_margin=returned,
            trade=record,
        )
        self._state = replace(
            state,
            cash=state.cash + returned,
            position=Position.empty(self._category),
        )
        log_liquidation(
            self._logger,
            symbol=self._symbol,
            price=price,
            used_margin=used_margin,
            returned_margin=returned,
            current_margin=current_margin,
        )
        return event

    def snapshot(self) -> AccountState:
        state = self._state
        position = state.position
        mark = state.last_price
        if mark is None and position.is_open:
            mark = position.average_entry_price

        if position.is_open and mark is not None:
            current_value = position.current_value(mark)
            unrealized = position.unrealized_pnl(mark)
            unrealized_pct = position.unrealized_pnl_pct(mark)
        else:
            current_value = unrealized = unrealized_pct = ZERO

        if self._category.rules.uses_margin:
            total_assets = state.cash + position.used_margin + unrealized
        else:
            total_assets = state.cash + current_value

        return AccountState(
            symbol=self._symbol,
            cash_balance=state.cash,
            initial_equity=state.initial_equity,
            position=position,
            mark_price=state.last_price,
            current_value=current_value,
            unrealized_pnl=unrealized,
            unrealized_pnl_pct=unrealized_pct,
            total_assets=total_assets,
        )

    def _execution_price(self, order: OrderRequest) -> Decimal:
        # Limit orders fill immediately at the requested price.
        if order.order_type == "limit":
            if order.limit_price is None or order.limit_price <= 0:
                raise OrderValidationError("limit_price_must_be_positive")
            return order.limit_price
        if self._state.last_price is None:
            raise OrderValidationError("no_market_price")
        return self._state.last_price

    def _apply_spot(
        self,
        state: _LedgerState,
        order: OrderRequest,
        price: Decimal,
    ) -> tuple[_LedgerState, TradeRecord]:
        position = state.position
        qty = order.quantity
        value = price * qty

        if order.side == "buy":
            if value > state.cash:
                raise InsufficientFundsError(
                    f"insufficient_funds: required={value} available={state.cash}"
                )
            new_amount = position.signed_amount + qty
            average = (position.cost_basis + value) / new_amount
            new_position = replace(
                position,
                signed_amount=new_amount,
                average_entry_price=average,
            )
            record = self._record(order, "BUY", price, qty)
            return replace(state, cash=state.cash - value, position=new_position), record

        if order.side != "sell":
            raise OrderValidationError(f"invalid_side_for_spot: {order.side}")
        if qty > position.signed_amount:
            raise InsufficientHoldingsError(
                f"insufficient_holdings: requested={qty} held={position.signed_amount}"
            )
        average = position.average_entry_price
        profit = (price - average) * qty
        cost = average * qty
        profit_pct = profit / cost * HUNDRED if cost > 0 else ZERO
        remaining = position.signed_amount - qty
        if remaining == 0:
            new_position = Position.empty(self._category)
        else:
            new_position = replace(position, signed_amount=remaining)
        record = self._record(
            order,
            "SELL",
            price,
            qty,
            profit=profit,
            profit_pct=profit_pct,
            is_win=profit >= 0,
            closes=True,
        )
        return replace(state, cash=state.cash + value, position=new_position), record

    def _apply_futures(
        self,
        state: _LedgerState,
        order: OrderRequest,
        price: Decimal,
    ) -> tuple[_LedgerState, TradeRecord]:
        if order.side not in ("long", "short"):
            raise OrderValidationError(f"invalid_side_for_futures: {order.side}")
        position = state.position
        qty = order.quantity
        direction = 1 if order.side == "long" else -1

        if not position.is_open:
            leverage = self._order_leverage(order)
            margin = price * qty / leverage
            _require_margin(state.cash, margin)
            new_position = Position(
                category=self._category,
                signed_amount=qty * direction,
                average_entry_price=price,
                leverage=leverage,
            )
            record = self._record(order, order.side.upper(), price, qty, leverage=leverage)
            return replace(state, cash=state.cash - margin, position=new_position), record

        leverage = position.leverage
        if position.direction == direction:
            if order.leverage is not None and order.leverage != leverage:
                self._logger.debug(
                    "leverage_change_deferred",
                    symbol=self._symbol,
                    position_leverage=leverage,
                    requested_leverage=order.leverage,
                )
            margin = price * qty / leverage
            _require_margin(state.cash, margin)
            new_amount = position.abs_amount + qty
            average = (position.cost_basis + price * qty) / new_amount
            new_position = replace(
                position,
                signed_amount=new_amount * direction,
                average_entry_price=average,
            )
            record = self._record(order, order.side.upper(), price, qty, leverage=leverage)
            return replace(state, cash=state.cash - margin, position=new_position), record

        return self._reduce_or_reverse(state, order, price, direction)

    def _reduce_or_reverse(
        self,
        state: _LedgerState,
        order: OrderRequest,
        price: Decimal,
        direction: int,
    ) -> tuple[_LedgerState, TradeRecord]:
        position = state.position
        leverage = position.leverage
        entry = position.average_entry_price
        close_qty = min(order.quantity, position.abs_amount)

        pnl = (price - entry) * close_qty * leverage * position.direction
        closed_margin = entry * close_qty / leverage
        cash = state.cash + max(ZERO, closed_margin + pnl)
        pnl_pct = pnl / closed_margin * HUNDRED if closed_margin > 0 else ZERO
        closed_side = "LONG" if position.direction > 0 else "SHORT"
        action = f"{closed_side}_CLOSE"
        filled = close_qty
        record_leverage = leverage

        remaining = position.abs_amount - close_qty
        remainder = order.quantity - close_qty
        if remaining > 0:
            new_position = replace(position, signed_amount=remaining * position.direction)
        elif remainder > 0:
            new_leverage = self._order_leverage(order)
            margin = price * remainder / new_leverage
            if cash >= margin:
                cash -= margin
                new_position = Position(
                    category=self._category,
                    signed_amount=remainder * direction,
                    average_entry_price=price,
                    leverage=new_leverage,
                )
                action = f"REVERSE_TO_{order.side.upper()}"
                filled = order.quantity
                record_leverage = new_leverage
            else:
                self._logger.info(
                    "reverse_remainder_skipped",
                    symbol=self._symbol,
                    remainder=remainder,
                    required_margin=margin,
                    available=cash,
                )
                new_position = Position.empty(self._category)
        else:
            new_position = Position.empty(self._category)

        record = self._record(
            order,
            action,
            price,
            filled,
            profit=pnl,
            profit_pct=pnl_pct,
            is_win=pnl >= 0,
            closes=True,
            leverage=record_leverage,
        )
        return replace(state, cash=cash, position=new_position), record

    def _order_leverage(self, order: OrderRequest) -> int:
        leverage = order.leverage if order.leverage is not None else self._default_leverage
        if not 1 <= leverage <= self._category.rules.max_leverage:
            raise OrderValidationError(f"leverage_out_of_range: {leverage}")
        return leverage

    def _record(
        self,
        order: OrderRequest,
        action: str,
        price: Decimal,
        qty: Decimal,
        *,
        profit: Decimal = ZERO,
        profit_pct: Decimal = ZERO,
        is_win: bool = False,
        closes: bool = False,
        leverage: int | None = None,
    ) -> TradeRecord:
        return TradeRecord(
            timestamp=_now_iso(),
            symbol=self._symbol,
            action=action,
            order_type=order.order_type,
            category=self._category,
            execution_price=price,
            quantity=qty,
            realized_profit=profit,
            realized_profit_pct=profit_pct,
            is_win=is_win,
            origin=order.origin,
            closes_position=closes,
            leverage=leverage,
            strategy_id=order.strategy_id,
            confidence=order.confidence,
        )


def _require_margin(cash: Decimal, margin: Decimal) -> None:
    if cash < margin:
        raise InsufficientMarginError(
            f"insufficient_margin: required={margin} available={cash}"
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
