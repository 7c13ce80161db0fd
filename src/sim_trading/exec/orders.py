"""Order validation, normalization and percentage sizing."""

from __future__ import annotations

from dataclasses import replace
from decimal import ROUND_DOWN, Decimal

from sim_trading.errors import OrderError, OrderValidationError
from sim_trading.exec.ledger import PositionLedger
from sim_trading.types import HUNDRED, ZERO, InstrumentCategory, OrderRequest, TradeRecord
from sim_trading.utils.logging import get_logger, log_order_execution

QUANTITY_STEP = Decimal("0.00000001")

_FUTURES_SIDE_ALIASES = {"buy": "long", "sell": "short"}


class OrderExecutor:
    """Validates orders and routes them to one ledger."""

    def __init__(self, ledger: PositionLedger, *, default_leverage: int = 1) -> None:
        self._ledger = ledger
        self._default_leverage = default_leverage
        self._logger = get_logger("sim_trading.exec.orders")

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def default_leverage(self) -> int:
        return self._default_leverage

    @default_leverage.setter
    def default_leverage(self, leverage: int) -> None:
        self._validate_leverage(leverage)
        self._default_leverage = leverage

    def normalize(self, order: OrderRequest) -> OrderRequest:
        """Check the order shape and fill category-specific defaults."""
        category = self._ledger.category
        if order.category is not category:
            raise OrderValidationError(
                f"category_mismatch: {order.category.value} != {category.value}"
            )
        if order.quantity <= 0:
            raise OrderValidationError("quantity_must_be_positive")
        if order.order_type not in ("market", "limit"):
            raise OrderValidationError(f"invalid_order_type: {order.order_type}")
        if order.order_type == "limit":
            if order.limit_price is None or order.limit_price <= 0:
                raise OrderValidationError("limit_price_must_be_positive")
        elif order.limit_price is not None:
            order = replace(order, limit_price=None)

        if category is InstrumentCategory.FUTURES:
            side = _FUTURES_SIDE_ALIASES.get(order.side, order.side)
            leverage = order.leverage if order.leverage is not None else self._default_leverage
            self._validate_leverage(leverage)
            order = replace(order, side=side, leverage=leverage)
        else:
            order = replace(order, leverage=None)

        if order.side not in category.rules.sides:
            raise OrderValidationError(f"invalid_side: {order.side} for {category.value}")
        return order

    def submit(self, order: OrderRequest) -> TradeRecord:
        """Validate, normalize and apply; ledger errors propagate unchanged."""
        try:
            normalized = self.normalize(order)
            record = self._ledger.apply_order(normalized)
        except OrderError as exc:
            log_order_execution(
                self._logger,
                symbol=self._ledger.symbol,
                side=order.side,
                quantity=order.quantity,
                price=order.limit_price,
                origin=order.origin,
                status="rejected",
                reason=str(exc),
            )
            raise
        log_order_execution(
            self._logger,
            symbol=record.symbol,
            side=record.action,
            quantity=record.quantity,
            price=record.execution_price,
            origin=record.origin,
            realized_profit=record.realized_profit,
        )
        return record

    def close_position(self, *, origin: str = "manual", strategy_id: str | None = None) -> TradeRecord:
        """Fully close the open position at the latest tick price."""
        position = self._ledger.position
        if not position.is_open:
            raise OrderValidationError("no_open_position")
        if position.category is InstrumentCategory.FUTURES:
            side = "short" if position.direction > 0 else "long"
        else:
            side = "sell"
        order = OrderRequest(
            side=side,  # type: ignore[arg-type]
            quantity=position.abs_amount,
            category=position.category,
            leverage=position.leverage if position.category.rules.uses_margin else None,
            origin=origin,  # type: ignore[arg-type]
            strategy_id=strategy_id,  # type: ignore[arg-type]
        )
        return self.submit(order)

    def size_by_percent(
        self,
        side: str,
        percent: float | Decimal,
        *,
        price: Decimal | None = None,
    ) -> Decimal:
        """Quantity for ``percent`` of cash (buy/open) or holdings (sell/close).

        Closing sides are those opposite to the open position; for futures with
        no open position every side sizes against cash.
        """
        pct = Decimal(str(percent))
        if pct <= 0 or pct > HUNDRED:
            raise OrderValidationError(f"percent_out_of_range: {percent}")

        position = self._ledger.position
        if self.is_reducing(side):
            held = position.abs_amount
            return round_quantity(min(held, held * pct / HUNDRED))

        mark = price if price is not None else self._ledger.last_price
        if mark is None or mark <= 0:
            raise OrderValidationError("no_market_price")
        cash = self._ledger.cash_balance
        qty = min(cash * pct / HUNDRED, cash) / mark
        return round_quantity(max(ZERO, qty))

    def is_reducing(self, side: str) -> bool:
        """Whether ``side`` reduces the open position."""
        position = self._ledger.position
        if self._ledger.category is InstrumentCategory.SPOT:
            return side == "sell"
        if not position.is_open:
            return False
        side = _FUTURES_SIDE_ALIASES.get(side, side)
        return (side == "short") == (position.direction > 0)

    def _validate_leverage(self, leverage: int) -> None:
        max_leverage = self._ledger.category.rules.max_leverage
        if not 1 <= leverage <= max_leverage:
            raise OrderValidationError(f"leverage_out_of_range: {leverage}")


def round_quantity(qty: Decimal) -> Decimal:
    """Round a quantity down to the 8-decimal step."""
    return qty.quantize(QUANTITY_STEP, rounding=ROUND_DOWN)
