"""Signal-driven auto trader."""

from __future__ import annotations

from enum import Enum

from sim_trading.errors import InvalidStateTransitionError, OrderError
from sim_trading.exec.orders import OrderExecutor, round_quantity
from sim_trading.risk.rules import RiskEngine, RiskSettings
from sim_trading.types import (
    AccountState,
    InstrumentCategory,
    OrderRequest,
    Signal,
    TradeRecord,
)
from sim_trading.utils.logging import get_logger, log_risk_event

_FUTURES_SIDES = {"BUY": "long", "SELL": "short"}
_SPOT_SIDES = {"BUY": "buy", "SELL": "sell"}


class AutoTraderState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class AutoTrader:
    """Turns signals into sized market orders while running.

    BUY signals spend ``position_size_pct`` of available cash, SELL signals
    sell (or, for futures, short) ``position_size_pct`` of the held quantity.
    Signals that would size to zero are skipped.
    """

    def __init__(self, executor: OrderExecutor, risk: RiskSettings | None = None) -> None:
        self._executor = executor
        self._risk_engine = RiskEngine(risk or RiskSettings())
        self._state = AutoTraderState.STOPPED
        self._logger = get_logger("sim_trading.exec.auto_trader")

    @property
    def state(self) -> AutoTraderState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is AutoTraderState.RUNNING

    @property
    def risk(self) -> RiskSettings:
        return self._risk_engine.risk

    def configure(self, risk: RiskSettings) -> None:
        if self.is_running:
            raise InvalidStateTransitionError("cannot_configure_risk_while_running")
        self._risk_engine = RiskEngine(risk)

    def start(self) -> None:
        if self.is_running:
            raise InvalidStateTransitionError("auto_trader_already_running")
        self._state = AutoTraderState.RUNNING
        self._logger.info("auto_trader_started", risk=self.risk.model_dump())

    def stop(self, reason: str = "requested") -> None:
        if not self.is_running:
            return
        self._state = AutoTraderState.STOPPED
        self._logger.info("auto_trader_stopped", reason=reason)

    def build_order(self, signal: Signal) -> OrderRequest | None:
        """Deterministically size a market order for ``signal``."""
        ledger = self._executor.ledger
        category = ledger.category
        sides = _FUTURES_SIDES if category is InstrumentCategory.FUTURES else _SPOT_SIDES
        side = sides[signal.action]
        fraction = self._risk_engine.position_fraction()

        if signal.action == "SELL":
            quantity = round_quantity(ledger.position.abs_amount * fraction)
        else:
            reducing = self._executor.is_reducing(side)
            if not reducing and (ledger.cash_balance <= 0 or ledger.last_price is None):
                return None
            quantity = self._executor.size_by_percent(side, fraction * 100)

        if quantity <= 0:
            return None
        return OrderRequest(
            side=side,  # type: ignore[arg-type]
            quantity=quantity,
            category=category,
            origin="auto",
            strategy_id=signal.strategy_id,
            confidence=signal.confidence,
        )

    def on_signal(self, signal: Signal) -> TradeRecord | None:
        """Execute ``signal`` if running; rejected orders drop the signal."""
        if not self.is_running:
            return None
        order = self.build_order(signal)
        if order is None:
            self._logger.debug(
                "signal_skipped",
                action=signal.action,
                strategy=signal.strategy_id,
                reason="zero_size",
            )
            return None
        try:
            return self._executor.submit(order)
        except OrderError as exc:
            self._logger.info(
                "auto_order_rejected",
                action=signal.action,
                strategy=signal.strategy_id,
                reason=str(exc),
            )
            return None

    def enforce_risk(self, account: AccountState) -> TradeRecord | None:
        """Apply stop-loss, take-profit and max-loss rules while running."""
        if not self.is_running:
            return None
        result = self._risk_engine.check(account)
        record: TradeRecord | None = None
        if result.exit_reason is not None and account.position.is_open:
            log_risk_event(
                self._logger,
                event_type=result.exit_reason,
                action="close_position",
                unrealized_pnl_pct=account.unrealized_pnl_pct,
            )
            try:
                record = self._executor.close_position(origin="auto")
            except OrderError as exc:
                self._logger.warning("risk_exit_failed", reason=str(exc))
        if not result.allowed:
            log_risk_event(
                self._logger,
                event_type=",".join(result.reasons),
                action="stop_auto_trading",
                drawdown_pct=self._risk_engine.drawdown_pct(account),
            )
            self.stop(reason=result.reasons[0])
        return record
