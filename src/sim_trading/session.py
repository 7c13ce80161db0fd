"""Trading session: one serialized ledger fed by ticks, orders and signals."""

from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable

from sim_trading.config import Settings
from sim_trading.data.feed import PriceTick, RandomWalkFeed
from sim_trading.errors import ConfigError, OrderError, OrderValidationError
from sim_trading.exec.auto_trader import AutoTrader, AutoTraderState
from sim_trading.exec.ledger import PositionLedger
from sim_trading.exec.orders import OrderExecutor
from sim_trading.features.indicators import compute_price_features
from sim_trading.journal.store import JournalStore
from sim_trading.notifications import Broadcaster, NotificationCenter
from sim_trading.risk.rules import RiskSettings
from sim_trading.strategy.signals import SignalGenerator
from sim_trading.types import (
    AccountState,
    InstrumentCategory,
    LiquidationEvent,
    Notification,
    OrderRequest,
    Signal,
    StrategyId,
    TradeOrigin,
    TradeRecord,
    TradingStats,
)
from sim_trading.utils.logging import get_logger

_BUY_ACTIONS = frozenset({"BUY", "LONG", "REVERSE_TO_LONG", "SHORT_CLOSE"})


@dataclass(slots=True)
class _Tick:
    price: Decimal


@dataclass(slots=True)
class _Order:
    order: OrderRequest
    future: asyncio.Future[TradeRecord]


@dataclass(slots=True)
class _Call:
    fn: Callable[[], Any]
    future: asyncio.Future[Any] | None = None


class TradingSession:
    """Owns the ledger for one instrument and serializes every mutation.

    Ticks, orders and analysis cycles are queued on one bounded
    ``asyncio.Queue`` and applied by a single consumer task, in arrival
    order. A market order therefore always fills at the price of the last
    tick applied before it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        journal: JournalStore | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._symbol = settings.instrument_symbol
        category = InstrumentCategory(settings.instrument_category)
        leverage = settings.default_leverage if category.rules.uses_margin else 1
        self._ledger = PositionLedger(
            category,
            settings.initial_cash,
            symbol=self._symbol,
            maintenance_margin_rate=settings.maintenance_margin_rate,
            default_leverage=leverage,
        )
        self._executor = OrderExecutor(self._ledger, default_leverage=leverage)
        self._auto_trader = AutoTrader(self._executor, RiskSettings.from_settings(settings))
        self._generator = SignalGenerator(
            settings.strategy,
            history_size=settings.price_history_size,
            cooldown_sec=settings.signal_cooldown_sec,
            rng=rng or random.Random(settings.random_seed),
            stochastic_fallback=settings.stochastic_fallback,
            clock=clock,
        )
        self._journal = journal
        self._trades: deque[TradeRecord] = deque(maxlen=settings.trade_history_limit)
        self._signals: deque[Signal] = deque(maxlen=settings.signal_history_limit)
        self._stats = TradingStats()
        self._trade_feed: Broadcaster[TradeRecord] = Broadcaster(settings.trade_history_limit)
        self._notifications = NotificationCenter(
            ttl_sec=settings.notification_ttl_sec,
            limit=settings.notification_limit,
        )
        self._queue: asyncio.Queue[_Tick | _Order | _Call] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._analysis: asyncio.Task[None] | None = None
        self._logger = get_logger("sim_trading.session").bind(symbol=self._symbol)

    # ------------------------------------------------------------ lifecycle

    async def open(self) -> None:
        if self._consumer is not None:
            return
        self._queue = asyncio.Queue(maxsize=self._settings.command_queue_size)
        self._notifications.bind(asyncio.get_running_loop())
        self._consumer = asyncio.create_task(self._consume(), name=f"ledger-{self._symbol}")
        self._journal_append(
            "session_start",
            {
                "symbol": self._symbol,
                "category": self._ledger.category.value,
                "initial_cash": self._settings.initial_cash,
            },
        )
        self._logger.info("session_opened", category=self._ledger.category.value)

    async def close(self) -> None:
        """Stop auto trading, drain queued commands and stop the consumer."""
        if self._consumer is None or self._queue is None:
            return
        self.stop_auto_trading()
        await self.flush()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        self._queue = None
        self._notifications.close()
        snapshot = self.get_snapshot()
        self._journal_append(
            "session_end",
            {
                "symbol": self._symbol,
                "cash_balance": snapshot.cash_balance,
                "total_assets": snapshot.total_assets,
                "return_pct": snapshot.return_pct,
                "total_trades": self._stats.total_trades,
            },
        )
        self._logger.info("session_closed", total_trades=self._stats.total_trades)

    async def __aenter__(self) -> TradingSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------ producers

    async def push_tick(self, tick: PriceTick | Decimal) -> None:
        """Queue one price update; ticks are applied in arrival order."""
        price = tick.price if isinstance(tick, PriceTick) else tick
        if price <= 0:
            raise ValueError("price_must_be_positive")
        await self._require_queue().put(_Tick(price))

    async def submit_order(self, order: OrderRequest) -> TradeRecord:
        """Queue an order and wait for its trade record or ``OrderError``."""
        future: asyncio.Future[TradeRecord] = asyncio.get_running_loop().create_future()
        await self._require_queue().put(_Order(order, future))
        return await future

    async def close_position(self) -> TradeRecord:
        """Fully close the open position at the latest tick price."""
        return await self._call(lambda: self._apply(self._executor.close_position))

    async def flush(self) -> None:
        """Wait until every queued command has been applied."""
        await self._require_queue().join()

    async def analyze_now(self) -> Signal | None:
        """Run one analysis cycle on the consumer and return its signal."""
        return await self._call(self._run_analysis_cycle)

    # ------------------------------------------------------------ readers

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def auto_trader_state(self) -> AutoTraderState:
        return self._auto_trader.state

    @property
    def strategy_id(self) -> StrategyId:
        return self._generator.strategy_id

    def get_snapshot(self) -> AccountState:
        return self._ledger.snapshot()

    def trade_history(self, origin: TradeOrigin | None = None) -> list[TradeRecord]:
        """Most recent first, optionally filtered by origin."""
        if origin is None:
            return list(self._trades)
        return [trade for trade in self._trades if trade.origin == origin]

    def signals(self) -> list[Signal]:
        return list(self._signals)

    def notifications(self) -> list[Notification]:
        return self._notifications.active()

    def stats(self) -> TradingStats:
        return replace(self._stats)

    def price_history(self) -> list[Decimal]:
        return self._generator.history(self._symbol)

    def subscribe_trade_history(self) -> asyncio.Queue[TradeRecord]:
        return self._trade_feed.subscribe()

    def unsubscribe_trade_history(self, queue: asyncio.Queue[TradeRecord]) -> None:
        self._trade_feed.unsubscribe(queue)

    def subscribe_notifications(self) -> asyncio.Queue[Notification]:
        return self._notifications.subscribe()

    def unsubscribe_notifications(self, queue: asyncio.Queue[Notification]) -> None:
        self._notifications.unsubscribe(queue)

    # ------------------------------------------------------------ control

    def configure_risk_settings(self, risk: RiskSettings | dict[str, Any]) -> RiskSettings:
        """Replace risk settings; rejected while auto trading is running."""
        settings = risk if isinstance(risk, RiskSettings) else RiskSettings.parse_strict(risk)
        self._auto_trader.configure(settings)
        self._logger.info("risk_settings_updated", **settings.model_dump())
        return settings

    def set_strategy(self, strategy_id: StrategyId) -> None:
        try:
            self._generator.set_strategy(strategy_id)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def set_leverage(self, leverage: int) -> None:
        """Leverage for the next futures position opened from flat."""
        try:
            self._executor.default_leverage = leverage
        except OrderValidationError as exc:
            raise ConfigError(str(exc)) from exc

    def start_auto_trading(self, *, schedule: bool = True) -> None:
        """Start the auto trader; ``schedule`` runs analysis on a timer."""
        self._require_queue()
        self._auto_trader.start()
        if schedule:
            self._analysis = asyncio.create_task(
                self._analysis_loop(), name=f"analysis-{self._symbol}"
            )
        self._journal_append("auto_trader", {"state": "running", "strategy": self.strategy_id})

    def stop_auto_trading(self, reason: str = "requested") -> None:
        if self._analysis is not None:
            self._analysis.cancel()
            self._analysis = None
        if self._auto_trader.is_running:
            self._auto_trader.stop(reason)
            self._journal_append("auto_trader", {"state": "stopped", "reason": reason})

    # ------------------------------------------------------------ consumer

    async def _consume(self) -> None:
        queue = self._require_queue()
        while True:
            command = await queue.get()
            try:
                self._handle(command)
            except Exception as exc:
                # Keep the consumer alive; the failed command is reported.
                self._logger.exception("command_failed", error=str(exc))
                self._journal_append("error", {"error": str(exc)})
            finally:
                queue.task_done()

    def _handle(self, command: _Tick | _Order | _Call) -> None:
        if isinstance(command, _Tick):
            self._on_tick(command.price)
        elif isinstance(command, _Order):
            _resolve(command.future, lambda: self._apply(self._executor.submit, command.order))
        elif command.future is None:
            command.fn()
        else:
            _resolve(command.future, command.fn)

    def _on_tick(self, price: Decimal) -> None:
        event = self._ledger.on_price_tick(price)
        self._generator.on_tick(self._symbol, price)
        if event is not None:
            self._on_liquidation(event)

    def _on_liquidation(self, event: LiquidationEvent) -> None:
        self._remember(event.trade)
        self._journal_append("liquidation", event)
        self._notifications.publish(
            "liquidation",
            f"Liquidation: {self._symbol} position liquidated due to insufficient margin.",
            profit=event.trade.realized_profit,
            profit_pct=event.trade.realized_profit_pct,
        )

    def _apply(self, fn: Callable[..., TradeRecord], *args: Any) -> TradeRecord:
        record = fn(*args)
        self._after_trade(record)
        return record

    def _run_analysis_cycle(self) -> Signal | None:
        if self._auto_trader.is_running:
            exit_record = self._auto_trader.enforce_risk(self._ledger.snapshot())
            if exit_record is not None:
                self._after_trade(exit_record)
            if not self._auto_trader.is_running:
                self._notifications.publish("risk", "Auto trading stopped: max loss reached.")
                self._journal_append("risk", {"reason": "max_loss_reached", "action": "stop_auto_trading"})
                self._journal_append("auto_trader", {"state": "stopped", "reason": "max_loss_reached"})
                self.stop_auto_trading(reason="max_loss_reached")
                return None

        signal = self._generator.analyze(self._symbol)
        if signal is None:
            return None
        self._signals.appendleft(signal)
        self._journal_append(
            "signal",
            {
                "signal": signal,
                "features": compute_price_features(self.price_history()),
            },
        )
        record = self._auto_trader.on_signal(signal)
        if record is not None:
            self._after_trade(record)
        return signal

    def _after_trade(self, record: TradeRecord) -> None:
        self._remember(record)
        self._journal_append("order", record)
        self._notifications.publish(
            "buy" if record.action in _BUY_ACTIONS else "sell",
            f"{record.action} executed: {self._symbol} {record.quantity:.4f} @ {record.execution_price}",
            profit=record.realized_profit,
            profit_pct=record.realized_profit_pct,
        )

    def _remember(self, record: TradeRecord) -> None:
        self._trades.appendleft(record)
        self._stats.record(record)
        self._trade_feed.publish(record)

    async def _analysis_loop(self) -> None:
        interval = self._settings.analysis_interval_sec
        queue = self._require_queue()
        while True:
            await asyncio.sleep(interval)
            await queue.put(_Call(self._run_analysis_cycle))

    async def _call(self, fn: Callable[[], Any]) -> Any:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._require_queue().put(_Call(fn, future))
        return await future

    def _require_queue(self) -> asyncio.Queue[_Tick | _Order | _Call]:
        if self._queue is None:
            raise RuntimeError("session_not_open")
        return self._queue

    def _journal_append(self, event_type: str, payload: Any) -> None:
        if self._journal is not None:
            self._journal.append(event_type, payload)


def _resolve(future: asyncio.Future[Any], fn: Callable[[], Any]) -> None:
    """Run ``fn`` and hand its result or ``OrderError`` to ``future``."""
    try:
        result = fn()
    except OrderError as exc:
        if not future.done():
            future.set_exception(exc)
        return
    except Exception as exc:
        if not future.done():
            future.set_exception(exc)
        raise
    if not future.done():
        future.set_result(result)


@dataclass(slots=True)
class SimulationResult:
    ticks: int
    signals: list[Signal]
    trades: list[TradeRecord]
    stats: TradingStats
    account: AccountState
    auto_trader_state: AutoTraderState


class _SteppedClock:
    """Simulated monotonic clock advanced by the simulation loop."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def run_simulation(
    settings: Settings,
    feed: RandomWalkFeed,
    ticks: int,
    *,
    journal: JournalStore | None = None,
) -> SimulationResult:
    """Drive an auto-trading session from ``feed`` without wall-clock waits.

    One analysis cycle runs after every tick and the signal cooldown is
    measured in simulated time, one ``analysis_interval_sec`` per tick.
    """
    clock = _SteppedClock()
    session = TradingSession(
        settings,
        journal=journal,
        rng=random.Random(settings.random_seed),
        clock=clock,
    )
    async with session:
        session.start_auto_trading(schedule=False)
        async for tick in feed.stream(ticks):
            await session.push_tick(tick)
            clock.now += settings.analysis_interval_sec
            if session.auto_trader_state is AutoTraderState.RUNNING:
                await session.analyze_now()
        state = session.auto_trader_state
    return SimulationResult(
        ticks=ticks,
        signals=session.signals(),
        trades=session.trade_history(),
        stats=session.stats(),
        account=session.get_snapshot(),
        auto_trader_state=state,
    )
