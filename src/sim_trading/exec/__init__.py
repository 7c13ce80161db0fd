"""Order execution against the simulated account ledger."""

from sim_trading.exec.auto_trader import AutoTrader, AutoTraderState
from sim_trading.exec.ledger import PositionLedger
from sim_trading.exec.orders import OrderExecutor

__all__ = [
    "AutoTrader",
    "AutoTraderState",
    "OrderExecutor",
    "PositionLedger",
]
