"""Error taxonomy for order handling and session control.

Every error here is local and recoverable: the operation that raised it has
left the account untouched.
"""

from __future__ import annotations


class TradingError(Exception):
    """Base error for the simulated trading account."""


class OrderError(TradingError):
    """Order rejected by validation or by the ledger."""


class OrderValidationError(OrderError):
    """Malformed order: non-positive quantity/price, bad side or leverage."""


class InsufficientFundsError(OrderError):
    """Spot buy costs more than the available cash."""


class InsufficientMarginError(OrderError):
    """Futures open/add needs more margin than the available cash."""


class InsufficientHoldingsError(OrderError):
    """Sell/close quantity exceeds the held amount."""


class InvalidStateTransitionError(TradingError):
    """Operation not allowed in the current auto-trader state."""


class ConfigError(TradingError):
    """Rejected configuration values."""
