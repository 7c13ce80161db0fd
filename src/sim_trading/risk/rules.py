"""Risk settings and auto-trading guard rules."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sim_trading.config import Settings
from sim_trading.errors import ConfigError
from sim_trading.types import AccountState, RiskCheckResult


class RiskSettings(BaseModel):
    """Auto-trading risk parameters, all in percent."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    stop_loss_pct: float = Field(default=5.0, gt=0.0, le=100.0)
    take_profit_pct: float = Field(default=10.0, gt=0.0, le=1000.0)
    max_loss_pct: float = Field(default=20.0, gt=0.0, le=100.0)
    position_size_pct: float = Field(default=10.0, gt=0.0, le=100.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskSettings":
        return cls(
            stop_loss_pct=settings.stop_loss_pct,
            take_profit_pct=settings.take_profit_pct,
            max_loss_pct=settings.max_loss_pct,
            position_size_pct=settings.position_size_pct,
        )

    @classmethod
    def parse_strict(cls, payload: dict[str, object]) -> "RiskSettings":
        """Parse a raw dict; any violation becomes a ``ConfigError``."""
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            error = exc.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise ConfigError(f"invalid_risk_settings: {field}: {error['msg']}") from exc


class RiskEngine:
    """Rule-based exits and account guard for the auto trader."""

    def __init__(self, risk: RiskSettings) -> None:
        self._risk = risk

    @property
    def risk(self) -> RiskSettings:
        return self._risk

    def check(self, account: AccountState) -> RiskCheckResult:
        """Evaluate guard rails on one account snapshot.

        ``allowed`` turns false once the account drawdown against initial
        equity reaches ``max_loss_pct``; ``exit_reason`` asks for the open
        position to be closed.
        """
        reasons: list[str] = []
        exit_reason: str | None = None

        if account.position.is_open:
            pnl_pct = account.unrealized_pnl_pct
            if pnl_pct <= -Decimal(str(self._risk.stop_loss_pct)):
                exit_reason = "stop_loss"
            elif pnl_pct >= Decimal(str(self._risk.take_profit_pct)):
                exit_reason = "take_profit"

        if self.drawdown_pct(account) >= Decimal(str(self._risk.max_loss_pct)):
            reasons.append("max_loss_reached")
            exit_reason = exit_reason or "max_loss"

        return RiskCheckResult(
            allowed=not reasons,
            exit_reason=exit_reason,
            reasons=reasons,
        )

    def drawdown_pct(self, account: AccountState) -> Decimal:
        if account.initial_equity <= 0:
            return Decimal("0")
        loss = account.initial_equity - account.total_assets
        return max(Decimal("0"), loss / account.initial_equity * 100)

    def position_fraction(self) -> Decimal:
        return Decimal(str(self._risk.position_size_pct)) / 100
