"""Price tick schema and a synthetic random-walk feed for offline sessions."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, AsyncIterator

from pydantic import BaseModel, ConfigDict, Field

_PRICE_STEP = Decimal("0.01")


class PriceTick(BaseModel):
    """One price update as delivered by the feed transport."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    price: Decimal = Field(gt=0)
    price_text: str | None = Field(default=None, alias="priceAsText")
    change: Decimal = Decimal("0")
    change_percent: Decimal = Field(default=Decimal("0"), alias="changePercent")
    high: Decimal | None = None
    low: Decimal | None = None
    volume: Decimal | None = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PriceTick":
        """Parse a transport payload, preferring the exact text price."""
        data = dict(payload)
        text = data.get("priceAsText")
        if text:
            data["price"] = Decimal(str(text))
        return cls.model_validate(data)


class RandomWalkFeed:
    """Seeded random walk around a base price.

    Each step moves the price by up to ``volatility`` (a fraction) in either
    direction. Only meant to drive demo and test sessions.
    """

    def __init__(
        self,
        base_price: Decimal,
        *,
        volatility: float = 0.01,
        seed: int | None = None,
        interval_sec: float = 0.0,
    ) -> None:
        if base_price <= 0:
            raise ValueError("base_price_must_be_positive")
        self._rng = random.Random(seed)
        self._open = base_price
        self._price = base_price
        self._high = base_price
        self._low = base_price
        self._volatility = volatility
        self._interval_sec = interval_sec

    def next_tick(self) -> PriceTick:
        step = Decimal(str((self._rng.random() - 0.5) * 2 * self._volatility))
        price = (self._price * (1 + step)).quantize(_PRICE_STEP, rounding=ROUND_HALF_UP)
        self._price = max(price, _PRICE_STEP)
        self._high = max(self._high, self._price)
        self._low = min(self._low, self._price)
        change = self._price - self._open
        return PriceTick(
            price=self._price,
            priceAsText=str(self._price),
            change=change,
            changePercent=(change / self._open * 100).quantize(_PRICE_STEP),
            high=self._high,
            low=self._low,
            volume=Decimal(self._rng.randint(1, 1000)),
        )

    async def stream(self, count: int) -> AsyncIterator[PriceTick]:
        for _ in range(count):
            yield self.next_tick()
            await asyncio.sleep(self._interval_sec)
