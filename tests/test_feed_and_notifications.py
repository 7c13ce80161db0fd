from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from pydantic import ValidationError

from sim_trading.data.feed import PriceTick, RandomWalkFeed
from sim_trading.notifications import Broadcaster, NotificationCenter


def test_price_tick_prefers_text_price() -> None:
    tick = PriceTick.from_payload(
        {"price": 0.1, "priceAsText": "0.10000001", "changePercent": "1.5", "extra": 1}
    )
    assert tick.price == Decimal("0.10000001")
    assert tick.change_percent == Decimal("1.5")

    with pytest.raises(ValidationError):
        PriceTick.from_payload({"price": -1})


def test_random_walk_is_reproducible() -> None:
    feed_a = RandomWalkFeed(Decimal("100"), seed=3)
    feed_b = RandomWalkFeed(Decimal("100"), seed=3)
    prices_a = [feed_a.next_tick().price for _ in range(20)]
    prices_b = [feed_b.next_tick().price for _ in range(20)]
    assert prices_a == prices_b
    assert all(p > 0 for p in prices_a)
    assert all(abs(b / a - 1) <= Decimal("0.0101") for a, b in zip(prices_a, prices_a[1:]))

    with pytest.raises(ValueError):
        RandomWalkFeed(Decimal("0"))


def test_random_walk_stream() -> None:
    async def _collect() -> list[PriceTick]:
        feed = RandomWalkFeed(Decimal("50"), seed=1)
        return [tick async for tick in feed.stream(5)]

    ticks = asyncio.run(_collect())
    assert len(ticks) == 5
    assert ticks[-1].high is not None and ticks[-1].high >= ticks[-1].price


def test_broadcaster_drops_oldest_for_slow_subscriber() -> None:
    broadcaster: Broadcaster[int] = Broadcaster(maxsize=2)
    queue = broadcaster.subscribe()
    for item in (1, 2, 3):
        broadcaster.publish(item)
    assert queue.get_nowait() == 2
    assert queue.get_nowait() == 3

    broadcaster.unsubscribe(queue)
    broadcaster.publish(4)
    assert queue.empty()


def test_notifications_are_capped_most_recent_first() -> None:
    center = NotificationCenter(limit=2)
    queue = center.subscribe()
    center.publish("buy", "one")
    center.publish("sell", "two", profit=Decimal("1"))
    third = center.publish("liquidation", "three")

    assert [n.message for n in center.active()] == ["three", "two"]
    assert queue.qsize() == 3

    center.dismiss(third.id)
    assert [n.message for n in center.active()] == ["two"]


def test_notifications_expire_on_bound_loop() -> None:
    async def _run() -> tuple[int, int]:
        center = NotificationCenter(ttl_sec=0.01)
        center.bind(asyncio.get_running_loop())
        center.publish("risk", "stopped")
        before = len(center.active())
        await asyncio.sleep(0.05)
        after = len(center.active())
        center.close()
        return before, after

    assert asyncio.run(_run()) == (1, 0)


def test_notification_center_unsubscribe() -> None:
    center = NotificationCenter()
    queue = center.subscribe()
    center.publish("buy", "one")
    center.unsubscribe(queue)
    center.publish("sell", "two")

    assert queue.qsize() == 1
    assert queue.get_nowait().message == "one"
    assert len(center.active()) == 2
