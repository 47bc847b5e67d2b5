from __future__ import annotations

import asyncio
from typing import Any

import pytest

from crossstore import LocalBus, TransportError


@pytest.mark.asyncio
async def test_delivery_is_async_and_tagged_with_sender_origin() -> None:
    bus = LocalBus()
    sender = bus.endpoint("https://App.example.com/page")
    receiver = bus.endpoint("https://hub.example.com")
    received: list[tuple[Any, str]] = []
    receiver.subscribe(lambda message, origin: received.append((message, origin)))

    sender.send("https://hub.example.com/hub.html", {"id": "1", "args": [1, None]})
    assert received == []
    await asyncio.sleep(0)

    assert received == [({"id": "1", "args": [1, None]}, "https://app.example.com")]


@pytest.mark.asyncio
async def test_messages_are_copied_not_shared() -> None:
    bus = LocalBus()
    sender = bus.endpoint("https://a.test")
    received: list[Any] = []
    bus.endpoint("https://b.test").subscribe(lambda message, _origin: received.append(message))
    payload = {"args": [1]}

    sender.send("https://b.test", payload)
    payload["args"].append(2)
    await asyncio.sleep(0)

    assert received == [{"args": [1]}]


@pytest.mark.asyncio
async def test_unserializable_message_raises() -> None:
    bus = LocalBus()

    with pytest.raises(TransportError):
        bus.endpoint("https://a.test").send("https://b.test", {"value": object()})


@pytest.mark.asyncio
async def test_message_to_unknown_origin_is_dropped() -> None:
    bus = LocalBus()

    bus.endpoint("https://a.test").send("https://nobody.test", {"type": "poll"})
    await asyncio.sleep(0)

    assert bus.history == [("https://a.test", "https://nobody.test", {"type": "poll"})]


@pytest.mark.asyncio
async def test_duplicate_delivery_and_unsubscribe() -> None:
    bus = LocalBus(duplicate=True)
    received: list[Any] = []
    unsubscribe = bus.endpoint("https://b.test").subscribe(lambda message, _origin: received.append(message))

    bus.endpoint("https://a.test").send("https://b.test", {"n": 1})
    await asyncio.sleep(0)
    assert received == [{"n": 1}, {"n": 1}]

    unsubscribe()
    bus.endpoint("https://a.test").send("https://b.test", {"n": 2})
    await asyncio.sleep(0)
    assert len(received) == 2


@pytest.mark.asyncio
async def test_shuffle_can_reorder_deliveries() -> None:
    bus = LocalBus(shuffle=True, seed=1, max_jitter=0.01)
    received: list[int] = []
    bus.endpoint("https://b.test").subscribe(lambda message, _origin: received.append(message["n"]))

    for n in range(30):
        bus.endpoint("https://a.test").send("https://b.test", {"n": n})
    await asyncio.sleep(0.05)

    assert sorted(received) == list(range(30))
    assert received != list(range(30))


@pytest.mark.asyncio
async def test_failing_callback_does_not_block_others() -> None:
    bus = LocalBus()
    received: list[Any] = []
    endpoint = bus.endpoint("https://b.test")

    def _boom(_message: Any, _origin: str) -> None:
        raise RuntimeError("boom")

    endpoint.subscribe(_boom)
    endpoint.subscribe(lambda message, _origin: received.append(message))
    bus.endpoint("https://a.test").send("https://b.test", {"n": 1})
    await asyncio.sleep(0)

    assert received == [{"n": 1}]


def test_send_requires_running_loop() -> None:
    bus = LocalBus()

    with pytest.raises(TransportError):
        bus.endpoint("https://a.test").send("https://b.test", {"n": 1})
