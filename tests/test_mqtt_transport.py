from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from crossstore._mqtt import MqttTransport, decode_topic, encode_topic, inbox_filter
from crossstore.config import MqttSettings
from crossstore.exceptions import TransportError

HUB = "https://hub.example.com"
APP = "http://localhost:3000"


class _PublishInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc


class _FakeMqttClient:
    def __init__(self, rc: int = 0) -> None:
        self.rc = rc
        self.published: list[tuple[str, str, int]] = []

    def publish(self, topic: str, payload: str, qos: int = 0) -> _PublishInfo:
        self.published.append((topic, payload, qos))
        return _PublishInfo(self.rc)


def _running_transport(origin: str, client: _FakeMqttClient) -> MqttTransport:
    transport = MqttTransport(origin, MqttSettings(host="broker.test"), loop=asyncio.get_running_loop())
    # Bypass the broker connection; send() only needs a client and the running flag.
    transport._client = client  # type: ignore[assignment]  # noqa: SLF001
    transport._running = True  # noqa: SLF001
    return transport


def test_topics_quote_origins_into_single_levels() -> None:
    topic = encode_topic("crossstore", HUB, APP)

    assert topic == "crossstore/https%3A%2F%2Fhub.example.com/http%3A%2F%2Flocalhost%3A3000"
    assert decode_topic("crossstore", topic) == (HUB, APP)
    assert inbox_filter("crossstore", HUB) == "crossstore/https%3A%2F%2Fhub.example.com/+"


@pytest.mark.parametrize(
    "topic",
    ["other/a/b", "crossstore/only-one", "crossstore/a/b/c", "crossstore//b"],
)
def test_decode_topic_rejects_foreign_topics(topic: str) -> None:
    with pytest.raises(ValueError):
        decode_topic("crossstore", topic)


@pytest.mark.asyncio
async def test_inbound_publish_dispatches_with_topic_sender() -> None:
    transport = MqttTransport(HUB, MqttSettings(host="broker.test"), loop=asyncio.get_running_loop())
    received: list[tuple[Any, str]] = []
    transport.subscribe(lambda message, origin: received.append((message, origin)))

    transport.handle_publish(encode_topic("crossstore", HUB, APP), b'{"type": "poll"}')
    await asyncio.sleep(0)

    assert received == [({"type": "poll"}, APP)]


@pytest.mark.asyncio
async def test_inbound_publish_drops_bad_messages() -> None:
    transport = MqttTransport(HUB, MqttSettings(host="broker.test"), loop=asyncio.get_running_loop())
    received: list[Any] = []
    transport.subscribe(lambda message, _origin: received.append(message))

    transport.handle_publish(encode_topic("crossstore", HUB, APP), b"not json")
    transport.handle_publish(encode_topic("crossstore", "https://elsewhere.test", APP), b"{}")
    transport.handle_publish("unrelated/topic", b"{}")
    await asyncio.sleep(0)

    assert received == []


@pytest.mark.asyncio
async def test_send_publishes_json_to_target_topic() -> None:
    client = _FakeMqttClient()
    transport = _running_transport(APP, client)

    transport.send("https://hub.example.com/hub.html", {"id": "c:1", "operation": "get", "args": ["k"]})

    topic, payload, qos = client.published[0]
    assert decode_topic("crossstore", topic) == (HUB, APP)
    assert json.loads(payload) == {"id": "c:1", "operation": "get", "args": ["k"]}
    assert qos == 1


@pytest.mark.asyncio
async def test_send_failures_raise_transport_error() -> None:
    stopped = MqttTransport(APP, MqttSettings(host="broker.test"))
    with pytest.raises(TransportError):
        stopped.send(HUB, {"type": "poll"})

    failing = _running_transport(APP, _FakeMqttClient(rc=4))
    with pytest.raises(TransportError):
        failing.send(HUB, {"type": "poll"})

    with pytest.raises(TransportError):
        _running_transport(APP, _FakeMqttClient()).send(HUB, {"value": object()})
