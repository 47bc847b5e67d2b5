"""MQTT transport built on a threaded paho-mqtt client.

Topic layout: ``{prefix}/{target}/{sender}`` with both origins
percent-quoted into single topic levels.  Each context subscribes to
``{prefix}/{own origin}/+`` and reads the sender origin from the last
topic level, so the broker ACL must pin that level to the publishing
client.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, cast
from urllib.parse import quote, unquote

import paho.mqtt.client as mqtt

from crossstore._origin import origin_of
from crossstore._transport import MessageCallback
from crossstore.config import MqttSettings
from crossstore.exceptions import TransportError


def encode_topic(prefix: str, target: str, sender: str) -> str:
    return f"{prefix}/{quote(target, safe='')}/{quote(sender, safe='')}"


def inbox_filter(prefix: str, origin: str) -> str:
    """Subscription filter matching every message addressed to *origin*."""
    return f"{prefix}/{quote(origin, safe='')}/+"


def decode_topic(prefix: str, topic: str) -> tuple[str, str]:
    """Return ``(target, sender)`` from a transport topic.

    Raises :class:`ValueError` for topics outside *prefix* or with the
    wrong number of levels.
    """
    head = f"{prefix}/"
    if not topic.startswith(head):
        raise ValueError(f"Topic {topic!r} is outside prefix {prefix!r}")
    levels = topic[len(head) :].split("/")
    if len(levels) != 2 or not all(levels):
        raise ValueError(f"Malformed transport topic {topic!r}")
    return unquote(levels[0]), unquote(levels[1])


class MqttTransport:
    """Transport over an MQTT broker.

    ``start()`` connects on an executor thread and starts the paho
    network loop; inbound messages are handed to subscribers on the
    asyncio loop via ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        origin: str,
        settings: MqttSettings,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._origin = origin_of(origin)
        self._settings = settings
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._callbacks: list[MessageCallback] = []

    @property
    def origin(self) -> str:
        return self._origin

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    async def start(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        try:
            await loop.run_in_executor(None, self._start_blocking)
        except (OSError, ValueError) as exc:
            raise TransportError(
                f"MQTT connect to {self._settings.host}:{self._settings.port} failed: {exc}",
                target=self._settings.host,
            ) from exc

    async def stop(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        await loop.run_in_executor(None, self._stop_blocking)

    def _start_blocking(self) -> None:
        self._stop_blocking()
        settings = self._settings
        topic_filter = inbox_filter(settings.topic_prefix, self._origin)
        self._logger.debug(
            "MQTT transport start host=%s port=%s filter=%s",
            settings.host,
            settings.port,
            topic_filter,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if settings.username is not None:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected, subscribing filter=%s", topic_filter)
            c.subscribe(topic_filter, qos=settings.qos)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_publish(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True

    def _stop_blocking(self) -> None:
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def handle_publish(self, topic: str, payload: bytes) -> None:
        """Decode an inbound PUBLISH and schedule delivery on the loop.

        Runs on the paho network thread.  Undecodable messages are dropped.
        """
        try:
            target, sender = decode_topic(self._settings.topic_prefix, topic)
            message = json.loads(payload.decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            self._logger.debug("Dropping undecodable MQTT message topic=%s", topic, exc_info=True)
            return
        if target != self._origin:
            self._logger.debug("Dropping MQTT message for %s (we are %s)", target, self._origin)
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            self._logger.debug("No event loop, dropping MQTT message from %s", sender)
            return
        loop.call_soon_threadsafe(self._dispatch, message, sender)

    def _dispatch(self, message: Any, sender: str) -> None:
        for callback in list(self._callbacks):
            try:
                callback(message, sender)
            except Exception:
                self._logger.exception("Message callback failed sender=%s", sender)

    def send(self, target: str, message: Any) -> None:
        client = self._client
        if client is None or not self._running:
            raise TransportError("MQTT transport is not running", target=target)
        try:
            target_origin = origin_of(target)
            payload = json.dumps(message)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Cannot send to {target}: {exc}", target=target) from exc
        topic = encode_topic(self._settings.topic_prefix, target_origin, self._origin)
        info = client.publish(topic, payload, qos=self._settings.qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"MQTT publish failed rc={info.rc}", target=target_origin)

    def subscribe(self, callback: MessageCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe
