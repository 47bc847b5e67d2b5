"""Transport interface and the in-process message bus."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Callable
from typing import Any, Protocol

from crossstore._origin import origin_of
from crossstore.exceptions import TransportError

_logger = logging.getLogger(__name__)

#: ``callback(message, sender_origin)``
MessageCallback = Callable[[Any, str], None]


class Transport(Protocol):
    """Structural transport interface used by the hub and the client.

    ``send`` is fire-and-forget: no ordering or delivery guarantee.
    Subscribers receive every inbound message together with the sender
    origin as established by the transport, never by the payload.
    Callbacks run on the event loop.
    """

    @property
    def origin(self) -> str:
        ...

    def send(self, target: str, message: Any) -> None:
        ...

    def subscribe(self, callback: MessageCallback) -> Callable[[], None]:
        ...


class LocalEndpoint:
    """One execution context attached to a :class:`LocalBus`."""

    def __init__(self, bus: LocalBus, origin: str) -> None:
        self._bus = bus
        self._origin = origin
        self._callbacks: list[MessageCallback] = []

    @property
    def origin(self) -> str:
        return self._origin

    def send(self, target: str, message: Any) -> None:
        self._bus.deliver(self._origin, target, message)

    def subscribe(self, callback: MessageCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def _dispatch(self, message: Any, sender: str) -> None:
        for callback in list(self._callbacks):
            try:
                callback(message, sender)
            except Exception:
                _logger.exception("Message callback failed origin=%s sender=%s", self._origin, sender)


class LocalBus:
    """In-process transport connecting any number of origins.

    Every message is round-tripped through JSON, so only plain data
    crosses the bus.  Delivery is asynchronous (scheduled on the running
    loop).  ``shuffle`` adds a random delay per message so deliveries
    can overtake each other; ``duplicate`` delivers every message twice.
    Messages to an origin without an endpoint are dropped.

    ``history`` records every accepted ``(sender, target, message)``.
    """

    def __init__(
        self,
        *,
        shuffle: bool = False,
        duplicate: bool = False,
        max_jitter: float = 0.005,
        seed: int | None = None,
    ) -> None:
        self._endpoints: dict[str, LocalEndpoint] = {}
        self._shuffle = shuffle
        self._duplicate = duplicate
        self._max_jitter = max_jitter
        self._random = random.Random(seed)
        self.history: list[tuple[str, str, Any]] = []

    def endpoint(self, origin: str) -> LocalEndpoint:
        """Return the endpoint for *origin*, creating it on first use."""
        key = origin_of(origin)
        endpoint = self._endpoints.get(key)
        if endpoint is None:
            endpoint = LocalEndpoint(self, key)
            self._endpoints[key] = endpoint
        return endpoint

    def deliver(self, sender: str, target: str, message: Any) -> None:
        try:
            target_origin = origin_of(target)
        except ValueError as exc:
            raise TransportError(str(exc), target=target) from exc
        try:
            payload = json.dumps(message)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Message is not serializable: {exc}", target=target_origin) from exc
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise TransportError("LocalBus requires a running event loop", target=target_origin) from exc

        self.history.append((sender, target_origin, json.loads(payload)))
        endpoint = self._endpoints.get(target_origin)
        if endpoint is None:
            _logger.debug("No endpoint for %s, dropping message from %s", target_origin, sender)
            return

        copies = 2 if self._duplicate else 1
        for _ in range(copies):
            # decode per copy so receivers never share a mutable message
            if self._shuffle:
                delay = self._random.random() * self._max_jitter
                loop.call_later(delay, endpoint._dispatch, json.loads(payload), sender)  # noqa: SLF001
            else:
                loop.call_soon(endpoint._dispatch, json.loads(payload), sender)  # noqa: SLF001
