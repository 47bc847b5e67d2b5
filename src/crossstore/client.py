"""Requesting-side async client for a crossstore hub."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from crossstore._origin import origin_of
from crossstore._redact import redact_for_log
from crossstore._transport import Transport
from crossstore.config import ClientConfig
from crossstore.exceptions import (
    ClientClosedError,
    CrossStoreConfigError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
    error_from_code,
)
from crossstore.models.envelope import (
    ControlMessage,
    ControlType,
    Operation,
    RequestMessage,
    ResponseMessage,
    control_type,
)

_logger = logging.getLogger(__name__)

_UNSET: Any = object()


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True)
class _PendingRequest:
    """A call awaiting its correlated reply."""

    id: str
    operation: Operation
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)


class CrossStoreClient:
    """Async client for a :class:`~crossstore.hub.CrossStoreHub`.

    The client subscribes to *transport* on construction and stays
    ``CONNECTING`` until the hub's ready handshake arrives.  Calls made
    before that are queued and sent in order right after the handshake.

    Usage::

        async with CrossStoreClient(transport, "https://hub.example.com/hub") as storage:
            await storage.on_connect()
            await storage.set("key", {"any": "json"}, ttl_ms=60_000)
            value = await storage.get("key")

    ``on_connect()`` has no deadline of its own: a hub that never comes up
    leaves it pending, so wrap it in ``asyncio.timeout`` where needed.
    """

    def __init__(
        self,
        transport: Transport,
        hub_url: str,
        *,
        config: ClientConfig | None = None,
    ) -> None:
        try:
            self._hub_origin = origin_of(hub_url)
        except ValueError as exc:
            raise CrossStoreConfigError(f"Invalid hub URL {hub_url!r}") from exc
        self._transport = transport
        self._config = config or ClientConfig()
        self._id = uuid.uuid4().hex
        self._count = 0
        self._state = ConnectionState.CONNECTING
        self._closed = False
        self._requests: dict[str, _PendingRequest] = {}
        self._queue: list[dict[str, Any]] = []
        self._connected = asyncio.Event()
        self._poll_task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = transport.subscribe(self._on_message)
        # outside a running loop, polling starts with connect() or the first call
        with contextlib.suppress(RuntimeError):
            self._ensure_polling()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def hub_origin(self) -> str:
        return self._hub_origin

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._requests)

    async def __aenter__(self) -> CrossStoreClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Start polling the hub for its ready handshake (idempotent)."""
        self._require_open()
        self._ensure_polling()

    async def on_connect(self) -> None:
        """Wait until the hub handshake has been received."""
        self._require_open()
        if self._state is ConnectionState.CONNECTED:
            return
        self._ensure_polling()
        await self._connected.wait()
        if self._state is not ConnectionState.CONNECTED:
            raise ClientClosedError("Client closed before connecting")

    async def close(self) -> None:
        """Detach from the transport and fail every pending call."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        poll_task = self._poll_task
        self._poll_task = None
        if poll_task is not None and not poll_task.done():
            poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poll_task

        pending = list(self._requests.values())
        self._requests.clear()
        self._queue.clear()
        for request in pending:
            if not request.future.done():
                request.future.set_exception(
                    ClientClosedError(f"Client closed, {request.operation.value} abandoned")
                )
        # wake on_connect() waiters so they can fail
        self._connected.set()
        _logger.debug("Client %s closed, abandoned %d pending requests", self._id, len(pending))

    def _require_open(self) -> None:
        if self._closed:
            raise ClientClosedError("Client is closed")

    def _ensure_polling(self) -> None:
        if self._poll_task is not None or self._state is ConnectionState.CONNECTED:
            return
        if self._config.poll_interval <= 0:
            return
        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll())

    async def _poll(self) -> None:
        poll = ControlMessage(type=ControlType.POLL).to_wire()
        while self._state is ConnectionState.CONNECTING and not self._closed:
            try:
                self._transport.send(self._hub_origin, poll)
            except TransportError:
                _logger.debug("Poll to %s failed", self._hub_origin, exc_info=True)
            await asyncio.sleep(self._config.poll_interval)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_message(self, message: Any, sender_origin: str) -> None:
        if sender_origin != self._hub_origin:
            _logger.debug("Ignoring message from %s (hub is %s)", sender_origin, self._hub_origin)
            return

        control = control_type(message)
        if control is ControlType.READY:
            self._handle_ready()
            return
        if control is not None:
            return

        try:
            response = ResponseMessage.model_validate(message)
        except ValidationError:
            _logger.debug("Ignoring malformed message from hub")
            return

        request = self._requests.pop(response.id, None)
        if request is None:
            _logger.debug("Ignoring reply for unknown request id=%s", response.id)
            return
        if request.future.done():
            return
        if response.error is not None:
            request.future.set_exception(error_from_code(response.error.code, response.error.message))
        else:
            request.future.set_result(response.result)

    def _handle_ready(self) -> None:
        if self._state is ConnectionState.CONNECTED or self._closed:
            return
        self._state = ConnectionState.CONNECTED
        queued, self._queue = self._queue, []
        _logger.debug("Connected to hub %s, flushing %d queued requests", self._hub_origin, len(queued))
        for envelope in queued:
            self._send_request(envelope)
        self._connected.set()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _send_request(self, envelope: dict[str, Any]) -> None:
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Request to %s: %s",
                self._hub_origin,
                redact_for_log(envelope, reveal=self._config.log_payloads),
            )
        try:
            self._transport.send(self._hub_origin, envelope)
        except TransportError as exc:
            request = self._requests.pop(envelope["id"], None)
            if request is not None and not request.future.done():
                request.future.set_exception(exc)

    async def call(self, operation: Operation | str, *args: Any, timeout: float | None = _UNSET) -> Any:
        """Send *operation* to the hub and return its result.

        ``timeout`` (seconds) defaults to ``config.request_timeout``.  On
        timeout or cancellation the request is forgotten locally and a
        late reply is ignored; the hub is not told.
        """
        self._require_open()
        try:
            op = Operation(operation)
        except ValueError as exc:
            raise ProtocolError(f"Unknown operation {operation!r}") from exc

        self._count += 1
        request_id = f"{self._id}:{self._count}"
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._requests[request_id] = _PendingRequest(id=request_id, operation=op, future=future)

        envelope = RequestMessage(id=request_id, operation=op, args=list(args)).to_wire()
        if self._state is ConnectionState.CONNECTED:
            self._send_request(envelope)
        else:
            self._ensure_polling()
            self._queue.append(envelope)

        effective = self._config.request_timeout if timeout is _UNSET else timeout
        try:
            if effective is None:
                return await future
            return await asyncio.wait_for(future, effective)
        except TimeoutError as exc:
            raise RequestTimeoutError(f"Timeout: could not perform {op.value}", operation=op.value) from exc
        finally:
            self._requests.pop(request_id, None)
            if self._queue:
                self._queue = [queued for queued in self._queue if queued["id"] != request_id]

    async def set(self, key: str, value: Any, ttl_ms: float | None = None, **kwargs: Any) -> None:
        """Store *value* under *key*, expiring after *ttl_ms* milliseconds if positive."""
        args: list[Any] = [key, value]
        if ttl_ms is not None:
            args.append(ttl_ms)
        await self.call(Operation.SET, *args, **kwargs)

    async def get(self, key: str, *keys: str, **kwargs: Any) -> Any:
        """Return the value for one key, or a list of values for several.

        Missing and expired keys come back as ``None``.
        """
        return await self.call(Operation.GET, key, *keys, **kwargs)

    async def delete(self, key: str, *keys: str, **kwargs: Any) -> None:
        await self.call(Operation.DELETE, key, *keys, **kwargs)

    del_ = delete

    async def get_keys(self, **kwargs: Any) -> set[str]:
        """Keys currently holding unexpired values."""
        return set(await self.call(Operation.GET_ALL_KEYS, **kwargs))

    async def clear(self, **kwargs: Any) -> None:
        await self.call(Operation.CLEAR, **kwargs)
