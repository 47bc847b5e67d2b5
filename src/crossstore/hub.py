"""Trusted-side hub: authorizes and executes storage requests."""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from crossstore._locks import KeyLocks
from crossstore._redact import redact_for_log
from crossstore._transport import Transport
from crossstore.config import HubConfig
from crossstore.exceptions import CrossStoreError, PermissionDeniedError, ProtocolError, StorageFailureError
from crossstore.models.envelope import (
    ControlMessage,
    ControlType,
    ErrorInfo,
    Operation,
    RequestMessage,
    ResponseMessage,
    control_type,
)
from crossstore.models.permission import PermissionRule
from crossstore.permissions import PermissionMatcher
from crossstore.storage.ttl import TTLStore

_logger = logging.getLogger(__name__)


class HubState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    LISTENING = "listening"


def _require_keys(args: list[Any], operation: Operation) -> list[str]:
    if not args:
        raise ProtocolError(f"{operation.value} requires at least one key")
    if not all(isinstance(key, str) for key in args):
        raise ProtocolError(f"{operation.value} keys must be strings")
    return list(args)


def _parse_set_args(args: list[Any]) -> tuple[str, Any, float | None]:
    if len(args) not in (2, 3):
        raise ProtocolError("set requires key, value and an optional ttl")
    key, value = args[0], args[1]
    if not isinstance(key, str):
        raise ProtocolError("set key must be a string")
    ttl = args[2] if len(args) == 3 else None
    if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, (int, float))):
        raise ProtocolError("set ttl must be a number of milliseconds")
    if ttl is not None and not math.isfinite(ttl):
        raise ProtocolError("set ttl must be finite")
    return key, value, ttl


class CrossStoreHub:
    """Serves a :class:`TTLStore` to permitted origins over a transport.

    Usage::

        hub = CrossStoreHub(transport, permissions=[{"origin": "*.example.com", "allow": ["get"]}])
        await hub.start()

    Every request carrying a usable ``id`` receives exactly one reply.
    Requests run as separate tasks; per-key locks keep same-key
    operations in arrival order.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        permissions: Iterable[PermissionRule | Mapping[str, Any]] | None = None,
        store: TTLStore | None = None,
        config: HubConfig | None = None,
        parent: str | None = None,
    ) -> None:
        self._config = config or HubConfig()
        rules = list(permissions) if permissions is not None else list(self._config.permissions)
        self._transport = transport
        self._matcher = PermissionMatcher(rules)
        self._store = store or TTLStore(purge_expired_on_read=self._config.purge_expired_on_read)
        self._parent = parent
        self._state = HubState.UNINITIALIZED
        self._unsubscribe: Callable[[], None] | None = None
        self._locks = KeyLocks()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> HubState:
        return self._state

    @property
    def store(self) -> TTLStore:
        return self._store

    @property
    def matcher(self) -> PermissionMatcher:
        return self._matcher

    async def __aenter__(self) -> CrossStoreHub:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Subscribe to the transport and announce readiness to the parent context."""
        if self._state is not HubState.UNINITIALIZED:
            raise CrossStoreError("Hub already started")
        self._unsubscribe = self._transport.subscribe(self.on_message)
        self._state = HubState.LISTENING
        _logger.debug("Hub listening origin=%s rules=%d", self._transport.origin, len(self._matcher.rules))
        if self._parent is not None:
            self._send(self._parent, ControlMessage(type=ControlType.READY).to_wire())

    async def close(self) -> None:
        """Stop receiving messages and wait for in-flight requests."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every request received so far has been answered."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_message(self, raw: Any, sender_origin: str) -> None:
        """Transport callback for every inbound message."""
        control = control_type(raw)
        if control is not None:
            if control is ControlType.POLL:
                self._send(sender_origin, ControlMessage(type=ControlType.READY).to_wire())
            return

        request_id = raw.get("id") if isinstance(raw, dict) else None
        if not isinstance(request_id, str) or not request_id:
            _logger.debug("Dropping message without id from %s", sender_origin)
            return

        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Hub request from %s: %s",
                sender_origin,
                redact_for_log(raw, reveal=self._config.log_payloads),
            )

        try:
            request = RequestMessage.model_validate(raw)
        except ValidationError:
            self._reply_error(
                sender_origin,
                request_id,
                ProtocolError(f"Malformed request for operation {raw.get('operation')!r}"),
            )
            return

        if not self._matcher.is_allowed(sender_origin, request.operation.value):
            _logger.warning("Denied %s from %s", request.operation.value, sender_origin)
            self._reply_error(
                sender_origin,
                request_id,
                PermissionDeniedError(f"Invalid permissions for {request.operation.value}"),
            )
            return

        task = asyncio.get_running_loop().create_task(self._handle(request, sender_origin))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, request: RequestMessage, sender_origin: str) -> None:
        try:
            result = await self._dispatch(request)
        except (ProtocolError, StorageFailureError) as exc:
            self._reply_error(sender_origin, request.id, exc)
            return
        except Exception as exc:
            _logger.exception("Unexpected failure handling %s %s", request.operation.value, request.id)
            self._reply_error(sender_origin, request.id, StorageFailureError(str(exc) or type(exc).__name__))
            return
        self._send(sender_origin, ResponseMessage(id=request.id, result=result).to_wire())

    async def _dispatch(self, request: RequestMessage) -> Any:
        op = request.operation
        args = request.args
        store = self._store

        if op is Operation.GET:
            keys = _require_keys(args, op)
            async with self._locks.hold(keys):
                if len(keys) == 1:
                    return await store.get(keys[0])
                return await store.get_many(keys)

        if op is Operation.SET:
            key, value, ttl = _parse_set_args(args)
            async with self._locks.hold([key]):
                await store.set(key, value, ttl)
            return None

        if op is Operation.DELETE:
            keys = _require_keys(args, op)
            async with self._locks.hold(keys):
                await store.delete(keys)
            return None

        if op is Operation.GET_ALL_KEYS:
            async with self._locks.exclusive():
                return sorted(await store.get_all_keys())

        if op is Operation.CLEAR:
            async with self._locks.exclusive():
                await store.clear()
            return None

        raise ProtocolError(f"Unsupported operation {op.value}")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _reply_error(self, target: str, request_id: str, exc: CrossStoreError) -> None:
        info = ErrorInfo(code=exc.code, message=str(exc))
        self._send(target, ResponseMessage(id=request_id, error=info).to_wire())

    def _send(self, target: str, message: dict[str, Any]) -> None:
        try:
            self._transport.send(target, message)
        except CrossStoreError:
            _logger.warning("Reply to %s could not be sent", target, exc_info=True)
