"""Client, hub and transport configuration for crossstore."""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Any

from crossstore._constants import DEFAULT_MQTT_PORT, DEFAULT_MQTT_TOPIC_PREFIX, DEFAULT_POLL_INTERVAL
from crossstore.exceptions import CrossStoreConfigError
from crossstore.models.permission import PermissionRule
from crossstore.permissions import coerce_rule


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise CrossStoreConfigError(f"{name} must be a number, got {value!r}") from exc


def load_permissions(source: str | Path) -> tuple[PermissionRule, ...]:
    """Parse permission rules from a JSON document or a path to one.

    The document is a list of ``{"origin": ..., "allow": [...]}`` objects,
    kept in declaration order.
    """
    if isinstance(source, Path) or not source.lstrip().startswith(("[", "{")):
        try:
            text = Path(source).read_text(encoding="utf-8")
        except OSError as exc:
            raise CrossStoreConfigError(f"Cannot read permissions from {source}: {exc}") from exc
    else:
        text = source

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CrossStoreConfigError(f"Permissions are not valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise CrossStoreConfigError("Permissions must be a JSON list of rules")
    return tuple(coerce_rule(item) for item in raw)


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Client configuration.

    Parameters
    ----------
    poll_interval : float
        Seconds between ``poll`` messages while waiting for the hub's
        ready handshake.  ``0`` disables polling; the client then relies
        on the hub's one-time ready announcement.
    request_timeout : float or None
        Default per-call deadline in seconds.  ``None`` waits forever,
        matching a hub that may never answer.
    log_payloads : bool
        Include stored values in DEBUG logs instead of redacting them.
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float | None = None
    log_payloads: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Create configuration from ``CROSSSTORE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        kwargs: dict[str, Any] = {}

        poll = _env_float("CROSSSTORE_POLL_INTERVAL")
        if poll is not None:
            kwargs["poll_interval"] = poll

        timeout = _env_float("CROSSSTORE_REQUEST_TIMEOUT")
        if timeout is not None:
            kwargs["request_timeout"] = timeout if timeout > 0 else None

        kwargs["log_payloads"] = _env_bool(os.environ.get("CROSSSTORE_LOG_PAYLOADS"), False)

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class HubConfig:
    """Hub configuration.

    Parameters
    ----------
    permissions : tuple of PermissionRule
        Ordered allow-list.  Empty means every request is denied.
    purge_expired_on_read : bool
        Delete expired entries from the backend when a read finds them.
    log_payloads : bool
        Include stored values in DEBUG logs instead of redacting them.
    """

    permissions: tuple[PermissionRule, ...] = ()
    purge_expired_on_read: bool = True
    log_payloads: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "permissions", tuple(coerce_rule(rule) for rule in self.permissions))

    @classmethod
    def from_env(cls, **overrides: Any) -> HubConfig:
        """Create configuration from ``CROSSSTORE_*`` environment variables.

        ``CROSSSTORE_PERMISSIONS`` holds either the JSON rule list or a
        path to a JSON file.  Explicit keyword arguments override
        environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        permissions = env.get("CROSSSTORE_PERMISSIONS")
        if permissions and "permissions" not in overrides:
            kwargs["permissions"] = load_permissions(permissions)

        kwargs["purge_expired_on_read"] = _env_bool(env.get("CROSSSTORE_PURGE_EXPIRED_ON_READ"), True)
        kwargs["log_payloads"] = _env_bool(env.get("CROSSSTORE_LOG_PAYLOADS"), False)

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection details for :class:`~crossstore._mqtt.MqttTransport`.

    The broker must restrict each client to publishing on topics whose
    last level is its own (quoted) origin; that ACL is what makes the
    sender origin trustworthy.
    """

    host: str
    port: int = DEFAULT_MQTT_PORT
    keepalive: int = 60
    topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX
    client_id: str = ""
    username: str | None = None
    password: str | None = None
    tls: bool = False
    qos: int = 1

    @classmethod
    def from_env(cls, **overrides: Any) -> MqttSettings:
        env = os.environ
        _ENV_MAP = {
            "CROSSSTORE_MQTT_HOST": "host",
            "CROSSSTORE_MQTT_TOPIC_PREFIX": "topic_prefix",
            "CROSSSTORE_MQTT_CLIENT_ID": "client_id",
            "CROSSSTORE_MQTT_USERNAME": "username",
            "CROSSSTORE_MQTT_PASSWORD": "password",
        }
        kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_MAP.items():
            val = env.get(env_key)
            if val is not None:
                kwargs[field_name] = val

        for env_key, field_name in (
            ("CROSSSTORE_MQTT_PORT", "port"),
            ("CROSSSTORE_MQTT_KEEPALIVE", "keepalive"),
            ("CROSSSTORE_MQTT_QOS", "qos"),
        ):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise CrossStoreConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "tls" not in overrides:
            kwargs["tls"] = _env_bool(env.get("CROSSSTORE_MQTT_TLS"), False)

        kwargs.update(overrides)
        if not kwargs.get("host"):
            raise CrossStoreConfigError("MQTT host is required (set CROSSSTORE_MQTT_HOST)")
        return cls(**kwargs)
