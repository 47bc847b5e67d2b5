"""crossstore - Cross-context key-value storage over an async message channel."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("crossstore")
except PackageNotFoundError:
    __version__ = "0+local"
from crossstore._origin import origin_of
from crossstore._transport import LocalBus, LocalEndpoint, Transport
from crossstore.client import ConnectionState, CrossStoreClient
from crossstore.config import ClientConfig, HubConfig, MqttSettings, load_permissions
from crossstore.exceptions import (
    ClientClosedError,
    CrossStoreConfigError,
    CrossStoreError,
    PermissionDeniedError,
    ProtocolError,
    RequestTimeoutError,
    StorageFailureError,
    TransportError,
)
from crossstore.hub import CrossStoreHub, HubState
from crossstore.models import Entry, Operation, PermissionRule
from crossstore.permissions import PermissionMatcher
from crossstore.storage import MemoryBackend, StorageBackend, TTLStore

__all__ = [
    "__version__",
    "ClientClosedError",
    "ClientConfig",
    "ConnectionState",
    "CrossStoreClient",
    "CrossStoreConfigError",
    "CrossStoreError",
    "CrossStoreHub",
    "Entry",
    "HubConfig",
    "HubState",
    "LocalBus",
    "LocalEndpoint",
    "MemoryBackend",
    "MqttSettings",
    "Operation",
    "PermissionDeniedError",
    "PermissionMatcher",
    "PermissionRule",
    "ProtocolError",
    "RequestTimeoutError",
    "StorageBackend",
    "StorageFailureError",
    "TTLStore",
    "Transport",
    "TransportError",
    "load_permissions",
    "origin_of",
]
