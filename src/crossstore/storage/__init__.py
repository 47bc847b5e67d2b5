"""Storage layer.

:class:`TTLStore` is the only component that reads or writes the storage
backend, and the only writer of entry expiry timestamps.
"""

from crossstore.storage.backend import MemoryBackend, StorageBackend
from crossstore.storage.ttl import TTLStore

__all__ = ["MemoryBackend", "StorageBackend", "TTLStore"]
