"""Custom exception hierarchy for crossstore."""

from __future__ import annotations


class CrossStoreError(Exception):
    """Base exception for all crossstore errors."""

    #: Wire code used when the error travels inside a response envelope.
    code: str = "Error"


class CrossStoreConfigError(CrossStoreError):
    """Invalid or missing configuration."""


class PermissionDeniedError(CrossStoreError):
    """The calling origin may not perform the requested operation."""

    code = "PermissionDenied"


class StorageFailureError(CrossStoreError):
    """The storage backend failed to complete an operation.

    Raised by :class:`~crossstore.storage.ttl.TTLStore` for any backend
    exception and re-raised on the client side when the hub answers with
    a ``StorageFailure`` error.  Never retried by this library.
    """

    code = "StorageFailure"


class ProtocolError(CrossStoreError):
    """Malformed or unroutable message (unknown operation, bad arguments)."""

    code = "ProtocolError"


class RequestTimeoutError(CrossStoreError):
    """No reply arrived before the caller's deadline.

    The pending request is discarded locally; a late reply is ignored.
    """

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class ClientClosedError(CrossStoreError):
    """The client was closed before or while the call was pending."""


class TransportError(CrossStoreError):
    """The transport could not deliver or subscribe."""

    def __init__(self, message: str, *, target: str = "") -> None:
        self.target = target
        super().__init__(message)


_ERRORS_BY_CODE: dict[str, type[CrossStoreError]] = {
    PermissionDeniedError.code: PermissionDeniedError,
    StorageFailureError.code: StorageFailureError,
    ProtocolError.code: ProtocolError,
}


def error_from_code(code: str, message: str) -> CrossStoreError:
    """Build the exception matching a wire error *code*."""
    cls = _ERRORS_BY_CODE.get(code, CrossStoreError)
    return cls(message or code)
