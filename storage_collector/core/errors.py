"""Error hierarchy shared by every layer of the collector.

Every error carries the vendor and operation it was raised for (when known)
and a ``retryable`` flag the dispatcher consults before retrying.
"""

from typing import Any, Optional, Sequence


class StorageCollectorError(Exception):
    """Base class for all collector errors."""

    retryable = False

    def __init__(self, message: str, vendor: Optional[str] = None,
                 operation: Optional[str] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.vendor = vendor
        self.operation = operation
        if retryable is not None:
            self.retryable = retryable

    def with_context(self, vendor: Optional[str] = None,
                     operation: Optional[str] = None) -> 'StorageCollectorError':
        """Fill in vendor/operation if they are not already set and return self."""
        if self.vendor is None:
            self.vendor = vendor
        if self.operation is None:
            self.operation = operation
        return self

    def __str__(self) -> str:
        context = [part for part in (self.vendor, self.operation) if part]
        if context:
            return f"[{'/'.join(context)}] {self.message}"
        return self.message


# Configuration

class ConfigError(StorageCollectorError):
    """Invalid or unusable configuration."""


class IncompleteConfigError(ConfigError):
    """Required configuration fields are missing."""

    def __init__(self, missing: Sequence[str], vendor: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(f"missing required configuration: {', '.join(self.missing)}", vendor=vendor)


# Authentication

class AuthError(StorageCollectorError):
    """Authentication against a vendor endpoint failed."""


class LoginFailedError(AuthError):
    """The login round trip did not yield a usable session."""


class AuthRejectedError(AuthError):
    """A freshly authenticated session was rejected again."""


# Decoding

class CodecError(StorageCollectorError):
    """A vendor payload could not be decoded."""


class PayloadParseError(CodecError):
    """The payload is not valid XML, JSON or CSV."""


class MissingFieldError(CodecError):
    """A required field is absent from a record."""

    def __init__(self, field: str, vendor: Optional[str] = None, operation: Optional[str] = None):
        self.field = field
        super().__init__(f"required field '{field}' not found", vendor=vendor, operation=operation)


class MalformedRowError(CodecError):
    """A CSV data row does not match the header column count."""

    def __init__(self, row_index: int, expected: int, found: int):
        self.row_index = row_index
        self.expected = expected
        self.found = found
        super().__init__(f"row {row_index} has {found} columns, header has {expected}")


class FieldConversionError(CodecError):
    """A field value could not be converted to its declared type."""

    def __init__(self, field: str, value: Any, reason: str = ''):
        self.field = field
        self.value = value
        detail = f": {reason}" if reason else ''
        super().__init__(f"cannot convert field '{field}' value {value!r}{detail}")


# Dispatch

class DispatchError(StorageCollectorError):
    """A request could not be completed."""


class HttpStatusError(DispatchError):
    """The vendor answered with a non-retryable HTTP status."""

    def __init__(self, status_code: int, url: str = '', body: str = ''):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"HTTP {status_code} from {url}" if url else f"HTTP {status_code}")


class RetriesExhaustedError(DispatchError):
    """Transient failures persisted through every allowed attempt."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"giving up after {attempts} attempts: {last_error}")


class PaginationLoopError(DispatchError):
    """Pagination exceeded the page limit or repeated a cursor."""

    def __init__(self, pages: int, cursor: Any = None, reason: str = 'page limit exceeded'):
        self.pages = pages
        self.cursor = cursor
        super().__init__(f"pagination aborted after {pages} pages: {reason}")


class DispatchCancelledError(DispatchError):
    """The caller cancelled an in-flight call."""


class TransportError(DispatchError):
    """The transport failed to deliver a request or receive a response."""

    retryable = True


class TransportTimeoutError(TransportError):
    """The request timed out."""


class TransportConnectionError(TransportError):
    """The connection failed or was reset."""


# Adapters

class AdapterError(StorageCollectorError):
    """The vendor reported an error inside an otherwise successful response."""

    def __init__(self, message: str, vendor_code: Optional[str] = None,
                 vendor_message: Optional[str] = None, vendor: Optional[str] = None,
                 operation: Optional[str] = None):
        self.vendor_code = vendor_code
        self.vendor_message = vendor_message
        super().__init__(message, vendor=vendor, operation=operation)


class NotSupportedError(AdapterError):
    """The vendor does not offer the requested operation."""

    def __init__(self, vendor: str, operation: str):
        super().__init__(f"operation not supported by {vendor}", vendor=vendor, operation=operation)
