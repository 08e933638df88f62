"""Base VendorAdapter interface and shared data structures."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..codec.mapping import RecordMapping
from ..codec.wire_codec import ShapeTag, WireCodec
from ..core.config import PolicySettings, VendorConfig
from ..core.errors import CodecError, NotSupportedError, PayloadParseError, StorageCollectorError
from ..dispatch.dispatcher import NextSpec, PageParser, RequestDispatcher
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MEASUREMENTS, MetricSample
from ..session.auth import Authenticator
from ..session.manager import SessionHandle, SessionManager
from ..transport.base import RawResponse, Transport

# Raised by adapter code that walks a document of an unexpected shape
PAYLOAD_ERRORS = (ValueError, TypeError, KeyError, IndexError, AttributeError)


class Operation(Enum):
    """Read operations every adapter exposes."""
    LIST_VOLUMES = "list_volumes"
    LIST_POOLS = "list_pools"
    LIST_NODES = "list_nodes"
    PERFORMANCE = "get_performance_stats"


@dataclass
class CollectionResult:
    """Result of running every supported operation against one vendor config."""
    vendor: str
    endpoint: str
    data: Dict[str, List[CommonRecord]]
    success: bool
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.data.values())


@dataclass(frozen=True)
class MetricField:
    """A decoded field that becomes one MetricSample per record."""
    field: str
    metric: str
    unit: str


class VendorAdapter(ABC):
    """Common read interface over one vendor's management API.

    Subclasses declare their field mappings and request templates, build the
    authenticator for their login style and override the operations they
    support. Everything else (sessions, retry, paging, decoding) is shared.
    """

    vendor: ClassVar[str] = ''
    default_port: ClassVar[Optional[int]] = None
    default_scheme: ClassVar[str] = 'https'
    capabilities: ClassVar[FrozenSet[Operation]] = frozenset()

    def __init__(self, transport: Transport, session_manager: Optional[SessionManager] = None,
                 dispatcher: Optional[RequestDispatcher] = None, codec: Optional[WireCodec] = None,
                 policy: Optional[PolicySettings] = None):
        self.logger = logging.getLogger(type(self).__module__)
        self.policy = policy or PolicySettings()
        self.transport = transport
        self.sessions = session_manager or SessionManager(transport, self.policy)
        self.dispatcher = dispatcher or RequestDispatcher(transport, self.policy)
        self.codec = codec or WireCodec()
        self.authenticator = self.create_authenticator()

    @abstractmethod
    def create_authenticator(self) -> Authenticator:
        """Authentication strategy for this vendor."""
        pass

    # Session lifecycle

    def login(self, config: VendorConfig) -> SessionHandle:
        """Validate the config and make sure a session exists for it."""
        config.validate()
        if config.vendor != self.vendor:
            self.logger.debug(f"Config vendor '{config.vendor}' used with {self.vendor} adapter")
        return self.sessions.ensure_session(config, self.authenticator)

    def logout(self, config: VendorConfig) -> None:
        self.sessions.logout(config)

    def base_url(self, config: VendorConfig) -> str:
        scheme = config.option('scheme', self.default_scheme)
        return config.base_url(scheme, config.option('port', self.default_port))

    # Operations

    def supports(self, operation: Operation) -> bool:
        return operation in self.capabilities

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        raise NotSupportedError(self.vendor, Operation.LIST_VOLUMES.value)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        raise NotSupportedError(self.vendor, Operation.LIST_POOLS.value)

    def list_nodes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        raise NotSupportedError(self.vendor, Operation.LIST_NODES.value)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        raise NotSupportedError(self.vendor, Operation.PERFORMANCE.value)

    def collect(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> CollectionResult:
        """Run every supported operation; failures are reported, not raised.

        Returns:
            CollectionResult keyed by measurement name
        """
        operations: Sequence[Tuple[Operation, Callable[..., List[CommonRecord]], str]] = (
            (Operation.LIST_VOLUMES, self.list_volumes, MEASUREMENTS['volume']),
            (Operation.LIST_POOLS, self.list_pools, MEASUREMENTS['pool']),
            (Operation.LIST_NODES, self.list_nodes, MEASUREMENTS['node']),
            (Operation.PERFORMANCE, self.get_performance_stats, MEASUREMENTS['metric']),
        )
        data: Dict[str, List[CommonRecord]] = {}
        errors = []
        start = time.time()
        for operation, method, measurement in operations:
            if not self.supports(operation):
                continue
            try:
                data[measurement] = method(config, cancel=cancel)
            except StorageCollectorError as e:
                self.logger.error(f"{self.vendor} {operation.value} failed for {config.endpoint}: {e}")
                errors.append(f"{operation.value}: {e}")

        return CollectionResult(
            vendor=self.vendor,
            endpoint=config.endpoint,
            data=data,
            success=not errors,
            error_message='; '.join(errors) or None,
            metadata={'duration_seconds': round(time.time() - start, 3)},
        )

    # Helpers for subclasses

    def request(self, config: VendorConfig, operation: Operation, method: str, path: str,
                shape: ShapeTag, **kwargs) -> RequestSpec:
        return RequestSpec(operation=operation.value, method=method, path=path, shape=shape,
                           base_url=self.base_url(config), **kwargs)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        """Raise AdapterError when the vendor embedded an error in a 2xx body."""
        pass

    def next_cursor(self, document: Any, spec: RequestSpec) -> Optional[str]:
        """Cursor for the page after this one; None when done."""
        return None

    def page_parser(self, mapping: RecordMapping,
                    transform: Optional[Callable[[List[Dict[str, Any]], Any], List[CommonRecord]]] = None):
        """Build the dispatcher page callback for a mapping.

        ``transform`` receives the decoded rows and the parsed document and
        returns records, for operations that do not map one row to one record.
        """
        def parse(response: RawResponse, spec: RequestSpec) -> Tuple[List[CommonRecord], Optional[str]]:
            document = self.codec.parse_document(response.body, spec.shape)
            self.check_document(document, spec)
            rows = self.codec.extract(document, spec.shape, mapping)
            if transform is not None:
                records = transform(rows, document)
            else:
                records = self.codec.build_records(rows, mapping, self.vendor)
            cursor = self.next_cursor(document, spec) if spec.paged else None
            return records, cursor
        return self.guarded(parse)

    def guarded(self, parse: PageParser) -> PageParser:
        """Wrap a page callback so a document of the wrong shape raises PayloadParseError."""
        def run(response: RawResponse, spec: RequestSpec) -> Tuple[List[CommonRecord], Optional[str]]:
            try:
                return parse(response, spec)
            except PAYLOAD_ERRORS as e:
                raise PayloadParseError(f"unexpected {spec.shape.value} document structure: {e!r}",
                                        vendor=self.vendor, operation=spec.operation) from e
        return run

    def expect(self, value: Any, kind: type, spec: RequestSpec, what: str) -> Any:
        """Return ``value`` if it is a ``kind``, otherwise raise PayloadParseError."""
        if not isinstance(value, kind):
            raise PayloadParseError(f"{what} is a {type(value).__name__}, expected {kind.__name__}",
                                    vendor=self.vendor, operation=spec.operation)
        return value

    def log_codec_error(self, config: VendorConfig, operation: str, error: CodecError) -> None:
        field = getattr(error, 'field', None)
        self.logger.error(f"Failed to decode {self.vendor} {operation} response from {config.endpoint}"
                          f"{f' (field {field})' if field else ''}: {error.message}")

    def fetch(self, config: VendorConfig, spec: RequestSpec, mapping: RecordMapping,
              cancel: Optional[threading.Event] = None, next_spec: Optional[NextSpec] = None,
              transform=None) -> List[CommonRecord]:
        """Run one (possibly paged) call and return its records."""
        handle = self.login(config)
        try:
            result = self.dispatcher.execute(spec, handle, self.page_parser(mapping, transform),
                                             next_spec=next_spec, cancel=cancel)
        except CodecError as e:
            self.log_codec_error(config, spec.operation, e)
            raise
        self.logger.debug(f"{self.vendor} {spec.operation}: {len(result)} records from {config.endpoint}")
        return result.records

    def fetch_document(self, config: VendorConfig, spec: RequestSpec,
                       cancel: Optional[threading.Event] = None) -> Any:
        """Single request whose parsed document the adapter inspects itself."""
        handle = self.login(config)
        response = self.dispatcher.send(spec, handle, cancel)
        try:
            document = self.codec.parse_document(response.body, spec.shape)
            self.check_document(document, spec)
        except PAYLOAD_ERRORS as e:
            error = PayloadParseError(f"unexpected {spec.shape.value} document structure: {e!r}",
                                      vendor=self.vendor, operation=spec.operation)
            self.log_codec_error(config, spec.operation, error)
            raise error from e
        except CodecError as e:
            self.log_codec_error(config, spec.operation, e)
            raise e.with_context(self.vendor, spec.operation)
        except StorageCollectorError as e:
            raise e.with_context(self.vendor, spec.operation)
        return document

    def extract_rows(self, config: VendorConfig, operation: Operation, document: Any,
                     mapping: RecordMapping) -> List[Dict[str, Any]]:
        """Apply a mapping to JSON the adapter assembled from several calls."""
        try:
            return self.codec.extract(document, ShapeTag.JSON, mapping)
        except CodecError as e:
            self.log_codec_error(config, operation.value, e)
            raise e.with_context(self.vendor, operation.value)

    def metric_samples(self, rows: List[Dict[str, Any]], metrics: Sequence[MetricField],
                       object_type: str) -> List[CommonRecord]:
        """Expand decoded rows into one MetricSample per metric field.

        Rows must carry ``id`` and may carry ``name`` and ``timestamp_seconds``.
        """
        samples: List[CommonRecord] = []
        for row in rows:
            for metric in metrics:
                value = row.get(metric.field)
                if value is None:
                    continue
                samples.append(MetricSample(
                    source_vendor=self.vendor,
                    id=str(row.get('id') or row.get('name') or ''),
                    name=str(row.get('name') or ''),
                    raw=dict(row),
                    metric=metric.metric,
                    value=float(value),
                    unit=metric.unit,
                    timestamp_seconds=row.get('timestamp_seconds'),
                    object_type=object_type,
                ))
        return samples
