"""Dell EMC XtremIO XMS REST adapter.

Every object type is listed from ``api/json/v2/types/{type}?full=1`` with
basic auth; ``full=1`` inlines each object's properties instead of links.
Keys are kebab-case, sizes are in KB, bandwidth in KB/s and latencies in
microseconds.
"""

import threading
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import AdapterError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Pool, Volume
from ..schema.units import kib_rate_to_bytes, kib_to_bytes, to_float, to_str, us_to_seconds
from ..session.auth import BasicAuthenticator
from .base import MetricField, Operation, VendorAdapter

TYPES_PATH = 'api/json/v2/types/{type}'

VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    record_path='volumes',
    fields=(
        FieldMapping('id', 'index', to_str),
        FieldMapping('name', 'name', to_str, required=True),
        FieldMapping('capacity_bytes', 'vol-size', kib_to_bytes),
        FieldMapping('used_bytes', 'logical-space-in-use', kib_to_bytes),
        FieldMapping('wwn', 'naa-name', to_str),
        FieldMapping('guid', 'guid', to_str),
    ),
)

# Each XtremIO cluster is one pool of SSD capacity
CLUSTER_MAPPING = RecordMapping(
    record_type=Pool,
    record_path='clusters',
    fields=(
        FieldMapping('id', 'index', to_str),
        FieldMapping('name', 'name', to_str, required=True),
        FieldMapping('capacity_bytes', 'ud-ssd-space', kib_to_bytes),
        FieldMapping('used_bytes', 'ud-ssd-space-in-use', kib_to_bytes),
        FieldMapping('software_version', 'sys-sw-version', to_str),
    ),
)

VOLUME_STATS_MAPPING = RecordMapping(
    record_type=MetricSample,
    record_path='volumes',
    fields=(
        FieldMapping('id', 'index', to_str),
        FieldMapping('name', 'name', to_str, required=True),
        FieldMapping('iops', 'iops', to_float),
        FieldMapping('read_iops', 'rd-iops', to_float),
        FieldMapping('write_iops', 'wr-iops', to_float),
        FieldMapping('throughput', 'bw', kib_rate_to_bytes),
        FieldMapping('read_throughput', 'rd-bw', kib_rate_to_bytes),
        FieldMapping('write_throughput', 'wr-bw', kib_rate_to_bytes),
        FieldMapping('latency', 'avg-latency', us_to_seconds),
        FieldMapping('read_latency', 'rd-latency', us_to_seconds),
        FieldMapping('write_latency', 'wr-latency', us_to_seconds),
    ),
)

VOLUME_METRICS = (
    MetricField('iops', 'iops', 'ops/s'),
    MetricField('read_iops', 'read_iops', 'ops/s'),
    MetricField('write_iops', 'write_iops', 'ops/s'),
    MetricField('throughput', 'throughput', 'bytes/s'),
    MetricField('read_throughput', 'read_throughput', 'bytes/s'),
    MetricField('write_throughput', 'write_throughput', 'bytes/s'),
    MetricField('latency', 'latency', 's'),
    MetricField('read_latency', 'read_latency', 's'),
    MetricField('write_latency', 'write_latency', 's'),
)


def _with_free_bytes(row: Dict[str, Any]) -> Dict[str, Any]:
    if row.get('capacity_bytes') is not None and row.get('used_bytes') is not None:
        row['free_bytes'] = row['capacity_bytes'] - row['used_bytes']
    return row


class XtremIOAdapter(VendorAdapter):
    """XtremIO Management Server (XMS) REST API v2."""

    vendor = 'xtremio'
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_POOLS, Operation.PERFORMANCE})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        # The XMS answers {"message": .., "error_code": ..} for failed requests
        if isinstance(document, dict) and 'error_code' in document:
            raise AdapterError(f"{spec.operation} failed", vendor_code=str(document.get('error_code')),
                               vendor_message=document.get('message'),
                               vendor=self.vendor, operation=spec.operation)

    def types_spec(self, config: VendorConfig, operation: Operation, object_type: str) -> RequestSpec:
        return self.request(config, operation, 'GET', TYPES_PATH, ShapeTag.JSON,
                            path_params={'type': object_type}, query={'full': 1})

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.types_spec(config, Operation.LIST_VOLUMES, 'volumes')
        return self.fetch(config, spec, VOLUME_MAPPING, cancel)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.types_spec(config, Operation.LIST_POOLS, 'clusters')
        return self.fetch(config, spec, CLUSTER_MAPPING, cancel,
                          transform=lambda rows, _: self.codec.build_records(
                              [_with_free_bytes(row) for row in rows], CLUSTER_MAPPING, self.vendor))

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.types_spec(config, Operation.PERFORMANCE, 'volumes')
        return self.fetch(config, spec, VOLUME_STATS_MAPPING, cancel,
                          transform=lambda rows, _: self.metric_samples(rows, VOLUME_METRICS, 'volume'))
