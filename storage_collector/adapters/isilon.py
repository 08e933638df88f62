"""Dell EMC Isilon OneFS platform API adapter.

JSON over HTTPS on port 8080 with basic auth. Cluster capacity comes from
``statfs`` (block counts times block size), node health from the node
status call and cluster-wide traffic from the summary protocol statistics,
whose network and OneFS rates are in MB/s.
"""

import threading
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import AdapterError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Node, Pool
from ..schema.units import mib_rate_to_bytes, to_float, to_int, to_str
from ..session.auth import BasicAuthenticator
from .base import MetricField, Operation, VendorAdapter

STATFS_PATH = 'platform/1/cluster/statfs'
NODE_STATUS_PATH = 'platform/3/cluster/nodes/ALL/status'
PROTOCOL_STATS_PATH = 'platform/1/statistics/summary/protocol-stats'
DEFAULT_STATS_TIMEOUT = 600

STATFS_MAPPING = RecordMapping(
    record_type=Pool,
    fields=(
        FieldMapping('name', 'f_mntonname', to_str, required=True),
        FieldMapping('block_size', 'f_bsize', to_int, required=True),
        FieldMapping('blocks', 'f_blocks', to_int),
        FieldMapping('blocks_free', 'f_bfree', to_int),
        FieldMapping('blocks_available', 'f_bavail', to_int),
        FieldMapping('fs_type', 'f_fstypename', to_str),
    ),
)

NODE_MAPPING = RecordMapping(
    record_type=Node,
    record_path='nodes',
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('name', 'lnn', to_str),
        FieldMapping('model', 'cpu/model', to_str),
        FieldMapping('firmware_version', 'release', to_str),
        FieldMapping('status', 'status', to_str),
        FieldMapping('uptime_seconds', 'uptime', to_int),
    ),
)

PROTOCOL_STATS_MAPPING = RecordMapping(
    record_type=MetricSample,
    record_path='protocol-stats',
    fields=(
        FieldMapping('timestamp_seconds', 'time', to_int),
        FieldMapping('cpu_idle', 'cpu/idle', to_float),
        FieldMapping('cpu_system', 'cpu/system', to_float),
        FieldMapping('cpu_user', 'cpu/user', to_float),
        FieldMapping('disk_iops', 'disk/iops', to_float),
        FieldMapping('disk_read', 'disk/read', to_float),
        FieldMapping('disk_write', 'disk/write', to_float),
        FieldMapping('network_in', 'network/in/megabytes_per_sec', mib_rate_to_bytes),
        FieldMapping('network_out', 'network/out/megabytes_per_sec', mib_rate_to_bytes),
        FieldMapping('onefs_in', 'onefs/in', mib_rate_to_bytes),
        FieldMapping('onefs_out', 'onefs/out', mib_rate_to_bytes),
        FieldMapping('onefs_total', 'onefs/total', mib_rate_to_bytes),
    ),
)

CLUSTER_METRICS = (
    MetricField('cpu_idle', 'cpu_idle', 'percent'),
    MetricField('cpu_system', 'cpu_system', 'percent'),
    MetricField('cpu_user', 'cpu_user', 'percent'),
    MetricField('disk_iops', 'disk_iops', 'ops/s'),
    MetricField('disk_read', 'disk_read_throughput', 'bytes/s'),
    MetricField('disk_write', 'disk_write_throughput', 'bytes/s'),
    MetricField('network_in', 'network_in_throughput', 'bytes/s'),
    MetricField('network_out', 'network_out_throughput', 'bytes/s'),
    MetricField('onefs_in', 'onefs_in_throughput', 'bytes/s'),
    MetricField('onefs_out', 'onefs_out_throughput', 'bytes/s'),
    MetricField('onefs_total', 'onefs_throughput', 'bytes/s'),
)


def _statfs_capacity(row: Dict[str, Any]) -> Dict[str, Any]:
    size = row['block_size']
    if row.get('blocks') is not None:
        row['capacity_bytes'] = row['blocks'] * size
        if row.get('blocks_free') is not None:
            row['used_bytes'] = (row['blocks'] - row['blocks_free']) * size
    if row.get('blocks_available') is not None:
        row['free_bytes'] = row['blocks_available'] * size
    return row


class IsilonAdapter(VendorAdapter):
    """OneFS cluster platform API."""

    vendor = 'isilon'
    default_port = 8080
    capabilities = frozenset({Operation.LIST_POOLS, Operation.LIST_NODES, Operation.PERFORMANCE})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        # Errors come back as {"errors": [{"code": .., "message": ..}]}
        errors = document.get('errors') if isinstance(document, dict) else None
        if errors:
            first = errors[0] if isinstance(errors, list) and isinstance(errors[0], dict) else {}
            code = first.get('code')
            raise AdapterError(f"{spec.operation} failed", vendor_code=str(code) if code is not None else None,
                               vendor_message=first.get('message'),
                               vendor=self.vendor, operation=spec.operation)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        """The cluster file system as a single pool."""
        spec = self.request(config, Operation.LIST_POOLS, 'GET', STATFS_PATH, ShapeTag.JSON)
        return self.fetch(config, spec, STATFS_MAPPING, cancel,
                          transform=lambda rows, _: self.codec.build_records(
                              [_statfs_capacity(row) for row in rows], STATFS_MAPPING, self.vendor))

    def list_nodes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.request(config, Operation.LIST_NODES, 'GET', NODE_STATUS_PATH, ShapeTag.JSON)
        return self.fetch(config, spec, NODE_MAPPING, cancel)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        timeout = int(config.option('stats_timeout', DEFAULT_STATS_TIMEOUT))
        spec = self.request(config, Operation.PERFORMANCE, 'GET', PROTOCOL_STATS_PATH, ShapeTag.JSON,
                            query={'degraded': 'true', 'timeout': timeout})
        return self.fetch(config, spec, PROTOCOL_STATS_MAPPING, cancel,
                          transform=lambda rows, _: self.metric_samples(
                              [dict(row, id=config.endpoint) for row in rows], CLUSTER_METRICS, 'cluster'))
