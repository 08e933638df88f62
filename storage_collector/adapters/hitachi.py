"""Hitachi Tuning Manager adapter.

Tuning Manager serves agent records as CSV over plain http with basic
auth. Each CSV carries a header row followed by a row of column types,
which is skipped. Capacities are in megabytes, transfer rates in KiB/s
and response times in milliseconds.
"""

import threading
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import IncompleteConfigError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Pool
from ..schema.units import iso8601_to_epoch, kib_rate_to_bytes, mib_to_bytes, ms_to_seconds, to_float, to_str
from ..session.auth import BasicAuthenticator
from .base import MetricField, Operation, VendorAdapter

OBJECTS_PATH = 'TuningManager/v1/objects/{record}'

# RAID_PD_PLC: pool configuration
POOL_MAPPING = RecordMapping(
    record_type=Pool,
    skip_rows=1,
    fields=(
        FieldMapping('id', 'POOL_ID', to_str, required=True),
        FieldMapping('name', 'POOL_NAME', to_str),
        FieldMapping('capacity_bytes', 'TOTAL_ACTUAL_CAPACITY', mib_to_bytes),
        FieldMapping('used_bytes', 'USAGE_CAPACITY', mib_to_bytes),
        FieldMapping('free_bytes', 'FREE_CAPACITY', mib_to_bytes),
        FieldMapping('raid_level', 'RAID_LEVEL', to_str),
        FieldMapping('status', 'STATUS', to_str),
    ),
)

# RAID_PI_LDS: logical device summary
LDEV_STATS_MAPPING = RecordMapping(
    record_type=MetricSample,
    skip_rows=1,
    fields=(
        FieldMapping('id', 'LDEV_NUMBER', to_str, required=True),
        FieldMapping('name', 'LDEV_NAME', to_str),
        FieldMapping('timestamp_seconds', 'RECORD_TIME', iso8601_to_epoch),
        FieldMapping('read_iops', 'READ_IO_RATE', to_float),
        FieldMapping('write_iops', 'WRITE_IO_RATE', to_float),
        FieldMapping('read_throughput', 'READ_XFER_RATE', kib_rate_to_bytes),
        FieldMapping('write_throughput', 'WRITE_XFER_RATE', kib_rate_to_bytes),
        FieldMapping('read_latency', 'READ_RESPONSE_RATE', ms_to_seconds),
        FieldMapping('write_latency', 'WRITE_RESPONSE_RATE', ms_to_seconds),
    ),
)

LDEV_METRICS = (
    MetricField('read_iops', 'read_iops', 'ops/s'),
    MetricField('write_iops', 'write_iops', 'ops/s'),
    MetricField('read_throughput', 'read_throughput', 'bytes/s'),
    MetricField('write_throughput', 'write_throughput', 'bytes/s'),
    MetricField('read_latency', 'read_latency', 's'),
    MetricField('write_latency', 'write_latency', 's'),
)


class HitachiAdapter(VendorAdapter):
    """Hitachi VSP family through the Tuning Manager REST API.

    Requires the ``host_name`` and ``agent_instance_name`` options that
    identify the RAID agent instance to query.
    """

    vendor = 'hitachi'
    default_scheme = 'http'
    capabilities = frozenset({Operation.LIST_POOLS, Operation.PERFORMANCE})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def agent_query(self, config: VendorConfig) -> Dict[str, Any]:
        missing = [key for key in ('host_name', 'agent_instance_name') if not config.option(key)]
        if missing:
            raise IncompleteConfigError(missing, vendor=self.vendor)
        return {'hostName': config.option('host_name'),
                'agentInstanceName': config.option('agent_instance_name')}

    def record_spec(self, config: VendorConfig, operation: Operation, record: str) -> RequestSpec:
        return self.request(config, operation, 'GET', OBJECTS_PATH, ShapeTag.CSV,
                            path_params={'record': record}, query=self.agent_query(config),
                            headers={'Accept': 'text/csv'})

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.record_spec(config, Operation.LIST_POOLS, 'RAID_PD_PLC')
        return self.fetch(config, spec, POOL_MAPPING, cancel)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.record_spec(config, Operation.PERFORMANCE, 'RAID_PI_LDS')
        return self.fetch(config, spec, LDEV_STATS_MAPPING, cancel,
                          transform=lambda rows, _: self.metric_samples(rows, LDEV_METRICS, 'volume'))
