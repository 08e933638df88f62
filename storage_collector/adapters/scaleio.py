"""Dell EMC ScaleIO / PowerFlex gateway adapter.

``GET /api/login`` with basic auth returns a JSON-quoted token that
replaces the password for every later request. Capacities are in KiB.
Traffic counters come as bandwidth calculations (BWC): operations and
KiB moved over a number of seconds.
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
from ..schema.units import KIB, kib_to_bytes, to_int, to_str
from ..session.auth import TokenLoginAuthenticator
from .base import MetricField, Operation, VendorAdapter

POOL_STATISTICS = ('maxCapacityInKb', 'capacityInUseInKb', 'unusedCapacityInKb')
BWC_STATISTICS = ('totalReadBwc', 'totalWriteBwc')
SELECTED_STATISTICS_PATH = 'api/instances/querySelectedStatistics'


def _thin_provisioned(value: Any) -> bool:
    return to_str(value) == 'ThinProvisioned'


VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('name', 'name', to_str),
        FieldMapping('capacity_bytes', 'sizeInKb', kib_to_bytes),
        FieldMapping('pool_id', 'storagePoolId', to_str),
        FieldMapping('thin_provisioned', 'volumeType', _thin_provisioned),
    ),
)

# Applied to pool instances merged with their selected statistics
POOL_MAPPING = RecordMapping(
    record_type=Pool,
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('name', 'name', to_str),
        FieldMapping('capacity_bytes', 'maxCapacityInKb', kib_to_bytes),
        FieldMapping('used_bytes', 'capacityInUseInKb', kib_to_bytes),
        FieldMapping('free_bytes', 'unusedCapacityInKb', kib_to_bytes),
        FieldMapping('protection_domain_id', 'protectionDomainId', to_str),
    ),
)

POOL_BWC_MAPPING = RecordMapping(
    record_type=MetricSample,
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('read_count', 'totalReadBwc/numOccured', to_int),
        FieldMapping('read_kb', 'totalReadBwc/totalWeightInKb', to_int),
        FieldMapping('read_seconds', 'totalReadBwc/numSeconds', to_int),
        FieldMapping('write_count', 'totalWriteBwc/numOccured', to_int),
        FieldMapping('write_kb', 'totalWriteBwc/totalWeightInKb', to_int),
        FieldMapping('write_seconds', 'totalWriteBwc/numSeconds', to_int),
    ),
)

POOL_METRICS = (
    MetricField('read_iops', 'read_iops', 'ops/s'),
    MetricField('write_iops', 'write_iops', 'ops/s'),
    MetricField('read_throughput', 'read_throughput', 'bytes/s'),
    MetricField('write_throughput', 'write_throughput', 'bytes/s'),
)


def bwc_rates(row: Dict[str, Any]) -> Dict[str, Any]:
    """Add per-second read/write rates to a row of decoded BWC counters.

    A BWC over zero seconds has no rate and yields no value.
    """
    for direction in ('read', 'write'):
        seconds = row.get(f'{direction}_seconds')
        if not seconds:
            continue
        if row.get(f'{direction}_count') is not None:
            row[f'{direction}_iops'] = row[f'{direction}_count'] / seconds
        if row.get(f'{direction}_kb') is not None:
            row[f'{direction}_throughput'] = row[f'{direction}_kb'] * KIB / seconds
    return row


class ScaleIOAdapter(VendorAdapter):
    """ScaleIO REST gateway."""

    vendor = 'scaleio'
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_POOLS, Operation.PERFORMANCE})

    def create_authenticator(self):
        return TokenLoginAuthenticator('api/login', default_port=self.default_port, scheme=self.default_scheme)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        # The gateway reports some failures as {"message":..,"httpStatusCode":..,"errorCode":..}
        if isinstance(document, dict) and 'errorCode' in document and 'message' in document:
            raise AdapterError(f"{spec.operation} failed", vendor_code=str(document.get('errorCode')),
                               vendor_message=document.get('message'),
                               vendor=self.vendor, operation=spec.operation)

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.request(config, Operation.LIST_VOLUMES, 'GET', 'api/types/Volume/instances', ShapeTag.JSON)
        return self.fetch(config, spec, VOLUME_MAPPING, cancel)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.request(config, Operation.LIST_POOLS, 'GET', 'api/types/StoragePool/instances', ShapeTag.JSON)
        pools = self.expect(self.fetch_document(config, spec, cancel) or [], list, spec, 'storage pool list')
        if not pools:
            return []
        for pool in pools:
            self.expect(pool, dict, spec, 'storage pool')

        body = {'ids': [pool.get('id') for pool in pools], 'properties': list(POOL_STATISTICS)}
        stats_spec = self.request(config, Operation.LIST_POOLS, 'POST',
                                  'api/types/StoragePool/instances/action/querySelectedStatistics',
                                  ShapeTag.JSON, body=self.codec.encode(body, ShapeTag.JSON))
        statistics = self.expect(self.fetch_document(config, stats_spec, cancel) or {}, dict,
                                 stats_spec, 'storage pool statistics')

        merged = []
        for pool in pools:
            stats = self.expect(statistics.get(pool.get('id')) or {}, dict, stats_spec,
                                f"statistics of pool {pool.get('id')}")
            merged.append(dict(pool, **stats))
        rows = self.extract_rows(config, Operation.LIST_POOLS, merged, POOL_MAPPING)
        return self.codec.build_records(rows, POOL_MAPPING, self.vendor)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        """Read/write IOPS and throughput per storage pool from one statistics query."""
        body = {'selectedStatisticsList': [
            {'type': 'StoragePool', 'allIds': [], 'properties': list(BWC_STATISTICS)},
        ]}
        spec = self.request(config, Operation.PERFORMANCE, 'POST', SELECTED_STATISTICS_PATH, ShapeTag.JSON,
                            body=self.codec.encode(body, ShapeTag.JSON))
        document = self.expect(self.fetch_document(config, spec, cancel) or {}, dict, spec, 'statistics')
        by_pool = self.expect(document.get('StoragePool') or {}, dict, spec, 'StoragePool statistics')

        entries = [dict(self.expect(stats, dict, spec, f"statistics of pool {pool_id}"), id=pool_id)
                   for pool_id, stats in by_pool.items()]
        rows = self.extract_rows(config, Operation.PERFORMANCE, entries, POOL_BWC_MAPPING)
        return self.metric_samples([bwc_rates(row) for row in rows], POOL_METRICS, 'pool')
