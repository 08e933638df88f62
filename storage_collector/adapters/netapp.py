"""NetApp ONTAP ZAPI adapter.

ZAPI is element-encoded XML posted to one servlet with basic auth. The
``*-get-iter`` calls page through ``max-records``/``tag``: every answer
carries a ``next-tag`` until the last page. Failures come back as
``<results status="failed" reason=".." errno="..">`` inside a 200.
"""

import threading
from dataclasses import replace
from typing import Any, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import AdapterError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Node, Volume
from ..schema.units import bytes_to_bytes, mib_rate_to_bytes, to_bool, to_float, to_int, to_str
from ..session.auth import BasicAuthenticator
from .base import MetricField, Operation, VendorAdapter

API_NAMESPACE = 'http://www.netapp.com/filer/admin'
API_PATH = 'servlets/netapp.servlets.admin.XMLrequest_filer'
DEFAULT_MAX_RECORDS = 1000


def _thin_provisioned(value: Any) -> bool:
    # space-guarantee "none" is how ZAPI reports a thin volume
    return to_str(value).lower() == 'none'


def _health(value: Any) -> str:
    return 'healthy' if to_bool(value) else 'unhealthy'


VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    record_path='results/attributes-list/volume-attributes',
    fields=(
        FieldMapping('id', 'volume-id-attributes/uuid', to_str),
        FieldMapping('name', 'volume-id-attributes/name', to_str, required=True),
        FieldMapping('pool_id', 'volume-id-attributes/containing-aggregate-name', to_str),
        FieldMapping('node', 'volume-id-attributes/node', to_str),
        FieldMapping('capacity_bytes', 'volume-space-attributes/size-total', bytes_to_bytes),
        FieldMapping('used_bytes', 'volume-space-attributes/size-used', bytes_to_bytes),
        FieldMapping('free_bytes', 'volume-space-attributes/size-available', bytes_to_bytes),
        FieldMapping('thin_provisioned', 'volume-space-attributes/space-guarantee', _thin_provisioned),
        FieldMapping('status', 'volume-state-attributes/state', to_str),
    ),
)

NODE_MAPPING = RecordMapping(
    record_type=Node,
    record_path='results/attributes-list/node-details-info',
    fields=(
        FieldMapping('id', 'node-uuid', to_str),
        FieldMapping('name', 'node', to_str, required=True),
        FieldMapping('model', 'node-model', to_str),
        FieldMapping('serial_number', 'node-serial-number', to_str),
        FieldMapping('firmware_version', 'product-version', to_str),
        FieldMapping('status', 'is-node-healthy', _health),
        FieldMapping('uptime_seconds', 'node-uptime', to_int),
    ),
)

# One entry per node of an HA pair, whatever the element is called
HA_INTERCONNECT_MAPPING = RecordMapping(
    record_type=MetricSample,
    record_path='results/attributes-list/*',
    fields=(
        FieldMapping('name', 'node-name', to_str, required=True),
        FieldMapping('throughput', 'average-megabytes-per-second', mib_rate_to_bytes),
        FieldMapping('transfers', 'total-transfers', to_int),
        FieldMapping('transfer_size', 'average-bytes-per-transfer', to_float),
        FieldMapping('elapsed_time', 'elapsed-time', to_int),
    ),
)

HA_INTERCONNECT_METRICS = (
    MetricField('throughput', 'interconnect_throughput', 'bytes/s'),
    MetricField('transfers', 'interconnect_transfers_total', 'ops'),
    MetricField('transfer_size', 'interconnect_transfer_size', 'bytes'),
)


class NetAppAdapter(VendorAdapter):
    """ONTAP (7-mode and cluster-mode) through the ZAPI servlet."""

    vendor = 'netapp'
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_NODES, Operation.PERFORMANCE})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def iter_body(self, api: str, max_records: int, tag: Optional[str] = None) -> bytes:
        call = {'max-records': max_records}
        if tag:
            call['tag'] = tag
        return self.codec.encode({
            'netapp': {'@version': '1.0', '@xmlns': API_NAMESPACE, api: call}
        }, ShapeTag.XML)

    def iter_spec(self, config: VendorConfig, operation: Operation, api: str) -> RequestSpec:
        max_records = int(config.option('max_records', DEFAULT_MAX_RECORDS))
        return self.request(config, operation, 'POST', API_PATH, ShapeTag.XML,
                            body=self.iter_body(api, max_records), paged=True)

    def next_page(self, spec: RequestSpec, cursor: str) -> RequestSpec:
        """Same call with the cursor in the body's ``tag`` element."""
        call = self.codec.parse_document(spec.body, ShapeTag.XML)[0]
        max_records = int(call.findtext('max-records') or DEFAULT_MAX_RECORDS)
        return replace(spec, body=self.iter_body(call.tag, max_records, cursor), cursor=cursor)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        results = document.find('results')
        if results is None:
            raise AdapterError("response has no <results> element",
                               vendor=self.vendor, operation=spec.operation)
        if results.get('status') != 'passed':
            raise AdapterError(f"{spec.operation} failed",
                               vendor_code=results.get('errno'), vendor_message=results.get('reason'),
                               vendor=self.vendor, operation=spec.operation)

    def next_cursor(self, document: Any, spec: RequestSpec) -> Optional[str]:
        tag = document.findtext('results/next-tag')
        return tag.strip() if tag and tag.strip() else None

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.iter_spec(config, Operation.LIST_VOLUMES, 'volume-get-iter')
        return self.fetch(config, spec, VOLUME_MAPPING, cancel, next_spec=self.next_page)

    def list_nodes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.iter_spec(config, Operation.LIST_NODES, 'system-node-get-iter')
        return self.fetch(config, spec, NODE_MAPPING, cancel, next_spec=self.next_page)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        """HA interconnect counters, one set of samples per node."""
        spec = self.iter_spec(config, Operation.PERFORMANCE, 'ha-interconnect-performance-statistics-get-iter')
        return self.fetch(config, spec, HA_INTERCONNECT_MAPPING, cancel, next_spec=self.next_page,
                          transform=lambda rows, _: self.metric_samples(rows, HA_INTERCONNECT_METRICS, 'node'))
