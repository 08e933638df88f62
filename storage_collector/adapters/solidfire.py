"""NetApp SolidFire Element OS JSON-RPC adapter.

Every call is a POST of ``{"method", "params", "id"}`` to the versioned
``json-rpc`` endpoint with basic auth. Errors come back in a 200 as
``{"error": {"code", "name", "message"}}``. Latencies are microseconds and
timestamps ISO-8601.
"""

import json
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import AdapterError, PayloadParseError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Node, Volume
from ..schema.units import bytes_to_bytes, iso8601_to_epoch, to_float, to_int, to_str, us_to_seconds
from ..session.auth import BasicAuthenticator
from .base import MetricField, Operation, VendorAdapter

DEFAULT_API_VERSION = '8.4'
DEFAULT_PAGE_SIZE = 500

VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    record_path='result/volumes',
    fields=(
        FieldMapping('id', 'volumeID', to_str, required=True),
        FieldMapping('name', 'name', to_str),
        FieldMapping('capacity_bytes', 'totalSize', bytes_to_bytes),
        FieldMapping('status', 'status', to_str),
        FieldMapping('account_id', 'accountID', to_str),
    ),
)

NODE_MAPPING = RecordMapping(
    record_type=Node,
    record_path='result/nodes',
    fields=(
        FieldMapping('id', 'nodeID', to_str, required=True),
        FieldMapping('name', 'name', to_str),
        FieldMapping('model', 'platformInfo/nodeType', to_str),
        FieldMapping('serial_number', 'serviceTag', to_str),
        FieldMapping('firmware_version', 'softwareVersion', to_str),
    ),
)

VOLUME_STATS_MAPPING = RecordMapping(
    record_type=MetricSample,
    record_path='result/volumeStats',
    fields=(
        FieldMapping('id', 'volumeID', to_str, required=True),
        FieldMapping('timestamp_seconds', 'timestamp', iso8601_to_epoch),
        FieldMapping('iops', 'actualIOPS', to_float),
        FieldMapping('read_ops', 'readOps', to_int),
        FieldMapping('write_ops', 'writeOps', to_int),
        FieldMapping('read_bytes', 'readBytes', bytes_to_bytes),
        FieldMapping('write_bytes', 'writeBytes', bytes_to_bytes),
        FieldMapping('latency', 'latencyUSec', us_to_seconds),
        FieldMapping('read_latency', 'readLatencyUSec', us_to_seconds),
        FieldMapping('write_latency', 'writeLatencyUSec', us_to_seconds),
    ),
)

VOLUME_METRICS = (
    MetricField('iops', 'iops', 'ops/s'),
    MetricField('read_ops', 'read_ops_total', 'ops'),
    MetricField('write_ops', 'write_ops_total', 'ops'),
    MetricField('read_bytes', 'read_bytes_total', 'bytes'),
    MetricField('write_bytes', 'write_bytes_total', 'bytes'),
    MetricField('latency', 'latency', 's'),
    MetricField('read_latency', 'read_latency', 's'),
    MetricField('write_latency', 'write_latency', 's'),
)


class SolidFireAdapter(VendorAdapter):
    """Element OS cluster (MVIP) JSON-RPC API."""

    vendor = 'solidfire'
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_NODES, Operation.PERFORMANCE})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def rpc_spec(self, config: VendorConfig, operation: Operation, method: str,
                 params: Optional[Dict[str, Any]] = None, paged: bool = False) -> RequestSpec:
        version = config.option('api_version', DEFAULT_API_VERSION)
        body = self.codec.encode({'method': method, 'params': params or {}, 'id': 1}, ShapeTag.JSON)
        return self.request(config, operation, 'POST', 'json-rpc/{version}', ShapeTag.JSON,
                            path_params={'version': version}, body=body, paged=paged)

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        if not isinstance(document, dict):
            raise AdapterError("JSON-RPC response is not an object", vendor=self.vendor, operation=spec.operation)
        error = document.get('error')
        if error:
            raise AdapterError(f"{spec.operation} failed: {error.get('name', 'error')}",
                               vendor_code=str(error.get('code')) if error.get('code') is not None else None,
                               vendor_message=error.get('message'),
                               vendor=self.vendor, operation=spec.operation)

    def next_cursor(self, document: Any, spec: RequestSpec) -> Optional[str]:
        # A full page means there may be more; continue after the highest volume ID
        limit = json.loads(spec.body)['params'].get('limit')
        result = self.expect(document.get('result') or {}, dict, spec, 'result')
        volumes = self.expect(result.get('volumes') or [], list, spec, 'result/volumes')
        if not limit or len(volumes) < limit:
            return None
        try:
            last = max(to_int(volume['volumeID']) for volume in volumes)
        except (KeyError, TypeError, ValueError) as e:
            raise PayloadParseError(f"cannot page past volumes without numeric volumeID: {e!r}",
                                    vendor=self.vendor, operation=spec.operation) from e
        return str(last + 1)

    def next_page(self, spec: RequestSpec, cursor: str) -> RequestSpec:
        request = json.loads(spec.body)
        request['params']['startVolumeID'] = int(cursor)
        return replace(spec, body=self.codec.encode(request, ShapeTag.JSON), cursor=cursor)

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        limit = int(config.option('page_size', DEFAULT_PAGE_SIZE))
        spec = self.rpc_spec(config, Operation.LIST_VOLUMES, 'ListVolumes',
                             {'startVolumeID': 0, 'limit': limit}, paged=True)
        return self.fetch(config, spec, VOLUME_MAPPING, cancel, next_spec=self.next_page)

    def list_nodes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.rpc_spec(config, Operation.LIST_NODES, 'ListActiveNodes')
        return self.fetch(config, spec, NODE_MAPPING, cancel)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.rpc_spec(config, Operation.PERFORMANCE, 'ListVolumeStatsByVolume')
        return self.fetch(config, spec, VOLUME_STATS_MAPPING, cancel,
                          transform=lambda rows, _: self.metric_samples(rows, VOLUME_METRICS, 'volume'))
