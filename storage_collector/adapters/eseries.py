"""NetApp E-Series SANtricity Web Services adapter.

Login is a JSON POST to ``devmgr/utils/login`` that sets session cookies.
Newer controllers also hand out a bearer access token, which is used when
available. Byte counts arrive as strings, response times in milliseconds.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import StorageCollectorError, TransportError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample, Node, Pool, Volume
from ..schema.units import (
    bytes_to_bytes, epoch_ms_to_seconds, mib_rate_to_bytes, ms_to_seconds, to_bool, to_float, to_int, to_str
)
from ..session.auth import CookieLoginAuthenticator
from ..session.manager import Session
from ..transport.base import Transport
from .base import MetricField, Operation, VendorAdapter

LOG = logging.getLogger(__name__)

LOGIN_PATH = 'devmgr/utils/login'
ACCESS_TOKEN_PATH = 'devmgr/v2/access-token'
SYSTEM_PATH = 'devmgr/v2/storage-systems/{system_id}/{collection}'
TOKEN_DURATION = 600  # seconds
TOKEN_REFRESH_MARGIN = 30  # renew this long before the token runs out


def _optimal(value: Any) -> str:
    return to_str(value).lower()


VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('name', 'label', to_str),
        FieldMapping('capacity_bytes', 'capacity', bytes_to_bytes),
        FieldMapping('pool_id', 'volumeGroupRef', to_str),
        FieldMapping('status', 'status', _optimal),
        FieldMapping('thin_provisioned', 'thinProvisioned', to_bool),
        FieldMapping('wwn', 'wwn', to_str),
    ),
)

POOL_MAPPING = RecordMapping(
    record_type=Pool,
    fields=(
        FieldMapping('id', 'id', to_str, required=True),
        FieldMapping('name', 'label', to_str),
        FieldMapping('capacity_bytes', 'totalRaidedSpace', bytes_to_bytes),
        FieldMapping('used_bytes', 'usedSpace', bytes_to_bytes),
        FieldMapping('free_bytes', 'freeSpace', bytes_to_bytes),
        FieldMapping('raid_level', 'raidLevel', to_str),
        FieldMapping('status', 'raidStatus', _optimal),
    ),
)

CONTROLLER_MAPPING = RecordMapping(
    record_type=Node,
    fields=(
        FieldMapping('id', 'controllerRef', to_str, required=True),
        FieldMapping('name', 'physicalLocation/label', to_str),
        FieldMapping('model', 'modelName', to_str),
        FieldMapping('serial_number', 'serialNumber', to_str),
        FieldMapping('firmware_version', 'appVersion', to_str),
        FieldMapping('status', 'status', _optimal),
        FieldMapping('boot_time', 'bootTime', to_int),
        FieldMapping('active', 'active', to_bool),
    ),
)

VOLUME_STATS_MAPPING = RecordMapping(
    record_type=MetricSample,
    fields=(
        FieldMapping('id', 'volumeId', to_str, required=True),
        FieldMapping('name', 'volumeName', to_str),
        FieldMapping('timestamp_seconds', 'observedTimeInMS', epoch_ms_to_seconds),
        FieldMapping('read_iops', 'readIOps', to_float),
        FieldMapping('write_iops', 'writeIOps', to_float),
        FieldMapping('iops', 'combinedIOps', to_float),
        FieldMapping('read_latency', 'readResponseTime', ms_to_seconds),
        FieldMapping('write_latency', 'writeResponseTime', ms_to_seconds),
        FieldMapping('latency', 'combinedResponseTime', ms_to_seconds),
        FieldMapping('throughput', 'combinedThroughput', mib_rate_to_bytes),
        FieldMapping('pool_id', 'poolId', to_str),
        FieldMapping('controller_id', 'controllerId', to_str),
    ),
)

VOLUME_METRICS = (
    MetricField('read_iops', 'read_iops', 'ops/s'),
    MetricField('write_iops', 'write_iops', 'ops/s'),
    MetricField('iops', 'iops', 'ops/s'),
    MetricField('read_latency', 'read_latency', 's'),
    MetricField('write_latency', 'write_latency', 's'),
    MetricField('latency', 'latency', 's'),
    MetricField('throughput', 'throughput', 'bytes/s'),
)


class SANtricityAuthenticator(CookieLoginAuthenticator):
    """Session-cookie login, upgraded to a bearer token where supported."""

    def __init__(self, token_duration: int = TOKEN_DURATION, **kwargs):
        super().__init__(LOGIN_PATH, shape='json', **kwargs)
        self.token_duration = token_duration

    def login_payload(self, config: VendorConfig) -> Dict[str, object]:
        return {'userId': config.username, 'password': config.password, 'xsrfProtected': False}

    def after_login(self, session: Session, transport: Transport, timeout: float) -> None:
        url = self.url(session.config, ACCESS_TOKEN_PATH)
        body = json.dumps({'duration': self.token_duration}).encode('utf-8')
        try:
            response = transport.send('POST', url, body=body, timeout=timeout, cookies=session.cookies,
                                      headers={'Content-Type': 'application/json', 'Accept': 'application/json'})
        except TransportError as e:
            LOG.debug(f"Bearer token not supported: {e}, falling back to session-based auth")
            return

        if not response.ok:
            LOG.debug(f"Bearer token not available (status {response.status_code}), "
                      f"falling back to session-based auth")
            return
        try:
            token_data = response.json()
        except ValueError:
            token_data = {}
        access_token = token_data.get('accessToken') if isinstance(token_data, dict) else None
        if not access_token:
            LOG.debug("Bearer token response missing accessToken field")
            return

        duration = int(token_data.get('duration') or self.token_duration)
        session.headers['Authorization'] = f'Bearer {access_token}'
        # The session manager turns this into expires_at
        session.extras['ttl'] = max(duration - TOKEN_REFRESH_MARGIN, 1)
        LOG.info(f"Using bearer token authentication (duration: {duration}s)")

    def logout(self, session: Session, transport: Transport, timeout: float) -> None:
        url = self.url(session.config, LOGIN_PATH)
        response = transport.send('DELETE', url, headers=session.headers, cookies=session.cookies, timeout=timeout)
        if not response.ok and response.status_code != 401:
            raise StorageCollectorError(f"logout returned status {response.status_code}",
                                        vendor=session.config.vendor, operation='logout')


class ESeriesAdapter(VendorAdapter):
    """SANtricity Web Services (embedded or proxy).

    The ``system_id`` option selects the storage system; embedded web
    services always expose the local array as ``1``.
    """

    vendor = 'eseries'
    default_port = 8443
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_POOLS,
                              Operation.LIST_NODES, Operation.PERFORMANCE})

    def __init__(self, *args, clock=time.time, **kwargs):
        self._clock = clock
        super().__init__(*args, **kwargs)

    def create_authenticator(self):
        return SANtricityAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def collection_spec(self, config: VendorConfig, operation: Operation, collection: str) -> RequestSpec:
        return self.request(config, operation, 'GET', SYSTEM_PATH, ShapeTag.JSON,
                            path_params={'system_id': config.option('system_id', '1'), 'collection': collection},
                            headers={'Accept': 'application/json'})

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        return self.fetch(config, self.collection_spec(config, Operation.LIST_VOLUMES, 'volumes'),
                          VOLUME_MAPPING, cancel)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        return self.fetch(config, self.collection_spec(config, Operation.LIST_POOLS, 'storage-pools'),
                          POOL_MAPPING, cancel)

    def list_nodes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        def with_uptime(rows: List[Dict[str, Any]], _) -> List[CommonRecord]:
            now = int(self._clock())
            for row in rows:
                if row.get('boot_time'):
                    row['uptime_seconds'] = max(now - row['boot_time'], 0)
            return self.codec.build_records(rows, CONTROLLER_MAPPING, self.vendor)

        return self.fetch(config, self.collection_spec(config, Operation.LIST_NODES, 'controllers'),
                          CONTROLLER_MAPPING, cancel, transform=with_uptime)

    def get_performance_stats(self, config: VendorConfig,
                              cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.collection_spec(config, Operation.PERFORMANCE, 'analysed-volume-statistics')
        return self.fetch(config, spec, VOLUME_STATS_MAPPING, cancel,
                          transform=lambda rows, _: self.metric_samples(rows, VOLUME_METRICS, 'volume'))
