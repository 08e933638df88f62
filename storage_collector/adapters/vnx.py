"""EMC VNX / Celerra XML API adapter.

The XML API takes a form login that sets a ``Ticket`` cookie, then answers
``RequestPacket`` queries posted to a single servlet. Records come back
attribute-encoded and sizes are in megabytes. Errors are reported inside a
200 response through ``QueryStatus``.
"""

import threading
from typing import Any, Dict, List, Optional

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import AdapterError, StorageCollectorError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import Pool, Volume
from ..schema.units import mib_to_bytes, to_bool, to_str
from ..session.auth import CookieLoginAuthenticator
from ..session.manager import Session
from ..transport.base import Transport
from .base import Operation, VendorAdapter

API_NAMESPACE = 'http://www.emc.com/schemas/celerra/xml_api'
SERVLET_PATH = 'servlets/CelerraManagementServices'

VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    record_path='Response/Volume',
    fields=(
        FieldMapping('id', '@volume', to_str, required=True),
        FieldMapping('name', '@name', to_str),
        FieldMapping('capacity_bytes', '@size', mib_to_bytes),
        FieldMapping('thin_provisioned', '@virtualProvisioning', to_bool),
        FieldMapping('volume_type', '@type', to_str),
    ),
)

POOL_MAPPING = RecordMapping(
    record_type=Pool,
    record_path='Response/StoragePool',
    fields=(
        FieldMapping('id', '@pool', to_str, required=True),
        FieldMapping('name', '@name', to_str),
        FieldMapping('capacity_bytes', '@size', mib_to_bytes),
        FieldMapping('used_bytes', '@usedSize', mib_to_bytes),
        FieldMapping('description', '@description', to_str),
    ),
)


class VnxAuthenticator(CookieLoginAuthenticator):
    """Form login to ``/Login``; logout disconnects the servlet session."""

    def __init__(self, **kwargs):
        super().__init__('Login', required_cookies=('Ticket',), shape='form', **kwargs)

    def login_payload(self, config: VendorConfig) -> Dict[str, object]:
        return {'user': config.username, 'password': config.password, 'Login': 'Login'}

    def logout(self, session: Session, transport: Transport, timeout: float) -> None:
        # The servlet hands out JSESSIONID on the first query; nothing to end before that
        jsession = session.cookies.get('JSESSIONID')
        if not jsession:
            return
        url = self.url(session.config, SERVLET_PATH)
        headers = {
            'Content-Type': ShapeTag.XML.content_type,
            'CelerraConnector-Sess': jsession,
            'CelerraConnector-Ctl': 'DISCONNECT',
        }
        response = transport.send('POST', url, headers=headers, cookies=session.cookies, timeout=timeout)
        if not response.ok:
            raise StorageCollectorError(f"logout returned status {response.status_code}",
                                        vendor=session.config.vendor, operation='logout')


class VnxAdapter(VendorAdapter):
    """VNX File / Celerra management services."""

    vendor = 'vnx'
    capabilities = frozenset({Operation.LIST_VOLUMES, Operation.LIST_POOLS})

    def create_authenticator(self):
        return VnxAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def query_body(self, query: str) -> bytes:
        """RequestPacket wrapping one ``<Query>`` element."""
        return self.codec.encode({
            'RequestPacket': {
                '@xmlns': API_NAMESPACE,
                'Request': {'Query': {query: {}}},
            }
        }, ShapeTag.XML)

    def query_spec(self, config: VendorConfig, operation: Operation, query: str) -> RequestSpec:
        return self.request(config, operation, 'POST', SERVLET_PATH, ShapeTag.XML,
                            body=self.query_body(query))

    def check_document(self, document: Any, spec: RequestSpec) -> None:
        status = document.find('Response/QueryStatus')
        if status is None or status.get('maxSeverity', 'ok') not in ('error', 'critical'):
            return
        problem = status.find('Problem')
        code = problem.get('messageCode') if problem is not None else None
        message = problem.get('message') if problem is not None else None
        if problem is not None and not message:
            message = problem.findtext('Description')
        raise AdapterError(f"query failed with severity {status.get('maxSeverity')}",
                           vendor_code=code, vendor_message=message,
                           vendor=self.vendor, operation=spec.operation)

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.query_spec(config, Operation.LIST_VOLUMES, 'VolumeQueryParams')
        return self.fetch(config, spec, VOLUME_MAPPING, cancel)

    def list_pools(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        spec = self.query_spec(config, Operation.LIST_POOLS, 'StoragePoolQueryParams')
        return self.fetch(config, spec, POOL_MAPPING, cancel)
