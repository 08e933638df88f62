"""Dell EMC VMAX / PowerMax Unisphere REST adapter.

Listing volumes returns an iterator: the first answer carries ``count``,
``maxPageSize``, the iterator ``id`` and the first ``resultList``; further
pages are read from ``common/Iterator/{id}/page?from=&to=``. Volume
details are a separate call per volume. Capacities are in GB.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from ..codec.mapping import FieldMapping, RecordMapping
from ..codec.wire_codec import ShapeTag
from ..core.config import VendorConfig
from ..core.errors import CodecError, IncompleteConfigError
from ..dispatch.request_spec import RequestSpec
from ..schema.base_model import CommonRecord
from ..schema.models import Volume
from ..schema.units import gib_to_bytes, to_float, to_int, to_str
from ..session.auth import BasicAuthenticator
from ..transport.base import RawResponse
from .base import Operation, VendorAdapter

DEFAULT_API_VERSION = '90'
VOLUME_LIST_PATH = 'univmax/restapi/{version}/sloprovisioning/symmetrix/{sid}/volume'
VOLUME_PATH = 'univmax/restapi/{version}/sloprovisioning/symmetrix/{sid}/volume/{volume}'
ITERATOR_PAGE_PATH = 'univmax/restapi/common/Iterator/{iterator}/page'

VOLUME_ID_MAPPING = RecordMapping(
    record_type=Volume,
    record_path='result',
    fields=(
        FieldMapping('id', 'volumeId', to_str, required=True),
    ),
)

VOLUME_MAPPING = RecordMapping(
    record_type=Volume,
    fields=(
        FieldMapping('id', 'volumeId', to_str, required=True),
        FieldMapping('name', 'volume_identifier', to_str),
        FieldMapping('capacity_bytes', 'cap_gb', gib_to_bytes),
        FieldMapping('allocated_percent', 'allocated_percent', to_float),
        FieldMapping('status', 'status', to_str),
        FieldMapping('wwn', 'wwn', to_str),
    ),
)


def _with_used_bytes(row: Dict[str, Any]) -> Dict[str, Any]:
    capacity = row.get('capacity_bytes')
    percent = row.get('allocated_percent')
    if capacity is not None and percent is not None:
        row['used_bytes'] = int(capacity * percent / 100)
    return row


class VmaxAdapter(VendorAdapter):
    """Unisphere for VMAX REST API.

    Requires the ``symmetrix_id`` option. Set ``volume_details: false`` to
    list volume IDs only and skip the per-volume calls.
    """

    vendor = 'vmax'
    default_port = 8443
    capabilities = frozenset({Operation.LIST_VOLUMES})

    def create_authenticator(self):
        return BasicAuthenticator(default_port=self.default_port, scheme=self.default_scheme)

    def path_params(self, config: VendorConfig, **extra) -> Dict[str, Any]:
        sid = config.option('symmetrix_id')
        if not sid:
            raise IncompleteConfigError(['symmetrix_id'], vendor=self.vendor)
        params = {'version': config.option('api_version', DEFAULT_API_VERSION), 'sid': sid}
        params.update(extra)
        return params

    @staticmethod
    def split_cursor(cursor: str) -> Tuple[str, int, int]:
        """``iterator|from|to`` -> (iterator, from, to)."""
        iterator, start, end = cursor.rsplit('|', 2)
        return iterator, int(start), int(end)

    def iterator_page_spec(self, config: VendorConfig, cursor: str) -> RequestSpec:
        iterator, start, end = self.split_cursor(cursor)
        return self.request(config, Operation.LIST_VOLUMES, 'GET', ITERATOR_PAGE_PATH, ShapeTag.JSON,
                            path_params={'iterator': iterator}, query={'from': start, 'to': end},
                            paged=True, cursor=cursor)

    def list_volume_ids(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[str]:
        """Every volume ID on the array, following the result iterator."""
        first = self.request(config, Operation.LIST_VOLUMES, 'GET', VOLUME_LIST_PATH, ShapeTag.JSON,
                             path_params=self.path_params(config), paged=True)
        iterator: Dict[str, Any] = {}

        def parse(response: RawResponse, spec: RequestSpec) -> Tuple[List[CommonRecord], Optional[str]]:
            document = self.expect(self.codec.parse_document(response.body, ShapeTag.JSON) or {},
                                   dict, spec, 'volume iterator')
            if spec.cursor is None:
                iterator.update(id=document.get('id'), count=to_int(document.get('count') or 0),
                                page_size=to_int(document.get('maxPageSize') or 0))
                if not iterator['count']:
                    return [], None
                mapping = VOLUME_ID_MAPPING.with_path('resultList/result')
            else:
                mapping = VOLUME_ID_MAPPING
            rows = self.codec.extract(document, ShapeTag.JSON, mapping)
            fetched = self.split_cursor(spec.cursor)[2] if spec.cursor else len(rows)

            if not iterator['id'] or not iterator['page_size'] or fetched >= iterator['count']:
                return self.codec.build_records(rows, mapping, self.vendor), None
            end = min(fetched + iterator['page_size'], iterator['count'])
            self.logger.debug(f"Gathering volumes from {fetched + 1} to {end} of {iterator['count']}")
            return self.codec.build_records(rows, mapping, self.vendor), f"{iterator['id']}|{fetched + 1}|{end}"

        handle = self.login(config)
        try:
            result = self.dispatcher.execute(first, handle, self.guarded(parse), cancel=cancel,
                                             next_spec=lambda spec, cursor: self.iterator_page_spec(config, cursor))
        except CodecError as e:
            self.log_codec_error(config, first.operation, e)
            raise
        return [record.id for record in result]

    def list_volumes(self, config: VendorConfig, cancel: Optional[threading.Event] = None) -> List[CommonRecord]:
        volume_ids = self.list_volume_ids(config, cancel)
        if not config.option('volume_details', True):
            return [Volume(source_vendor=self.vendor, id=volume_id) for volume_id in volume_ids]

        volumes: List[CommonRecord] = []
        for volume_id in volume_ids:
            spec = self.request(config, Operation.LIST_VOLUMES, 'GET', VOLUME_PATH, ShapeTag.JSON,
                                path_params=self.path_params(config, volume=volume_id))
            volumes.extend(self.fetch(
                config, spec, VOLUME_MAPPING, cancel,
                transform=lambda rows, _: self.codec.build_records(
                    [_with_used_bytes(row) for row in rows], VOLUME_MAPPING, self.vendor)))
        return volumes
