"""
Tests for the vendor adapters, run against scripted vendor responses.
"""
import json
import logging
import unittest
from unittest import mock

from . import ADAPTER_REGISTRY, available_vendors, create_adapter, get_adapter_class, register_adapter
from .base import Operation
from .eseries import ESeriesAdapter
from .hitachi import HitachiAdapter
from .isilon import IsilonAdapter
from .netapp import API_PATH, NetAppAdapter
from .scaleio import ScaleIOAdapter
from .solidfire import SolidFireAdapter
from .vmax import VmaxAdapter
from .vnx import SERVLET_PATH, VnxAdapter
from .xtremio import XtremIOAdapter
from ..core.config import PolicySettings, VendorConfig
from ..core.errors import (
    AdapterError, ConfigError, FieldConversionError, IncompleteConfigError, MalformedRowError, NotSupportedError,
    PayloadParseError
)
from ..dispatch.dispatcher import RequestDispatcher
from ..schema.models import MetricSample, Node, Pool, Volume
from ..session.manager import SessionManager
from ..transport.base import RawResponse
from ..transport.replay import ReplayTransport


def xml(text):
    return RawResponse(200, text.encode('utf-8'), 'text/xml')


def ok_json(document, **kwargs):
    return RawResponse(200, json.dumps(document).encode('utf-8'), 'application/json', **kwargs)


class AdapterTestCase(unittest.TestCase):
    """Builds adapters on a replay transport with instant backoff."""

    def setUp(self):
        self.transport = ReplayTransport()
        self.policy = PolicySettings()

    def adapter(self, adapter_class, **kwargs):
        dispatcher = RequestDispatcher(self.transport, self.policy, sleep=lambda _: None)
        return adapter_class(self.transport, dispatcher=dispatcher, policy=self.policy, **kwargs)


NETAPP_VOLUMES_PAGE1 = """<?xml version='1.0' encoding='UTF-8'?>
<netapp version='1.21' xmlns='http://www.netapp.com/filer/admin'>
  <results status="passed">
    <attributes-list>
      <volume-attributes>
        <volume-id-attributes><name>vol-a</name><uuid>u-a</uuid>
          <containing-aggregate-name>aggr1</containing-aggregate-name></volume-id-attributes>
        <volume-space-attributes><size-total>1000</size-total><size-used>400</size-used>
          <space-guarantee>none</space-guarantee></volume-space-attributes>
        <volume-state-attributes><state>online</state></volume-state-attributes>
      </volume-attributes>
      <volume-attributes>
        <volume-id-attributes><name>vol-b</name><uuid>u-b</uuid></volume-id-attributes>
        <volume-space-attributes><size-total>2000</size-total>
          <space-guarantee>volume</space-guarantee></volume-space-attributes>
      </volume-attributes>
    </attributes-list>
    <next-tag>tag-2</next-tag>
    <num-records>2</num-records>
  </results>
</netapp>"""

NETAPP_VOLUMES_PAGE2 = """<?xml version='1.0' encoding='UTF-8'?>
<netapp version='1.21' xmlns='http://www.netapp.com/filer/admin'>
  <results status="passed">
    <attributes-list>
      <volume-attributes>
        <volume-id-attributes><name>vol-c</name><uuid>u-c</uuid></volume-id-attributes>
      </volume-attributes>
    </attributes-list>
    <num-records>1</num-records>
  </results>
</netapp>"""

NETAPP_NODES = """<netapp xmlns='http://www.netapp.com/filer/admin'>
  <results status="passed">
    <attributes-list>
      <node-details-info>
        <node>cluster-01</node><node-uuid>n-1</node-uuid><node-model>FAS8200</node-model>
        <is-node-healthy>true</is-node-healthy><node-uptime>86400</node-uptime>
      </node-details-info>
      <node-details-info>
        <node>cluster-02</node><is-node-healthy>false</is-node-healthy>
      </node-details-info>
    </attributes-list>
  </results>
</netapp>"""

NETAPP_HA_STATS = """<netapp xmlns='http://www.netapp.com/filer/admin'>
  <results status="passed">
    <attributes-list>
      <ha-interconnect-performance-statistics-info>
        <node-name>cluster-01</node-name><average-megabytes-per-second>1.5</average-megabytes-per-second>
        <total-transfers>4200</total-transfers><average-bytes-per-transfer>8192</average-bytes-per-transfer>
        <elapsed-time>3600</elapsed-time>
      </ha-interconnect-performance-statistics-info>
      <ha-interconnect-performance-statistics-info>
        <node-name>cluster-02</node-name><average-megabytes-per-second>0</average-megabytes-per-second>
      </ha-interconnect-performance-statistics-info>
    </attributes-list>
  </results>
</netapp>"""

NETAPP_FAILED = """<netapp xmlns='http://www.netapp.com/filer/admin'>
  <results status="failed" errno="13005" reason="Unable to find API: system-node-get-iter"/>
</netapp>"""


class TestNetAppAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('netapp', 'filer1', 'admin', 'secret')
        self.netapp = self.adapter(NetAppAdapter)

    def test_volume_pages_followed_by_tag(self):
        self.transport.add('POST', API_PATH, xml(NETAPP_VOLUMES_PAGE1), xml(NETAPP_VOLUMES_PAGE2))
        volumes = self.netapp.list_volumes(self.config)

        self.assertEqual([v.name for v in volumes], ['vol-a', 'vol-b', 'vol-c'])
        self.assertEqual(self.transport.count('POST', API_PATH), 2)
        self.assertNotIn('<tag>', self.transport.calls[0].text)
        self.assertIn('<tag>tag-2</tag>', self.transport.calls[1].text)
        self.assertIn('<max-records>1000</max-records>', self.transport.calls[1].text)
        self.assertEqual(self.transport.calls[0].auth, ('admin', 'secret'))

        first = volumes[0]
        self.assertEqual(first.id, 'u-a')
        self.assertEqual(first.pool_id, 'aggr1')
        self.assertEqual(first.free_bytes, 600)
        self.assertTrue(first.thin_provisioned)
        self.assertFalse(volumes[1].thin_provisioned)

    def test_max_records_option(self):
        config = VendorConfig('netapp', 'filer1', 'admin', 'secret', options={'max_records': 2})
        self.transport.add('POST', API_PATH, xml(NETAPP_VOLUMES_PAGE1), xml(NETAPP_VOLUMES_PAGE2))
        self.netapp.list_volumes(config)
        self.assertIn('<max-records>2</max-records>', self.transport.calls[1].text)

    def test_nodes(self):
        self.transport.add('POST', API_PATH, xml(NETAPP_NODES))
        nodes = self.netapp.list_nodes(self.config)
        self.assertEqual([n.status for n in nodes], ['healthy', 'unhealthy'])
        self.assertEqual(nodes[0].uptime_seconds, 86400)
        self.assertEqual(nodes[1].id, 'cluster-02')
        self.assertIn('system-node-get-iter', self.transport.calls[0].text)

    def test_ha_interconnect_performance(self):
        self.transport.add('POST', API_PATH, xml(NETAPP_HA_STATS))
        samples = self.netapp.get_performance_stats(self.config)

        self.assertIn('<ha-interconnect-performance-statistics-get-iter>', self.transport.calls[0].text)
        self.assertEqual(len(samples), 4)
        by_key = {(s.id, s.metric): s for s in samples}
        throughput = by_key[('cluster-01', 'interconnect_throughput')]
        self.assertEqual(throughput.value, 1.5 * 1024 ** 2)
        self.assertEqual(throughput.unit, 'bytes/s')
        self.assertEqual(throughput.object_type, 'node')
        self.assertEqual(by_key[('cluster-01', 'interconnect_transfers_total')].value, 4200)
        self.assertEqual(by_key[('cluster-01', 'interconnect_transfer_size')].unit, 'bytes')
        self.assertEqual(by_key[('cluster-02', 'interconnect_throughput')].value, 0.0)

    def test_failed_status(self):
        self.transport.add('POST', API_PATH, xml(NETAPP_FAILED))
        with self.assertRaises(AdapterError) as ctx:
            self.netapp.list_nodes(self.config)
        self.assertEqual(ctx.exception.vendor_code, '13005')
        self.assertIn('Unable to find API', ctx.exception.vendor_message)
        self.assertEqual(ctx.exception.vendor, 'netapp')

    def test_collect_reports_partial_failure(self):
        def reply(call):
            if 'volume-get-iter' in call.text:
                return xml(NETAPP_VOLUMES_PAGE2)
            return xml(NETAPP_FAILED)

        self.transport.add('POST', API_PATH, reply)
        result = self.netapp.collect(self.config)

        self.assertFalse(result.success)
        self.assertEqual(result.vendor, 'netapp')
        self.assertEqual(result.endpoint, 'filer1')
        self.assertEqual([v.name for v in result.data['storage_volume']], ['vol-c'])
        self.assertNotIn('storage_node', result.data)
        self.assertTrue(result.error_message.startswith('list_nodes: '))
        self.assertIn('duration_seconds', result.metadata)
        self.assertEqual(result.record_count, 1)

    def test_unsupported_operation(self):
        with self.assertRaises(NotSupportedError) as ctx:
            self.netapp.list_pools(self.config)
        self.assertEqual(ctx.exception.operation, 'list_pools')
        self.assertFalse(self.netapp.supports(Operation.LIST_POOLS))


VNX_VOLUMES = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<ResponsePacket xmlns="http://www.emc.com/schemas/celerra/xml_api">
  <Response>
    <QueryStatus maxSeverity="ok"/>
    <Volume volume="101" name="root_disk" type="disk" size="11263" virtualProvisioning="false"/>
    <Volume volume="102" name="fs_data" type="meta" size="2048" virtualProvisioning="true"/>
  </Response>
</ResponsePacket>"""

VNX_POOLS = """<ResponsePacket xmlns="http://www.emc.com/schemas/celerra/xml_api">
  <Response>
    <StoragePool pool="40" name="clar_r5_performance" size="100" usedSize="25" description="CLARiiON RAID5"/>
  </Response>
</ResponsePacket>"""

VNX_ERROR = """<ResponsePacket xmlns="http://www.emc.com/schemas/celerra/xml_api">
  <Response>
    <QueryStatus maxSeverity="error">
      <Problem messageCode="13690601492" component="API" message="Query is not supported"/>
    </QueryStatus>
  </Response>
</ResponsePacket>"""


class TestVnxAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('vnx', 'cs0', 'nasadmin', 'secret')
        self.vnx = self.adapter(VnxAdapter)
        self.transport.add('POST', '/Login', RawResponse(200, cookies={'Ticket': 't1'}))

    def test_login_then_volume_query(self):
        self.transport.add('POST', SERVLET_PATH, xml(VNX_VOLUMES))
        volumes = self.vnx.list_volumes(self.config)

        login, query = self.transport.calls
        self.assertEqual(login.url, 'https://cs0/Login')
        self.assertIn('user=nasadmin', login.text)
        self.assertEqual(query.cookies, {'Ticket': 't1'})
        self.assertIn('VolumeQueryParams', query.text)

        self.assertEqual([v.id for v in volumes], ['101', '102'])
        self.assertEqual(volumes[1].capacity_bytes, 2048 * 1024 ** 2)
        self.assertTrue(volumes[1].thin_provisioned)
        self.assertEqual(volumes[0].get_raw('volume_type'), 'disk')

    def test_pools(self):
        self.transport.add('POST', SERVLET_PATH, xml(VNX_POOLS))
        pools = self.vnx.list_pools(self.config)
        self.assertEqual(pools[0].id, '40')
        self.assertEqual(pools[0].free_bytes, 75 * 1024 ** 2)
        self.assertIn('StoragePoolQueryParams', self.transport.calls[1].text)

    def test_query_status_error(self):
        self.transport.add('POST', SERVLET_PATH, xml(VNX_ERROR))
        with self.assertRaises(AdapterError) as ctx:
            self.vnx.list_volumes(self.config)
        self.assertEqual(ctx.exception.vendor_code, '13690601492')
        self.assertEqual(ctx.exception.vendor_message, 'Query is not supported')

    def test_logout_disconnects_servlet_session(self):
        self.transport.add('POST', SERVLET_PATH,
                           RawResponse(200, VNX_VOLUMES.encode('utf-8'), cookies={'JSESSIONID': 'j1'}))
        self.vnx.list_volumes(self.config)
        self.vnx.logout(self.config)

        disconnect = self.transport.calls[-1]
        self.assertEqual(disconnect.headers['CelerraConnector-Ctl'], 'DISCONNECT')
        self.assertEqual(disconnect.headers['CelerraConnector-Sess'], 'j1')
        self.assertEqual(len(self.vnx.sessions), 0)

    def test_logout_without_servlet_session(self):
        self.vnx.login(self.config)
        self.vnx.logout(self.config)
        self.assertEqual(self.transport.count('POST', SERVLET_PATH), 0)


HITACHI_POOLS = (
    "POOL_ID,POOL_NAME,TOTAL_ACTUAL_CAPACITY,USAGE_CAPACITY,FREE_CAPACITY,RAID_LEVEL,STATUS\n"
    "string(8),string(32),ulong,ulong,ulong,string(8),string(16)\n"
    "1,pool-a,1024,256,768,RAID6,NORMAL\n"
    "2,pool-b,2048,,,RAID5,NORMAL\n"
)

HITACHI_LDEVS = (
    "LDEV_NUMBER,LDEV_NAME,RECORD_TIME,READ_IO_RATE,WRITE_IO_RATE,READ_XFER_RATE,WRITE_XFER_RATE,"
    "READ_RESPONSE_RATE,WRITE_RESPONSE_RATE\n"
    "string(16),string(32),time_t,double,double,double,double,double,double\n"
    "00:00:01,db,2024-01-01T00:00:00Z,120.5,30,4096,1024,2.5,4\n"
)


class TestHitachiAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('hitachi', 'htnm1:22015', 'system', 'manager',
                                   options={'host_name': 'raidhost', 'agent_instance_name': '53039'})
        self.hitachi = self.adapter(HitachiAdapter)

    def test_pools_from_csv(self):
        self.transport.add('GET', 'RAID_PD_PLC', RawResponse(200, HITACHI_POOLS.encode('utf-8'), 'text/csv'))
        pools = self.hitachi.list_pools(self.config)

        call = self.transport.calls[0]
        self.assertEqual(call.url, 'http://htnm1:22015/TuningManager/v1/objects/RAID_PD_PLC'
                                   '?hostName=raidhost&agentInstanceName=53039')
        self.assertEqual(call.auth, ('system', 'manager'))
        self.assertEqual(call.headers['Accept'], 'text/csv')

        self.assertEqual([p.id for p in pools], ['1', '2'])
        self.assertEqual(pools[0].capacity_bytes, 1024 * 1024 ** 2)
        self.assertEqual(pools[0].free_bytes, 768 * 1024 ** 2)
        self.assertEqual(pools[0].raid_level, 'RAID6')
        self.assertIsNone(pools[1].used_bytes)

    def test_ldev_performance(self):
        self.transport.add('GET', 'RAID_PI_LDS', RawResponse(200, HITACHI_LDEVS.encode('utf-8'), 'text/csv'))
        samples = self.hitachi.get_performance_stats(self.config)

        self.assertEqual(len(samples), 6)
        by_metric = {s.metric: s for s in samples}
        self.assertEqual(by_metric['read_iops'].value, 120.5)
        self.assertEqual(by_metric['read_throughput'].value, 4096.0 * 1024)
        self.assertEqual(by_metric['write_throughput'].value, 1024.0 * 1024)
        self.assertEqual(by_metric['read_throughput'].unit, 'bytes/s')
        self.assertAlmostEqual(by_metric['read_latency'].value, 0.0025)
        self.assertEqual(by_metric['read_latency'].unit, 's')
        self.assertEqual(by_metric['write_iops'].id, '00:00:01')
        self.assertEqual(by_metric['write_iops'].timestamp_seconds, 1704067200)
        self.assertTrue(all(isinstance(s, MetricSample) for s in samples))

    def test_agent_options_required(self):
        config = VendorConfig('hitachi', 'htnm1', 'system', 'manager')
        with self.assertRaises(IncompleteConfigError) as ctx:
            self.hitachi.list_pools(config)
        self.assertEqual(ctx.exception.missing, ['host_name', 'agent_instance_name'])
        self.assertEqual(self.transport.calls, [])

    def test_malformed_row(self):
        body = HITACHI_POOLS + "3,pool-c,1,1,1,RAID1,NORMAL,extra\n"
        self.transport.add('GET', 'RAID_PD_PLC', RawResponse(200, body.encode('utf-8')))
        with self.assertRaises(MalformedRowError) as ctx:
            self.hitachi.list_pools(self.config)
        self.assertEqual(ctx.exception.vendor, 'hitachi')


class TestScaleIOAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('scaleio', 'gateway1', 'admin', 'secret')
        self.scaleio = self.adapter(ScaleIOAdapter)
        self.transport.add('GET', 'api/login', RawResponse(200, b'"YWRtaW46MTYx"'))

    def test_token_replaces_password(self):
        self.transport.add('GET', 'api/types/Volume/instances', ok_json([
            {'id': 'v1', 'name': 'vol1', 'sizeInKb': 8388608, 'storagePoolId': 'p1',
             'volumeType': 'ThinProvisioned'},
            {'id': 'v2', 'name': 'vol2', 'sizeInKb': 1024, 'volumeType': 'ThickProvisioned'},
        ]))
        volumes = self.scaleio.list_volumes(self.config)

        login, listing = self.transport.calls
        self.assertEqual(login.auth, ('admin', 'secret'))
        self.assertEqual(listing.auth, ('admin', 'YWRtaW46MTYx'))
        self.assertEqual(volumes[0].capacity_bytes, 8 * 1024 ** 3)
        self.assertTrue(volumes[0].thin_provisioned)
        self.assertFalse(volumes[1].thin_provisioned)

    def test_pools_merged_with_statistics(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json([
            {'id': 'p1', 'name': 'sp1', 'protectionDomainId': 'pd1'},
            {'id': 'p2', 'name': 'sp2', 'protectionDomainId': 'pd1'},
        ]))
        self.transport.add('POST', 'querySelectedStatistics', ok_json({
            'p1': {'maxCapacityInKb': 4096, 'capacityInUseInKb': 1024, 'unusedCapacityInKb': 3072},
        }))
        pools = self.scaleio.list_pools(self.config)

        self.assertEqual([p.id for p in pools], ['p1', 'p2'])
        self.assertEqual(pools[0].capacity_bytes, 4096 * 1024)
        self.assertEqual(pools[0].used_bytes, 1024 * 1024)
        self.assertIsNone(pools[1].capacity_bytes)
        self.assertEqual(pools[1].get_raw('protection_domain_id'), 'pd1')

        request = json.loads(self.transport.calls[-1].text)
        self.assertEqual(request['ids'], ['p1', 'p2'])
        self.assertIn('maxCapacityInKb', request['properties'])

    def test_no_pools_skips_statistics(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json([]))
        self.assertEqual(self.scaleio.list_pools(self.config), [])
        self.assertEqual(self.transport.count('POST'), 0)

    def test_pool_list_of_unexpected_shape(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json({'unexpected': 'shape'}))
        with self.assertRaises(PayloadParseError) as ctx:
            self.scaleio.list_pools(self.config)
        self.assertEqual(ctx.exception.vendor, 'scaleio')
        self.assertEqual(ctx.exception.operation, 'list_pools')
        self.assertEqual(self.transport.count('POST'), 0)

    def test_pool_statistics_of_unexpected_shape(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json([{'id': 'p1'}]))
        self.transport.add('POST', 'querySelectedStatistics', ok_json({'p1': [1024]}))
        with self.assertRaises(PayloadParseError):
            self.scaleio.list_pools(self.config)

    def test_statistics_decode_error_logged(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json([{'id': 'p1'}]))
        self.transport.add('POST', 'querySelectedStatistics', RawResponse(200, b'{"p1": {'))
        with self.assertLogs('storage_collector.adapters.scaleio', level='ERROR') as logs:
            with self.assertRaises(PayloadParseError) as ctx:
                self.scaleio.list_pools(self.config)
        self.assertIn('scaleio list_pools response from gateway1', logs.output[0])
        self.assertEqual(ctx.exception.vendor, 'scaleio')

    def test_conversion_error_names_field(self):
        self.transport.add('GET', 'api/types/StoragePool/instances', ok_json([{'id': 'p1'}]))
        self.transport.add('POST', 'querySelectedStatistics', ok_json({'p1': {'maxCapacityInKb': 'lots'}}))
        with self.assertLogs('storage_collector.adapters.scaleio', level='ERROR') as logs:
            with self.assertRaises(FieldConversionError):
                self.scaleio.list_pools(self.config)
        self.assertIn('(field capacity_bytes)', logs.output[0])

    def test_pool_bandwidth_statistics(self):
        self.transport.add('POST', 'api/instances/querySelectedStatistics', ok_json({'StoragePool': {
            'p1': {'totalReadBwc': {'numSeconds': 5, 'totalWeightInKb': 10240, 'numOccured': 500},
                   'totalWriteBwc': {'numSeconds': 0, 'totalWeightInKb': 0, 'numOccured': 0}},
        }}))
        samples = self.scaleio.get_performance_stats(self.config)

        request = json.loads(self.transport.calls[-1].text)
        self.assertEqual(request['selectedStatisticsList'][0]['type'], 'StoragePool')
        self.assertIn('totalReadBwc', request['selectedStatisticsList'][0]['properties'])

        by_metric = {s.metric: s for s in samples}
        self.assertEqual(sorted(by_metric), ['read_iops', 'read_throughput'])
        self.assertEqual(by_metric['read_iops'].value, 100.0)
        self.assertEqual(by_metric['read_throughput'].value, 2048.0 * 1024)
        self.assertEqual(by_metric['read_throughput'].unit, 'bytes/s')
        self.assertEqual(by_metric['read_iops'].id, 'p1')
        self.assertEqual(by_metric['read_iops'].object_type, 'pool')


class TestSolidFireAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('solidfire', 'mvip1', 'admin', 'secret', options={'page_size': 2})
        self.solidfire = self.adapter(SolidFireAdapter)

    def test_volumes_paged_by_start_volume_id(self):
        volumes = {1: 'a', 2: 'b', 3: 'c'}

        def list_volumes(call):
            params = json.loads(call.text)['params']
            start, limit = params['startVolumeID'], params['limit']
            page = [{'volumeID': vid, 'name': name, 'totalSize': 1073741824, 'status': 'active'}
                    for vid, name in volumes.items() if vid >= start][:limit]
            return ok_json({'id': 1, 'result': {'volumes': page}})

        self.transport.add('POST', 'json-rpc/8.4', list_volumes)
        result = self.solidfire.list_volumes(self.config)

        self.assertEqual([v.name for v in result], ['a', 'b', 'c'])
        self.assertEqual(self.transport.count(), 2)
        self.assertEqual(json.loads(self.transport.calls[1].text)['params']['startVolumeID'], 3)
        self.assertEqual(result[0].capacity_bytes, 1073741824)

    def test_non_numeric_volume_id_stops_paging(self):
        config = VendorConfig('solidfire', 'mvip1', 'admin', 'secret', options={'page_size': 1})
        self.transport.add('POST', 'json-rpc', ok_json({'result': {'volumes': [{'volumeID': 'abc'}]}}))
        with self.assertRaises(PayloadParseError) as ctx:
            self.solidfire.list_volumes(config)
        self.assertEqual(ctx.exception.operation, 'list_volumes')

        result = self.solidfire.collect(config)
        self.assertFalse(result.success)
        self.assertIn('list_volumes: ', result.error_message)
        self.assertNotIn('storage_volume', result.data)

    def test_volume_list_of_unexpected_shape(self):
        config = VendorConfig('solidfire', 'mvip1', 'admin', 'secret', options={'page_size': 1})
        self.transport.add('POST', 'json-rpc', ok_json({'result': {'volumes': {'volumeID': 1}}}))
        with self.assertRaises(PayloadParseError):
            self.solidfire.list_volumes(config)

    def test_api_version_option(self):
        config = VendorConfig('solidfire', 'mvip1', 'admin', 'secret', options={'api_version': '12.3'})
        self.transport.add('POST', 'json-rpc/12.3', ok_json({'result': {'nodes': []}}))
        self.assertEqual(self.solidfire.list_nodes(config), [])
        self.assertEqual(self.transport.calls[0].url, 'https://mvip1/json-rpc/12.3')

    def test_rpc_error(self):
        self.transport.add('POST', 'json-rpc', ok_json({
            'id': 1, 'error': {'code': 500, 'name': 'xUnknownAPIMethod', 'message': 'Unknown method'}}))
        with self.assertRaises(AdapterError) as ctx:
            self.solidfire.list_nodes(self.config)
        self.assertEqual(ctx.exception.vendor_code, '500')
        self.assertEqual(ctx.exception.vendor_message, 'Unknown method')

    def test_nodes(self):
        self.transport.add('POST', 'json-rpc', ok_json({'result': {'nodes': [
            {'nodeID': 1, 'name': 'sf-01', 'platformInfo': {'nodeType': 'SF19210'},
             'serviceTag': 'ST1', 'softwareVersion': '12.3.0.958'},
        ]}}))
        nodes = self.solidfire.list_nodes(self.config)
        self.assertIsInstance(nodes[0], Node)
        self.assertEqual(nodes[0].model, 'SF19210')
        self.assertEqual(json.loads(self.transport.calls[0].text)['method'], 'ListActiveNodes')

    def test_volume_stats(self):
        self.transport.add('POST', 'json-rpc', ok_json({'result': {'volumeStats': [
            {'volumeID': 7, 'timestamp': '2024-01-01T00:00:00Z', 'actualIOPS': 250, 'readOps': 1000,
             'writeOps': 500, 'readBytes': 4096000, 'writeBytes': 2048000, 'latencyUSec': 1500,
             'readLatencyUSec': 1000, 'writeLatencyUSec': 2000},
        ]}}))
        samples = self.solidfire.get_performance_stats(self.config)

        self.assertEqual(len(samples), 8)
        by_metric = {s.metric: s for s in samples}
        self.assertAlmostEqual(by_metric['latency'].value, 0.0015)
        self.assertEqual(by_metric['read_bytes_total'].unit, 'bytes')
        self.assertEqual(by_metric['iops'].timestamp_seconds, 1704067200)
        self.assertEqual({s.id for s in samples}, {'7'})


class TestVmaxAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('vmax', 'unisphere1', 'smc', 'smc', options={'symmetrix_id': '000197800123'})
        self.vmax = self.adapter(VmaxAdapter)
        self.transport.add('GET', 'volume/0001A', ok_json({
            'volumeId': '0001A', 'volume_identifier': 'data1', 'cap_gb': 10, 'allocated_percent': 50,
            'status': 'Ready', 'wwn': '60000970000197800123533030303141'}))
        self.transport.add('GET', 'volume/0001B', ok_json({'volumeId': '0001B', 'cap_gb': 1.5}))
        self.transport.add('GET', 'Iterator/it-1/page', ok_json({
            'from': 3, 'to': 3, 'result': [{'volumeId': '0001C'}]}))
        self.transport.add('GET', 'volume/0001C', ok_json({'volumeId': '0001C'}))
        self.transport.add('GET', 'symmetrix/000197800123/volume', ok_json({
            'id': 'it-1', 'count': 3, 'maxPageSize': 2, 'expirationTime': 1700000000000,
            'resultList': {'from': 1, 'to': 2, 'result': [{'volumeId': '0001A'}, {'volumeId': '0001B'}]}}))

    def test_volume_ids_through_iterator(self):
        config = VendorConfig('vmax', 'unisphere1', 'smc', 'smc',
                              options={'symmetrix_id': '000197800123', 'volume_details': False})
        volumes = self.vmax.list_volumes(config)

        self.assertEqual([v.id for v in volumes], ['0001A', '0001B', '0001C'])
        self.assertEqual(self.transport.calls[0].url,
                         'https://unisphere1:8443/univmax/restapi/90/sloprovisioning/symmetrix/000197800123/volume')
        self.assertEqual(self.transport.calls[1].url,
                         'https://unisphere1:8443/univmax/restapi/common/Iterator/it-1/page?from=3&to=3')
        self.assertEqual(self.transport.count(), 2)

    def test_volume_details(self):
        volumes = self.vmax.list_volumes(self.config)

        self.assertEqual(len(volumes), 3)
        self.assertEqual(self.transport.count(), 5)
        first = volumes[0]
        self.assertEqual(first.name, 'data1')
        self.assertEqual(first.capacity_bytes, 10 * 1024 ** 3)
        self.assertEqual(first.used_bytes, 5 * 1024 ** 3)
        self.assertEqual(volumes[1].capacity_bytes, int(1.5 * 1024 ** 3))
        self.assertIsNone(volumes[2].capacity_bytes)

    def test_empty_array(self):
        transport = ReplayTransport()
        transport.add('GET', '/volume', ok_json({'count': 0}))
        vmax = VmaxAdapter(transport)
        self.assertEqual(vmax.list_volumes(self.config), [])
        self.assertEqual(transport.count(), 1)

    def test_iterator_not_an_object(self):
        transport = ReplayTransport()
        transport.add('GET', '/volume', ok_json(['0001A', '0001B']))
        with self.assertRaises(PayloadParseError) as ctx:
            VmaxAdapter(transport).list_volumes(self.config)
        self.assertEqual(ctx.exception.vendor, 'vmax')
        self.assertEqual(ctx.exception.operation, 'list_volumes')

    def test_iterator_count_not_a_number(self):
        transport = ReplayTransport()
        transport.add('GET', '/volume', ok_json({'id': 'it-1', 'count': 'many', 'maxPageSize': 2}))
        vmax = VmaxAdapter(transport)
        with self.assertRaises(PayloadParseError):
            vmax.list_volumes(self.config)
        self.assertFalse(vmax.collect(self.config).success)

    def test_symmetrix_id_required(self):
        with self.assertRaises(IncompleteConfigError):
            self.vmax.list_volumes(VendorConfig('vmax', 'unisphere1', 'smc', 'smc'))

    def test_only_volumes_supported(self):
        with self.assertRaises(NotSupportedError):
            self.vmax.list_pools(self.config)
        result = self.vmax.collect(self.config)
        self.assertEqual(list(result.data), ['storage_volume'])
        self.assertTrue(result.success)


class TestESeriesAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.now = 5000.0
        self.config = VendorConfig('eseries', '10.0.0.10', 'monitor', 'secret')
        self.sessions = SessionManager(self.transport, self.policy, clock=lambda: self.now)
        self.eseries = self.adapter(ESeriesAdapter, session_manager=self.sessions, clock=lambda: self.now)
        self.transport.add('POST', 'devmgr/utils/login', RawResponse(200, cookies={'JSESSIONID': 's1'}))

    def test_bearer_token_used_when_offered(self):
        self.transport.add('POST', 'devmgr/v2/access-token', ok_json({'accessToken': 'tok', 'duration': 600}))
        self.transport.add('GET', 'storage-systems/1/volumes', ok_json([
            {'id': '0200', 'label': 'data', 'capacity': '1073741824', 'volumeGroupRef': '0400',
             'status': 'Optimal', 'thinProvisioned': False},
        ]))
        volumes = self.eseries.list_volumes(self.config)

        login = json.loads(self.transport.calls[0].text)
        self.assertEqual(login['userId'], 'monitor')
        self.assertEqual(self.transport.calls[0].url, 'https://10.0.0.10:8443/devmgr/utils/login')
        self.assertEqual(self.transport.calls[-1].headers['Authorization'], 'Bearer tok')

        session = self.sessions.get_valid(self.config, self.eseries.authenticator)
        self.assertEqual(session.expires_at, self.now + 570)
        self.assertEqual(volumes[0].status, 'optimal')
        self.assertEqual(volumes[0].capacity_bytes, 1073741824)

    def test_cookie_session_fallback(self):
        self.transport.add('POST', 'devmgr/v2/access-token', RawResponse(404))
        self.transport.add('GET', 'storage-systems/1/storage-pools', ok_json([
            {'id': '0400', 'label': 'pool1', 'totalRaidedSpace': '1000', 'usedSpace': '250',
             'freeSpace': '750', 'raidLevel': 'raidDiskPool', 'raidStatus': 'optimal'},
        ]))
        pools = self.eseries.list_pools(self.config)

        listing = self.transport.calls[-1]
        self.assertNotIn('Authorization', listing.headers)
        self.assertEqual(listing.cookies, {'JSESSIONID': 's1'})
        self.assertEqual(pools[0].used_bytes, 250)
        self.assertIsNone(self.sessions.get_valid(self.config, self.eseries.authenticator).expires_at)

    def test_system_id_option(self):
        config = VendorConfig('eseries', '10.0.0.10', 'monitor', 'secret', options={'system_id': 'abc'})
        self.transport.add('GET', 'storage-systems/abc/volumes', ok_json([]))
        self.assertEqual(self.eseries.list_volumes(config), [])

    def test_controller_uptime(self):
        self.transport.add('GET', 'storage-systems/1/controllers', ok_json([
            {'controllerRef': '070000000000000000000001', 'physicalLocation': {'label': 'A'},
             'modelName': '2806', 'serialNumber': 'SN1', 'appVersion': '11.80', 'status': 'optimal',
             'bootTime': 1000, 'active': True},
        ]))
        nodes = self.eseries.list_nodes(self.config)
        self.assertEqual(nodes[0].name, 'A')
        self.assertEqual(nodes[0].uptime_seconds, 4000)

    def test_volume_performance(self):
        self.transport.add('GET', 'analysed-volume-statistics', ok_json([
            {'volumeId': '0200', 'volumeName': 'data', 'observedTimeInMS': '1700000000000',
             'readIOps': 10, 'writeIOps': 5, 'combinedIOps': 15, 'readResponseTime': 2.0,
             'writeResponseTime': 4.0, 'combinedResponseTime': 3.0, 'combinedThroughput': 1.5},
        ]))
        samples = self.eseries.get_performance_stats(self.config)

        self.assertEqual(len(samples), 7)
        by_metric = {s.metric: s for s in samples}
        self.assertAlmostEqual(by_metric['read_latency'].value, 0.002)
        self.assertEqual(by_metric['iops'].timestamp_seconds, 1700000000)
        self.assertEqual(by_metric['throughput'].name, 'data')
        self.assertEqual(by_metric['throughput'].value, 1.5 * 1024 ** 2)
        self.assertEqual(by_metric['throughput'].unit, 'bytes/s')


class TestIsilonAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('isilon', 'onefs1', 'monitor', 'secret')
        self.isilon = self.adapter(IsilonAdapter)

    def test_cluster_statfs_as_pool(self):
        self.transport.add('GET', 'cluster/statfs', ok_json({
            'f_bavail': 600, 'f_bfree': 700, 'f_blocks': 1000, 'f_bsize': 8192,
            'f_fstypename': 'isi', 'f_mntfromname': 'OneFS', 'f_mntonname': '/ifs'}))
        pools = self.isilon.list_pools(self.config)

        call = self.transport.calls[0]
        self.assertEqual(call.url, 'https://onefs1:8080/platform/1/cluster/statfs')
        self.assertEqual(call.auth, ('monitor', 'secret'))
        pool = pools[0]
        self.assertEqual((pool.id, pool.name), ('/ifs', '/ifs'))
        self.assertEqual(pool.capacity_bytes, 1000 * 8192)
        self.assertEqual(pool.used_bytes, 300 * 8192)
        self.assertEqual(pool.free_bytes, 600 * 8192)

    def test_node_status(self):
        self.transport.add('GET', 'cluster/nodes/ALL/status', ok_json({'nodes': [
            {'id': 1, 'lnn': 1, 'release': 'v8.2.2.0', 'status': 0, 'uptime': 86400,
             'cpu': {'model': 'Intel Xeon E5-2630'}},
            {'id': 2, 'lnn': 2},
        ]}))
        nodes = self.isilon.list_nodes(self.config)

        self.assertEqual([n.id for n in nodes], ['1', '2'])
        self.assertEqual(nodes[0].firmware_version, 'v8.2.2.0')
        self.assertEqual(nodes[0].model, 'Intel Xeon E5-2630')
        self.assertEqual(nodes[0].uptime_seconds, 86400)
        self.assertIsNone(nodes[1].uptime_seconds)

    def test_protocol_stats(self):
        self.transport.add('GET', 'summary/protocol-stats', ok_json({'protocol-stats': {
            'time': 1700000000,
            'cpu': {'idle': 90.5, 'system': 4, 'user': 5.5},
            'disk': {'iops': 1200, 'read': 1048576, 'write': 524288},
            'network': {'in': {'megabytes_per_sec': 2, 'errors_per_sec': 0},
                        'out': {'megabytes_per_sec': 0.5}},
            'onefs': {'in': 1, 'out': 3, 'total': 4},
        }}))
        samples = self.isilon.get_performance_stats(self.config)

        self.assertEqual(self.transport.calls[0].url,
                         'https://onefs1:8080/platform/1/statistics/summary/protocol-stats'
                         '?degraded=true&timeout=600')
        self.assertEqual(len(samples), 11)
        by_metric = {s.metric: s for s in samples}
        self.assertEqual(by_metric['network_in_throughput'].value, 2.0 * 1024 ** 2)
        self.assertEqual(by_metric['network_out_throughput'].value, 0.5 * 1024 ** 2)
        self.assertEqual(by_metric['onefs_throughput'].value, 4.0 * 1024 ** 2)
        self.assertEqual(by_metric['onefs_throughput'].unit, 'bytes/s')
        self.assertEqual(by_metric['cpu_idle'].unit, 'percent')
        self.assertEqual(by_metric['disk_iops'].object_type, 'cluster')
        self.assertEqual(by_metric['cpu_user'].timestamp_seconds, 1700000000)
        self.assertEqual({s.id for s in samples}, {'onefs1'})

    def test_error_document(self):
        self.transport.add('GET', 'cluster/statfs', ok_json({
            'errors': [{'code': 'AEC_NOT_FOUND', 'message': 'Path not found'}]}))
        with self.assertRaises(AdapterError) as ctx:
            self.isilon.list_pools(self.config)
        self.assertEqual(ctx.exception.vendor_code, 'AEC_NOT_FOUND')
        self.assertEqual(ctx.exception.vendor_message, 'Path not found')
        self.assertFalse(self.isilon.supports(Operation.LIST_VOLUMES))


XTREMIO_VOLUMES = {
    'volumes': [
        {'index': 1, 'name': 'db01', 'guid': '2d3b5c', 'vol-size': '1048576', 'logical-space-in-use': '262144',
         'naa-name': '514f0c5a51600001', 'iops': '300', 'rd-iops': '200', 'wr-iops': '100', 'bw': '3072',
         'rd-bw': '2048', 'wr-bw': '1024', 'avg-latency': '450', 'rd-latency': '300', 'wr-latency': '600'},
    ],
    'links': [{'href': 'https://xms1/api/json/v2/types/volumes/', 'rel': 'self'}],
    'params': {'full': '1'},
}


class TestXtremIOAdapter(AdapterTestCase):

    def setUp(self):
        super().setUp()
        self.config = VendorConfig('xtremio', 'xms1', 'admin', 'secret')
        self.xtremio = self.adapter(XtremIOAdapter)
        self.transport.add('GET', 'types/volumes', ok_json(XTREMIO_VOLUMES))

    def test_volumes(self):
        volumes = self.xtremio.list_volumes(self.config)

        self.assertEqual(self.transport.calls[0].url, 'https://xms1/api/json/v2/types/volumes?full=1')
        self.assertEqual(self.transport.calls[0].auth, ('admin', 'secret'))
        volume = volumes[0]
        self.assertEqual((volume.id, volume.name), ('1', 'db01'))
        self.assertEqual(volume.capacity_bytes, 1024 ** 3)
        self.assertEqual(volume.used_bytes, 256 * 1024 ** 2)
        self.assertEqual(volume.get_raw('wwn'), '514f0c5a51600001')

    def test_clusters_as_pools(self):
        self.transport.add('GET', 'types/clusters', ok_json({'clusters': [
            {'index': 1, 'name': 'xbrick1', 'ud-ssd-space': '8388608', 'ud-ssd-space-in-use': '2097152',
             'sys-sw-version': '4.0.25-27'},
        ]}))
        pools = self.xtremio.list_pools(self.config)

        pool = pools[0]
        self.assertEqual(pool.name, 'xbrick1')
        self.assertEqual(pool.capacity_bytes, 8 * 1024 ** 3)
        self.assertEqual(pool.used_bytes, 2 * 1024 ** 3)
        self.assertEqual(pool.free_bytes, 6 * 1024 ** 3)
        self.assertEqual(pool.get_raw('software_version'), '4.0.25-27')

    def test_volume_performance(self):
        samples = self.xtremio.get_performance_stats(self.config)

        self.assertEqual(len(samples), 9)
        by_metric = {s.metric: s for s in samples}
        self.assertEqual(by_metric['throughput'].value, 3072.0 * 1024)
        self.assertEqual(by_metric['read_throughput'].unit, 'bytes/s')
        self.assertAlmostEqual(by_metric['read_latency'].value, 0.0003)
        self.assertEqual(by_metric['write_iops'].value, 100.0)
        self.assertEqual((by_metric['iops'].id, by_metric['iops'].name), ('1', 'db01'))

    def test_error_document(self):
        self.transport.add('GET', 'types/clusters', ok_json({
            'message': 'Command Syntax Error: Invalid object type', 'error_code': 400}))
        with self.assertRaises(AdapterError) as ctx:
            self.xtremio.list_pools(self.config)
        self.assertEqual(ctx.exception.vendor_code, '400')


class TestRegistry(unittest.TestCase):

    def test_known_vendors(self):
        self.assertEqual(available_vendors(),
                         ['eseries', 'hitachi', 'isilon', 'netapp', 'scaleio', 'solidfire', 'vmax', 'vnx',
                          'xtremio'])
        self.assertIs(get_adapter_class('netapp'), NetAppAdapter)

    def test_unknown_vendor(self):
        with self.assertRaises(ConfigError):
            get_adapter_class('purestorage')

    def test_register_class(self):
        class CustomAdapter(NetAppAdapter):
            vendor = 'custom'

        with mock.patch.dict(ADAPTER_REGISTRY):
            register_adapter('custom', CustomAdapter)
            self.assertIn('custom', available_vendors())
            self.assertIs(get_adapter_class('custom'), CustomAdapter)

    def test_unloadable_target(self):
        with mock.patch.dict(ADAPTER_REGISTRY):
            register_adapter('broken', 'storage_collector.adapters.netapp:Missing')
            with self.assertRaises(ConfigError):
                get_adapter_class('broken')

    def test_create_adapter_shares_transport(self):
        transport = ReplayTransport()
        adapter = create_adapter('solidfire', transport)
        self.assertIsInstance(adapter, SolidFireAdapter)
        self.assertIs(adapter.transport, transport)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
