"""
Tests for the collector loop, run configuration and command line.
"""
import argparse
import logging
import os
import unittest
from tempfile import TemporaryDirectory
from unittest import mock

from .collector import MetricsCollector
from .config import CollectorConfig
from .errors import ConfigError
from .writer_config import WriterConfig
from ..adapters.netapp import API_PATH
from ..config import Settings
from ..main import create_argument_parser, main, validate_arguments
from ..transport.base import RawResponse
from ..transport.replay import ReplayTransport
from ..transport.requests_transport import RequestsTransport

NETAPP_VOLUMES = b"""<netapp xmlns='http://www.netapp.com/filer/admin'><results status="passed">
<attributes-list><volume-attributes>
<volume-id-attributes><name>vol0</name><uuid>u-0</uuid></volume-id-attributes>
<volume-space-attributes><size-total>1000</size-total></volume-space-attributes>
</volume-attributes></attributes-list></results></netapp>"""

NETAPP_NODES = b"""<netapp xmlns='http://www.netapp.com/filer/admin'><results status="passed">
<attributes-list><node-details-info><node>cluster-01</node><is-node-healthy>true</is-node-healthy>
</node-details-info></attributes-list></results></netapp>"""

NETAPP_HA_STATS = b"""<netapp xmlns='http://www.netapp.com/filer/admin'><results status="passed">
<attributes-list><ha-interconnect-performance-statistics-info><node-name>cluster-01</node-name>
<average-megabytes-per-second>2</average-megabytes-per-second><total-transfers>10</total-transfers>
</ha-interconnect-performance-statistics-info></attributes-list></results></netapp>"""


def netapp_reply(call):
    if 'volume-get-iter' in call.text:
        return RawResponse(200, NETAPP_VOLUMES, 'text/xml')
    if 'ha-interconnect' in call.text:
        return RawResponse(200, NETAPP_HA_STATS, 'text/xml')
    return RawResponse(200, NETAPP_NODES, 'text/xml')


def make_settings(vendors):
    settings = Settings(from_env=False)
    settings.apply({'vendors': vendors})
    return settings


NETAPP_ENTRY = {'name': 'filer', 'vendor': 'netapp', 'endpoint': 'filer1', 'username': 'admin',
                'password': 'secret'}
HITACHI_ENTRY = {'name': 'htnm', 'vendor': 'hitachi', 'endpoint': 'htnm1', 'username': 'system',
                 'password': 'manager'}


class TestMetricsCollector(unittest.TestCase):
    """Collection across endpoints with a scripted transport."""

    def setUp(self):
        self.transport = ReplayTransport()
        self.transport.add('POST', API_PATH, netapp_reply)
        self.writer = mock.Mock()
        self.writer.write.return_value = True

    def collector(self, vendors):
        return MetricsCollector(make_settings(vendors), writer=self.writer, transport=self.transport)

    def test_single_collection(self):
        collector = self.collector([NETAPP_ENTRY])
        self.assertTrue(collector.run_single_collection())

        data, iteration = self.writer.write.call_args.args
        self.assertEqual(iteration, 1)
        self.assertEqual([v.name for v in data['storage_volume']], ['vol0'])
        self.assertEqual([n.status for n in data['storage_node']], ['healthy'])
        self.assertEqual([(s.metric, s.value) for s in data['storage_performance']],
                         [('interconnect_throughput', 2.0 * 1024 ** 2), ('interconnect_transfers_total', 10.0)])
        self.assertEqual(collector.collections_completed, 1)

    def test_failing_vendor_does_not_block_others(self):
        # hitachi without agent options fails every operation
        collector = self.collector([NETAPP_ENTRY, HITACHI_ENTRY])
        self.assertFalse(collector.run_single_collection())

        netapp, hitachi = collector.last_results
        self.assertTrue(netapp.success)
        self.assertFalse(hitachi.success)
        self.assertIn('host_name', hitachi.error_message)
        data, _ = self.writer.write.call_args.args
        self.assertEqual(len(data['storage_volume']), 1)
        self.assertEqual(self.transport.count(), 3)

        stats = collector.get_statistics()
        self.assertEqual(stats['vendors'], ['netapp@filer1', 'hitachi@htnm1'])
        self.assertFalse(stats['last_results'][1]['success'])

    def test_unexpected_adapter_error_isolated(self):
        collector = self.collector([HITACHI_ENTRY, NETAPP_ENTRY])
        hitachi = collector.adapters[0][1]
        with mock.patch.object(hitachi, 'collect', side_effect=KeyError('volumeID')):
            with self.assertLogs('storage_collector.core.collector', level='ERROR'):
                results = collector.collect_all_data()

        self.assertFalse(results[0].success)
        self.assertEqual(results[0].error_message, "KeyError: 'volumeID'")
        self.assertTrue(results[1].success)
        self.assertEqual(results[1].record_count, 4)

    def test_invalid_entry_reported_as_failure(self):
        collector = self.collector([{'vendor': 'netapp', 'endpoint': 'filer1'}])
        results = collector.collect_all_data()
        self.assertFalse(results[0].success)
        self.assertIn('username', results[0].error_message)
        self.assertEqual(self.transport.calls, [])

    def test_unknown_vendor_rejected(self):
        with self.assertRaises(ConfigError):
            self.collector([{'vendor': 'purestorage', 'endpoint': 'fa1'}])

    def test_nothing_to_write(self):
        collector = self.collector([])
        self.assertTrue(collector.run_single_collection())
        self.writer.write.assert_not_called()

    def test_no_writer(self):
        collector = MetricsCollector(make_settings([NETAPP_ENTRY]), transport=self.transport)
        self.assertFalse(collector.run_single_collection())

    def test_writer_failure(self):
        self.writer.write.return_value = False
        self.assertFalse(self.collector([NETAPP_ENTRY]).run_single_collection())

    def test_continuous_stops_after_max_iterations(self):
        collector = self.collector([NETAPP_ENTRY])
        collector.run_continuous(interval=0, max_iterations=2)

        self.assertEqual(self.writer.write.call_count, 2)
        self.assertEqual(self.writer.write.call_args.args[1], 2)
        self.writer.close.assert_called_once_with(timeout_seconds=90, force_exit_on_timeout=False)
        self.assertIsNone(collector.writer)

    def test_stop_before_run(self):
        collector = self.collector([NETAPP_ENTRY])
        collector.stop()
        collector.run_continuous(interval=0)
        self.writer.write.assert_not_called()
        self.writer.close.assert_called_once()

    def test_sessions_reused_across_cycles(self):
        self.transport.add('POST', '/Login', RawResponse(200, cookies={'Ticket': 't1'}))
        self.transport.add('POST', 'servlets/CelerraManagementServices', RawResponse(
            200, b'<ResponsePacket><Response/></ResponsePacket>', 'text/xml'))
        collector = self.collector([{'vendor': 'vnx', 'endpoint': 'cs0', 'username': 'u', 'password': 'p'}])
        collector.run_single_collection()
        collector.run_single_collection()
        self.assertEqual(self.transport.count('POST', '/Login'), 1)

    def test_one_transport_per_tls_setting(self):
        entries = [
            dict(NETAPP_ENTRY),
            dict(NETAPP_ENTRY, endpoint='filer2'),
            dict(NETAPP_ENTRY, endpoint='filer3', tls_validation='none'),
        ]
        collector = MetricsCollector(make_settings(entries))
        self.addCleanup(collector.cleanup)
        self.assertEqual(len(collector._stacks), 2)
        transports = [adapter.transport for _, adapter in collector.adapters]
        self.assertIs(transports[0], transports[1])
        self.assertIsNot(transports[0], transports[2])
        self.assertIsInstance(transports[2], RequestsTransport)


class TestCollectorConfig(unittest.TestCase):

    def test_defaults(self):
        config = CollectorConfig()
        self.assertEqual(config.interval_time, 60)
        self.assertEqual(config.to_dict()['output'], 'prometheus')

    def test_validation(self):
        with self.assertRaises(ValueError):
            CollectorConfig(output='graphite')
        with self.assertRaises(ValueError):
            CollectorConfig(interval_time=0)
        with self.assertRaises(ValueError):
            CollectorConfig(max_workers=0)

    def test_from_args(self):
        args = create_argument_parser().parse_args(['-c', 'collector.yaml', '--interval', '300',
                                                    '--max-iterations', '2', '--output', 'none'])
        config = CollectorConfig.from_args(args)
        self.assertEqual(config.config_file, 'collector.yaml')
        self.assertEqual(config.interval_time, 300)
        self.assertEqual(config.max_iterations, 2)
        self.assertEqual(config.output, 'none')


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.parser = create_argument_parser()

    def test_camel_case_flags(self):
        args = self.parser.parse_args(['--config', 'c.yaml', '--intervalTime', '30', '--maxIterations', '1'])
        self.assertEqual((args.intervalTime, args.maxIterations), (30, 1))
        self.assertIsNone(args.prometheus_port)
        self.assertIsNone(validate_arguments(args))

    def test_validation_messages(self):
        args = self.parser.parse_args(['-c', 'c.yaml', '--interval', '0'])
        self.assertIn('intervalTime', validate_arguments(args))
        args = self.parser.parse_args(['-c', 'c.yaml', '--maxWorkers', '0'])
        self.assertIn('maxWorkers', validate_arguments(args))

    def test_config_required(self):
        with mock.patch('sys.stderr'):
            with self.assertRaises(SystemExit):
                self.parser.parse_args([])

    def test_missing_config_file_exits(self):
        with mock.patch('storage_collector.main.LoggingConfigurator.setup_logging'):
            with self.assertRaises(SystemExit) as ctx:
                main(['-c', '/nonexistent/collector.yaml', '--output', 'none'])
        self.assertEqual(ctx.exception.code, 2)

    def test_single_iteration_run(self):
        with TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, 'collector.yaml')
            with open(path, 'w', encoding='utf-8') as f:
                f.write("vendors: []\n")
            with mock.patch('storage_collector.main.LoggingConfigurator.setup_logging'), \
                    mock.patch('storage_collector.main.MetricsCollector') as collector_class:
                main(['-c', path, '--output', 'none', '--maxIterations', '1', '--interval', '5'])
        collector_class.return_value.run_continuous.assert_called_once_with(interval=5, max_iterations=1)


class TestWriterConfigFromArgs(unittest.TestCase):

    def test_settings_fill_missing_arguments(self):
        args = argparse.Namespace(output='influxdb', influxdbUrl=None, influxdbToken='cli-token',
                                  influxdbDatabase=None, tlsCa=None, prometheus_port=None)
        settings = make_settings([])
        settings.influxdb_url = 'https://influx:8181'
        settings.influxdb_database = 'storage'
        settings.influxdb_token = 'file-token'

        config = WriterConfig.from_args(args, settings)
        self.assertEqual(config.influxdb_url, 'https://influx:8181')
        self.assertEqual(config.influxdb_token, 'cli-token')
        self.assertEqual(config.influxdb_database, 'storage')
        self.assertEqual(config.prometheus_port, 8000)

    def test_influxdb_without_url(self):
        args = argparse.Namespace(output='influxdb', influxdbUrl=None, influxdbToken=None,
                                  influxdbDatabase=None, tlsCa=None, prometheus_port=None)
        with self.assertRaises(ValueError):
            WriterConfig.from_args(args)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
