"""
Tests for the Prometheus, InfluxDB and composite writers.
"""
import logging
import os
import threading
import unittest
from tempfile import TemporaryDirectory
from unittest import mock

from influxdb_client_3.exceptions.exceptions import InfluxDBError

from . import factory as factory_module
from .base import NullWriter, Writer
from .factory import WriterFactory
from .influxdb_writer import InfluxDBWriter
from .multi_writer import MultiWriter
from .prometheus_writer import PrometheusWriter
from ..core.writer_config import WriterConfig
from ..schema.models import MetricSample, Node, Pool, Volume


def sample_measurements():
    return {
        'storage_volume': [
            Volume(source_vendor='netapp', id='v1', name='data', capacity_bytes=1000, used_bytes=250,
                   thin_provisioned=True, status='online'),
        ],
        'storage_pool': [Pool(source_vendor='vnx', id='40', name='pool', capacity_bytes=2048)],
        'storage_node': [Node(source_vendor='netapp', id='n-1', name='cluster-01', status='healthy')],
        'storage_performance': [
            MetricSample(source_vendor='hitachi', id='00:01', metric='read_iops', value=12.5,
                         unit='ops/s', object_type='volume', timestamp_seconds=1700000000),
        ],
    }


class TestPrometheusWriter(unittest.TestCase):
    """Records become labelled gauges in the writer's own registry."""

    def setUp(self):
        self.writer = PrometheusWriter({'prometheus_port': None})

    def test_record_fields_become_gauges(self):
        self.assertTrue(self.writer.write(sample_measurements()))
        labels = {'source_vendor': 'netapp', 'id': 'v1', 'name': 'data'}

        self.assertEqual(self.writer.sample_value('storage_volume_capacity_bytes', labels), 1000.0)
        self.assertEqual(self.writer.sample_value('storage_volume_free_bytes', labels), 750.0)
        self.assertEqual(self.writer.sample_value('storage_volume_thin_provisioned', labels), 1.0)
        self.assertEqual(self.writer.sample_value(
            'storage_pool_capacity_bytes', {'source_vendor': 'vnx', 'id': '40', 'name': 'pool'}), 2048.0)
        self.assertNotIn('storage_node_status', self.writer.metric_names())

    def test_samples_labelled_with_unit(self):
        self.writer.write(sample_measurements())
        value = self.writer.sample_value('storage_performance_read_iops', {
            'source_vendor': 'hitachi', 'id': '00:01', 'name': 'unknown',
            'object_type': 'volume', 'unit': 'ops/s'})
        self.assertEqual(value, 12.5)

    def test_gauges_updated_in_place(self):
        self.writer.write(sample_measurements())
        update = {'storage_volume': [Volume(source_vendor='netapp', id='v1', name='data', capacity_bytes=4000)]}
        self.writer.write(update, loop_iteration=2)
        labels = {'source_vendor': 'netapp', 'id': 'v1', 'name': 'data'}
        self.assertEqual(self.writer.sample_value('storage_volume_capacity_bytes', labels), 4000.0)

    def test_removed_objects_no_longer_exported(self):
        self.writer.write({'storage_volume': [
            Volume(source_vendor='netapp', id='v1', name='data', capacity_bytes=1000, used_bytes=250),
            Volume(source_vendor='netapp', id='v2', name='logs', capacity_bytes=500),
        ]})
        self.writer.write({'storage_volume': [
            Volume(source_vendor='netapp', id='v1', name='data', capacity_bytes=1000),
        ]}, loop_iteration=2)

        data = {'source_vendor': 'netapp', 'id': 'v1', 'name': 'data'}
        logs = {'source_vendor': 'netapp', 'id': 'v2', 'name': 'logs'}
        self.assertEqual(self.writer.sample_value('storage_volume_capacity_bytes', data), 1000.0)
        self.assertIsNone(self.writer.sample_value('storage_volume_capacity_bytes', logs))
        self.assertIsNone(self.writer.sample_value('storage_volume_used_bytes', data))
        self.assertNotIn('id="v2"', self.writer.render())

    def test_other_measurements_kept_between_writes(self):
        self.writer.write(sample_measurements())
        self.writer.write({'storage_volume': []}, loop_iteration=2)
        self.assertIsNone(self.writer.sample_value(
            'storage_volume_capacity_bytes', {'source_vendor': 'netapp', 'id': 'v1', 'name': 'data'}))
        self.assertEqual(self.writer.sample_value(
            'storage_pool_capacity_bytes', {'source_vendor': 'vnx', 'id': '40', 'name': 'pool'}), 2048.0)

    def test_sample_without_value_skipped(self):
        self.writer.write({'storage_performance': [MetricSample(source_vendor='x', id='1', metric='iops')]})
        self.assertEqual(self.writer.metric_names(), [])

    def test_render(self):
        self.writer.write(sample_measurements())
        text = self.writer.render()
        self.assertIn('# TYPE storage_volume_capacity_bytes gauge', text)
        self.assertIn('storage_performance_read_iops{', text)

    def test_metric_name_sanitized(self):
        self.assertEqual(PrometheusWriter._sanitize_metric_name('storage_performance', 'readIOps/s'),
                         'storage_performance_read_iops_s')
        self.assertEqual(PrometheusWriter._sanitize_metric_name('', '9lives'), 'metric_9lives')

    def test_debug_output(self):
        with TemporaryDirectory() as temp_dir:
            writer = PrometheusWriter({'prometheus_port': None, 'json_output_dir': temp_dir})
            writer.write(sample_measurements(), loop_iteration=1)
            path = os.path.join(temp_dir, 'iteration_1_prometheus_metrics_final.txt')
            with open(path, encoding='utf-8') as f:
                self.assertIn('storage_volume_capacity_bytes', f.read())

    def test_server_started_once(self):
        writer = PrometheusWriter({'prometheus_port': 9999})
        with mock.patch('storage_collector.writer.prometheus_writer.start_http_server') as start:
            writer.write(sample_measurements())
            writer.write(sample_measurements(), loop_iteration=2)
        start.assert_called_once_with(9999, registry=writer.prometheus_registry)

    def test_server_failure_reported(self):
        writer = PrometheusWriter({'prometheus_port': 9999})
        with mock.patch('storage_collector.writer.prometheus_writer.start_http_server',
                        side_effect=OSError('address in use')):
            self.assertFalse(writer.write(sample_measurements()))


class TestInfluxDBWriter(unittest.TestCase):
    """Points built from records and handed to the client."""

    def setUp(self):
        self.client = mock.Mock()
        self.writer = InfluxDBWriter({'client': self.client, 'influxdb_url': 'https://influx:8181',
                                      'influxdb_database': 'storage'})

    def test_volume_point(self):
        volume = Volume(source_vendor='netapp', id='v1', name='data', capacity_bytes=1000)
        point = InfluxDBWriter.record_to_point('storage_volume', volume, 1700000000)
        line = point.to_line_protocol()
        self.assertTrue(line.startswith('storage_volume,'))
        self.assertIn('source_vendor=netapp', line)
        self.assertIn('capacity_bytes=1000i', line)
        self.assertTrue(line.endswith(' 1700000000'))

    def test_sample_point_uses_its_timestamp(self):
        sample = sample_measurements()['storage_performance'][0]
        line = InfluxDBWriter.record_to_point('storage_performance', sample, 1).to_line_protocol()
        self.assertIn('metric=read_iops', line)
        self.assertIn('value=12.5', line)
        self.assertTrue(line.endswith(' 1700000000'))

    def test_records_without_fields_skipped(self):
        node = Node(source_vendor='netapp', id='n-1', status='healthy')
        self.assertIsNone(InfluxDBWriter.record_to_point('storage_node', node, 1))
        sample = MetricSample(source_vendor='x', id='1', metric='iops')
        self.assertIsNone(InfluxDBWriter.record_to_point('storage_performance', sample, 1))

    def test_write(self):
        self.assertTrue(self.writer.write(sample_measurements()))
        # the node record has no numeric fields
        self.assertEqual(self.client.write.call_count, 3)

    def test_write_error(self):
        self.client.write.side_effect = InfluxDBError(message='write refused')
        self.assertFalse(self.writer.write(sample_measurements()))

    def test_write_without_client(self):
        self.writer.client = None
        self.assertFalse(self.writer.write(sample_measurements()))

    def test_debug_output(self):
        with TemporaryDirectory() as temp_dir:
            writer = InfluxDBWriter({'client': mock.Mock(), 'json_output_dir': temp_dir})
            writer.write(sample_measurements(), loop_iteration=1)
            with open(os.path.join(temp_dir, 'iteration_1_influxdb_line_protocol_final.txt'),
                      encoding='utf-8') as f:
                lines = f.read().splitlines()
            self.assertEqual(len(lines), 3)
            self.assertTrue(os.path.exists(os.path.join(temp_dir, 'iteration_1_influxdb_writer_input_final.json')))

    def test_close(self):
        self.writer.close(timeout_seconds=5)
        self.client.close.assert_called_once_with()
        self.assertIsNone(self.writer.client)
        self.writer.close()

    def test_close_timeout_forces_exit(self):
        release = threading.Event()
        self.addCleanup(release.set)
        self.client.close.side_effect = lambda: release.wait(5)
        with self.assertRaises(SystemExit):
            self.writer.close(timeout_seconds=0.05, force_exit_on_timeout=True)
        self.assertIsNone(self.writer.client)

    def test_existing_database_not_created(self):
        response = mock.Mock(status_code=200)
        response.json.return_value = [{'iox::database': 'storage'}]
        with mock.patch('storage_collector.writer.influxdb_writer.requests') as requests_mock:
            requests_mock.get.return_value = response
            self.writer._ensure_database_exists()
        requests_mock.post.assert_not_called()

    def test_missing_database_created(self):
        response = mock.Mock(status_code=200)
        response.json.return_value = {'databases': ['_internal']}
        with mock.patch('storage_collector.writer.influxdb_writer.requests') as requests_mock:
            requests_mock.get.return_value = response
            requests_mock.post.return_value = mock.Mock(status_code=201)
            self.writer._ensure_database_exists()
        self.assertEqual(requests_mock.post.call_args.kwargs['json'], {'db': 'storage'})


class FailingWriter(Writer):

    def __init__(self, exception=None):
        self.exception = exception
        self.closed = False

    def write(self, data, loop_iteration=1):
        if self.exception:
            raise self.exception
        return False

    def close(self, timeout_seconds=90, force_exit_on_timeout=False):
        self.closed = True


class TestMultiWriter(unittest.TestCase):

    def test_all_writers_called(self):
        first, second = mock.Mock(), mock.Mock()
        first.write.return_value = second.write.return_value = True
        writer = MultiWriter([first, second])
        self.assertTrue(writer.write({'storage_volume': []}, 3))
        second.write.assert_called_once_with({'storage_volume': []}, 3)

    def test_failure_does_not_stop_others(self):
        ok = mock.Mock()
        ok.write.return_value = True
        writer = MultiWriter([FailingWriter(OSError('disk full')), FailingWriter(), ok])
        self.assertFalse(writer.write({}))
        ok.write.assert_called_once_with({}, 1)

    def test_close_all(self):
        writers = [FailingWriter(), FailingWriter()]
        MultiWriter(writers).close()
        self.assertTrue(all(w.closed for w in writers))
        self.assertEqual(str(MultiWriter(writers)), 'MultiWriter(FailingWriter, FailingWriter)')


class TestWriterFactory(unittest.TestCase):

    def test_none(self):
        self.assertIsInstance(WriterFactory.create_writer_from_config(WriterConfig(output_format='none')),
                              NullWriter)

    def test_prometheus(self):
        writer = WriterFactory.create_writer_from_config(WriterConfig(prometheus_port=None))
        self.assertIsInstance(writer, PrometheusWriter)
        self.assertIsNone(writer.port)

    def test_both(self):
        config = WriterConfig(output_format='both', influxdb_url='https://influx:8181',
                              influxdb_token='t', influxdb_database='storage', prometheus_port=None)
        with mock.patch.object(factory_module, 'InfluxDBWriter') as influx_class:
            writer = WriterFactory.create_writer_from_config(config)
        self.assertIsInstance(writer, MultiWriter)
        self.assertEqual(len(writer.writers), 2)
        options = influx_class.call_args.args[0]
        self.assertEqual(options['influxdb_database'], 'storage')
        self.assertIsNone(options['json_output_dir'])

    def test_debug_output_dir(self):
        with TemporaryDirectory() as temp_dir:
            env = {'COLLECTOR_LOG_LEVEL': 'DEBUG', 'COLLECTOR_LOG_FILE': os.path.join(temp_dir, 'collector.log')}
            with mock.patch.dict(os.environ, env):
                self.assertEqual(WriterFactory._get_debug_output_dir(), temp_dir)
            with mock.patch.dict(os.environ, {'COLLECTOR_LOG_LEVEL': 'INFO'}):
                self.assertIsNone(WriterFactory._get_debug_output_dir())


class TestWriterConfig(unittest.TestCase):

    def test_unknown_format(self):
        with self.assertRaises(ValueError):
            WriterConfig(output_format='graphite')

    def test_influxdb_settings_required(self):
        with self.assertRaises(ValueError):
            WriterConfig(output_format='influxdb', influxdb_url='https://influx:8181')

    def test_to_dict_redacts_token(self):
        config = WriterConfig(output_format='both', influxdb_url='https://influx:8181',
                              influxdb_token='secret', influxdb_database='storage')
        self.assertEqual(config.to_dict()['influxdb_token'], '[REDACTED]')
        self.assertEqual(config.to_dict()['prometheus_port'], 8000)
        self.assertNotIn('influxdb_url', WriterConfig().to_dict())


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
