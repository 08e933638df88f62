"""
Tests for the common record model and unit converters.
"""
import logging
import unittest

from .models import MEASUREMENTS, MetricSample, Node, PagedResult, Pool, Volume
from .units import (
    epoch_ms_to_seconds, iso8601_to_epoch, kib_rate_to_bytes, kib_to_bytes, mib_rate_to_bytes, mib_to_bytes,
    ms_to_seconds, to_bool, to_float, to_int, us_to_seconds
)


class TestUnits(unittest.TestCase):
    """Converters return canonical units or raise ValueError/TypeError."""

    def test_capacity_scaling(self):
        self.assertEqual(kib_to_bytes('2048'), 2097152)
        self.assertEqual(mib_to_bytes(1.5), 1572864)

    def test_throughput_scaling(self):
        self.assertEqual(kib_rate_to_bytes('0.5'), 512.0)
        self.assertIsInstance(kib_rate_to_bytes(3), float)
        self.assertEqual(mib_rate_to_bytes(1.5), 1572864.0)
        with self.assertRaises(ValueError):
            mib_rate_to_bytes('fast')

    def test_integers(self):
        self.assertEqual(to_int('1,024'), 1024)
        self.assertEqual(to_int(7.0), 7)
        with self.assertRaises(ValueError):
            to_int('1.5')
        with self.assertRaises(TypeError):
            to_int(True)

    def test_floats(self):
        self.assertEqual(to_float(' 2.5 '), 2.5)
        with self.assertRaises(ValueError):
            to_float('n/a')

    def test_durations(self):
        self.assertAlmostEqual(ms_to_seconds('250'), 0.25)
        self.assertAlmostEqual(us_to_seconds(1500), 0.0015)
        self.assertEqual(epoch_ms_to_seconds('1700000000123'), 1700000000)

    def test_timestamps(self):
        self.assertEqual(iso8601_to_epoch('1970-01-01T00:01:00Z'), 60)
        self.assertEqual(iso8601_to_epoch('1970-01-01T01:00:00+01:00'), 0)
        self.assertEqual(iso8601_to_epoch('1970-01-01T00:00:10'), 10)

    def test_booleans(self):
        self.assertTrue(to_bool('Yes'))
        self.assertFalse(to_bool('false'))
        self.assertTrue(to_bool(1))
        with self.assertRaises(ValueError):
            to_bool('maybe')


class TestRecords(unittest.TestCase):
    """Common record construction and identity."""

    def test_free_space_derived(self):
        volume = Volume(source_vendor='netapp', id='v1', capacity_bytes=1000, used_bytes=400)
        self.assertEqual(volume.free_bytes, 600)
        pool = Pool(source_vendor='vnx', id='p1', capacity_bytes=1000, free_bytes=100)
        self.assertEqual(pool.used_bytes, 900)

    def test_from_fields_keeps_raw(self):
        volume = Volume.from_fields({'id': 42, 'name': 'db', 'wwn': '600a'}, 'eseries')
        self.assertEqual(volume.id, '42')
        self.assertEqual(volume.source_vendor, 'eseries')
        self.assertEqual(volume.get_raw('wwn'), '600a')
        self.assertFalse(hasattr(volume, 'wwn'))

    def test_from_fields_id_falls_back_to_name(self):
        node = Node.from_fields({'name': 'node-01'}, 'netapp')
        self.assertEqual(node.id, 'node-01')

    def test_numeric_and_label_fields(self):
        volume = Volume(source_vendor='scaleio', id='v1', name='data', capacity_bytes=10,
                        thin_provisioned=True, status='online')
        self.assertEqual(volume.numeric_fields(), {'capacity_bytes': 10, 'thin_provisioned': 1})
        self.assertEqual(volume.label_fields(),
                         {'source_vendor': 'scaleio', 'id': 'v1', 'name': 'data', 'status': 'online'})

    def test_metric_identity_includes_metric_and_time(self):
        a = MetricSample(source_vendor='x', id='v1', metric='iops', value=1.0, timestamp_seconds=10)
        b = MetricSample(source_vendor='x', id='v1', metric='latency', value=1.0, timestamp_seconds=10)
        self.assertNotEqual(a.identity, b.identity)

    def test_measurement_names(self):
        self.assertEqual(MEASUREMENTS[Volume.record_kind], 'storage_volume')
        self.assertEqual(MEASUREMENTS[MetricSample.record_kind], 'storage_performance')


class TestPagedResult(unittest.TestCase):
    """Pages merge in order with duplicates dropped."""

    def test_duplicates_across_pages_dropped(self):
        result = PagedResult()
        added = result.extend([Volume('x', 'a'), Volume('x', 'b')])
        added += result.extend([Volume('x', 'b', name='again'), Volume('x', 'c')])
        self.assertEqual(added, 3)
        self.assertEqual([v.id for v in result], ['a', 'b', 'c'])
        self.assertEqual(result.records[1].name, '')

    def test_same_id_different_kind_kept(self):
        result = PagedResult([Volume('x', '1'), Pool('x', '1')])
        self.assertEqual(len(result), 2)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
