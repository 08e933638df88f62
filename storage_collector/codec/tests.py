"""
Tests for the wire codec.
"""
import logging
import unittest
import xml.etree.ElementTree as ET

from .mapping import FieldMapping, RecordMapping
from .wire_codec import CsvDocument, ShapeTag, WireCodec
from ..core.errors import (
    FieldConversionError, MalformedRowError, MissingFieldError, PayloadParseError
)
from ..schema.models import Node, Pool, Volume
from ..schema.units import gib_to_bytes, kib_to_bytes, mib_to_bytes, to_bool, to_int, to_str


class TestCsvDecoding(unittest.TestCase):
    """CSV payloads: header driven, optional type row."""

    def setUp(self):
        self.codec = WireCodec()
        self.mapping = RecordMapping(
            record_type=Pool,
            fields=(
                FieldMapping('name', 'name', to_str, required=True),
                FieldMapping('capacity_bytes', 'capacity_gb', gib_to_bytes),
            ),
        )

    def test_capacity_in_gb_becomes_bytes(self):
        pools = self.codec.decode_records(b"name,capacity_gb\npool1,100\n", ShapeTag.CSV, self.mapping, 'test')
        self.assertEqual(len(pools), 1)
        self.assertEqual(pools[0].name, 'pool1')
        self.assertEqual(pools[0].id, 'pool1')
        self.assertEqual(pools[0].capacity_bytes, 100 * 1024 ** 3)
        self.assertEqual(pools[0].source_vendor, 'test')

    def test_columns_located_by_header(self):
        rows = self.codec.decode(b"capacity_gb,name\n2,pool2\n", ShapeTag.CSV, self.mapping)
        self.assertEqual(rows, [{'name': 'pool2', 'capacity_bytes': 2 * 1024 ** 3}])

    def test_type_row_skipped(self):
        mapping = RecordMapping(Pool, self.mapping.fields, skip_rows=1)
        rows = self.codec.decode(b"name,capacity_gb\nstring,ulong\npool1,1\n", ShapeTag.CSV, mapping)
        self.assertEqual([r['name'] for r in rows], ['pool1'])

    def test_short_row_is_malformed(self):
        with self.assertRaises(MalformedRowError) as ctx:
            self.codec.decode(b"name,capacity_gb\npool1,1\npool2,2,extra\n", ShapeTag.CSV, self.mapping)
        self.assertEqual(ctx.exception.row_index, 2)
        self.assertEqual(ctx.exception.expected, 2)
        self.assertEqual(ctx.exception.found, 3)

    def test_blank_lines_keep_row_numbers(self):
        with self.assertRaises(MalformedRowError) as ctx:
            self.codec.decode(b"name,capacity_gb\npool1,1\n\npool2,2,extra\n", ShapeTag.CSV, self.mapping)
        self.assertEqual(ctx.exception.row_index, 3)

    def test_type_row_skipped_after_blank_line(self):
        mapping = RecordMapping(Pool, self.mapping.fields, skip_rows=1)
        body = b"\nname,capacity_gb\n\nstring,ulong\npool1,1\n"
        rows = self.codec.decode(body, ShapeTag.CSV, mapping)
        self.assertEqual(rows, [{'name': 'pool1', 'capacity_bytes': 1024 ** 3}])

    def test_byte_order_mark_ignored(self):
        rows = self.codec.decode(b"\xef\xbb\xbfname,capacity_gb\npool1,1\n", ShapeTag.CSV, self.mapping)
        self.assertEqual(rows[0]['name'], 'pool1')

    def test_empty_payload(self):
        document = self.codec.parse_document(b"", ShapeTag.CSV)
        self.assertIsInstance(document, CsvDocument)
        self.assertEqual(self.codec.extract(document, ShapeTag.CSV, self.mapping), [])


class TestJsonDecoding(unittest.TestCase):
    """JSON payloads: key paths, list indexes, required fields."""

    def setUp(self):
        self.codec = WireCodec()

    def test_kib_capacity(self):
        mapping = RecordMapping(Pool, (
            FieldMapping('id', 'id', to_str, required=True),
            FieldMapping('free_bytes', 'freeSpace', kib_to_bytes),
        ))
        pools = self.codec.decode_records(b'[{"id": "p1", "freeSpace": 2048}]', ShapeTag.JSON, mapping, 'test')
        self.assertEqual(pools[0].free_bytes, 2097152)

    def test_nested_path_and_record_path(self):
        mapping = RecordMapping(Node, (
            FieldMapping('id', 'nodeID', to_str, required=True),
            FieldMapping('model', 'platformInfo/nodeType', to_str),
            FieldMapping('firmware_version', 'versions/0', to_str),
        ), record_path='result/nodes')
        body = b'{"result": {"nodes": [{"nodeID": 4, "platformInfo": {"nodeType": "SF4805"}, "versions": ["12.3"]}]}}'
        rows = self.codec.decode(body, ShapeTag.JSON, mapping)
        self.assertEqual(rows, [{'id': '4', 'model': 'SF4805', 'firmware_version': '12.3'}])

    def test_missing_required_field(self):
        mapping = RecordMapping(Volume, (FieldMapping('id', 'volumeId', to_str, required=True),))
        with self.assertRaises(MissingFieldError) as ctx:
            self.codec.decode(b'[{"name": "x"}]', ShapeTag.JSON, mapping)
        self.assertEqual(ctx.exception.field, 'volumeId')

    def test_missing_record_path(self):
        mapping = RecordMapping(Volume, (FieldMapping('id', 'id', to_str),), record_path='result/volumes')
        with self.assertRaises(MissingFieldError):
            self.codec.decode(b'{"result": {}}', ShapeTag.JSON, mapping)

    def test_optional_field_default(self):
        mapping = RecordMapping(Volume, (
            FieldMapping('id', 'id', to_str),
            FieldMapping('status', 'status', to_str, default='unknown'),
        ))
        rows = self.codec.decode(b'[{"id": 1, "status": ""}, {"id": 2}]', ShapeTag.JSON, mapping)
        self.assertEqual([r['status'] for r in rows], ['unknown', 'unknown'])

    def test_conversion_error_names_field(self):
        mapping = RecordMapping(Volume, (FieldMapping('capacity_bytes', 'size', to_int),))
        with self.assertRaises(FieldConversionError) as ctx:
            self.codec.decode(b'[{"size": "lots"}]', ShapeTag.JSON, mapping)
        self.assertEqual(ctx.exception.field, 'capacity_bytes')
        self.assertEqual(ctx.exception.value, 'lots')

    def test_invalid_json(self):
        with self.assertRaises(PayloadParseError):
            self.codec.parse_document(b'{"broken": ', ShapeTag.JSON)


class TestXmlDecoding(unittest.TestCase):
    """XML payloads, attribute and element encoded."""

    def setUp(self):
        self.codec = WireCodec()

    def test_attribute_encoded_records(self):
        body = (b'<ResponsePacket xmlns="urn:example"><Response>'
                b'<Volume volume="101" name="fs1" size="10" virtualProvisioning="true"/>'
                b'<Volume volume="102" name="fs2" size="20" virtualProvisioning="false"/>'
                b'</Response></ResponsePacket>')
        mapping = RecordMapping(Volume, (
            FieldMapping('id', '@volume', to_str, required=True),
            FieldMapping('name', '@name', to_str),
            FieldMapping('capacity_bytes', '@size', mib_to_bytes),
            FieldMapping('thin_provisioned', '@virtualProvisioning', to_bool),
        ), record_path='Response/Volume')
        volumes = self.codec.decode_records(body, ShapeTag.XML, mapping, 'vnx')
        self.assertEqual([v.id for v in volumes], ['101', '102'])
        self.assertEqual(volumes[0].capacity_bytes, 10 * 1024 ** 2)
        self.assertTrue(volumes[0].thin_provisioned)
        self.assertFalse(volumes[1].thin_provisioned)

    def test_element_encoded_records(self):
        body = (b'<netapp><results status="passed"><attributes-list>'
                b'<volume-attributes><volume-id-attributes><name>vol0</name></volume-id-attributes>'
                b'<volume-space-attributes><size-total>4096</size-total></volume-space-attributes>'
                b'</volume-attributes></attributes-list></results></netapp>')
        mapping = RecordMapping(Volume, (
            FieldMapping('name', 'volume-id-attributes/name', to_str, required=True),
            FieldMapping('capacity_bytes', 'volume-space-attributes/size-total', to_int),
        ), record_path='results/attributes-list/volume-attributes')
        rows = self.codec.decode(body, ShapeTag.XML, mapping)
        self.assertEqual(rows, [{'name': 'vol0', 'capacity_bytes': 4096}])

    def test_nested_attribute(self):
        body = b'<root><item><status state="online"/></item></root>'
        mapping = RecordMapping(Volume, (FieldMapping('status', 'status/@state', to_str),), record_path='item')
        self.assertEqual(self.codec.decode(body, ShapeTag.XML, mapping), [{'status': 'online'}])

    def test_malformed_xml(self):
        with self.assertRaises(PayloadParseError):
            self.codec.parse_document(b'<root><unclosed></root>', ShapeTag.XML)


class TestEncoding(unittest.TestCase):
    """Request body encoding."""

    def setUp(self):
        self.codec = WireCodec()

    def test_xml_request_packet(self):
        body = self.codec.encode({
            'RequestPacket': {'@xmlns': 'urn:example', 'Request': {'Query': {'VolumeQueryParams': {}}}}
        }, ShapeTag.XML)
        root = self.codec.parse_document(body, ShapeTag.XML)
        self.assertEqual(root.tag, 'RequestPacket')
        self.assertIsNotNone(root.find('Request/Query/VolumeQueryParams'))

    def test_xml_text_and_lists(self):
        body = self.codec.encode({'call': {'item': [{'#text': 'a'}, {'#text': 'b'}], 'flag': True}},
                                 ShapeTag.XML)
        root = ET.fromstring(body)
        self.assertEqual([e.text for e in root.findall('item')], ['a', 'b'])
        self.assertEqual(root.findtext('flag'), 'true')

    def test_json_and_form(self):
        self.assertEqual(self.codec.encode({'a': 1}, ShapeTag.JSON), b'{"a": 1}')
        self.assertEqual(self.codec.encode({'user': 'x', 'password': 'y z'}, ShapeTag.FORM),
                         b'user=x&password=y+z')

    def test_csv(self):
        body = self.codec.encode([{'name': 'p1', 'size': 1}, {'name': 'p2', 'size': None}], ShapeTag.CSV)
        self.assertEqual(body, b'name,size\np1,1\np2,\n')


def source_record(mapping, row):
    """Rebuild a vendor record keyed by the mapping's source paths."""
    record = {}
    for fm in mapping.fields:
        if row[fm.target] is None:
            continue
        *parents, leaf = fm.source.split('/')
        node = record
        for parent in parents:
            node = node.setdefault(parent, {})
        node[leaf] = row[fm.target]
    return record


class TestRoundTrip(unittest.TestCase):
    """Decode, encode back under the source names, decode again."""

    def setUp(self):
        self.codec = WireCodec()

    def assertRoundTrips(self, rows, encoded, shape, mapping):
        self.assertTrue(rows)
        self.assertEqual(self.codec.decode(encoded, shape, mapping), rows)

    def test_xml_attributes(self):
        mapping = RecordMapping(Volume, (
            FieldMapping('id', '@volume', to_str, required=True),
            FieldMapping('name', '@name', to_str),
            FieldMapping('capacity_bytes', '@size', to_int),
            FieldMapping('thin_provisioned', '@virtualProvisioning', to_bool),
            FieldMapping('status', 'state/@name', to_str),
        ), record_path='Response/Volume')
        body = (b'<ResponsePacket><Response>'
                b'<Volume volume="101" name="fs1" size="10" virtualProvisioning="true"><state name="ok"/></Volume>'
                b'<Volume volume="102" name="fs2" size="20" virtualProvisioning="false"/>'
                b'</Response></ResponsePacket>')
        rows = self.codec.decode(body, ShapeTag.XML, mapping)
        encoded = self.codec.encode({'ResponsePacket': {'Response': {
            'Volume': [source_record(mapping, row) for row in rows]}}}, ShapeTag.XML)
        self.assertRoundTrips(rows, encoded, ShapeTag.XML, mapping)
        self.assertEqual(rows[0]['status'], 'ok')

    def test_xml_elements(self):
        mapping = RecordMapping(Volume, (
            FieldMapping('id', 'volume-id-attributes/uuid', to_str),
            FieldMapping('name', 'volume-id-attributes/name', to_str, required=True),
            FieldMapping('capacity_bytes', 'volume-space-attributes/size-total', to_int),
            FieldMapping('thin_provisioned', 'volume-space-attributes/is-thin', to_bool),
        ), record_path='results/attributes-list/volume-attributes')
        body = (b'<netapp><results status="passed"><attributes-list>'
                b'<volume-attributes><volume-id-attributes><name>vol0</name><uuid>u-0</uuid>'
                b'</volume-id-attributes><volume-space-attributes><size-total>4096</size-total>'
                b'<is-thin>true</is-thin></volume-space-attributes></volume-attributes>'
                b'<volume-attributes><volume-id-attributes><name>vol1</name></volume-id-attributes>'
                b'</volume-attributes></attributes-list></results></netapp>')
        rows = self.codec.decode(body, ShapeTag.XML, mapping)
        encoded = self.codec.encode({'netapp': {'results': {'@status': 'passed', 'attributes-list': {
            'volume-attributes': [source_record(mapping, row) for row in rows]}}}}, ShapeTag.XML)
        self.assertRoundTrips(rows, encoded, ShapeTag.XML, mapping)

    def test_json(self):
        mapping = RecordMapping(Node, (
            FieldMapping('id', 'nodeID', to_str, required=True),
            FieldMapping('name', 'name', to_str),
            FieldMapping('model', 'platformInfo/nodeType', to_str),
            FieldMapping('uptime_seconds', 'uptime', to_int),
        ), record_path='result/nodes')
        body = (b'{"result": {"nodes": [{"nodeID": 4, "name": "sf-4", "platformInfo": {"nodeType": "SF4805"},'
                b' "uptime": 86400, "ignored": true}, {"nodeID": 5, "name": "sf-5"}]}}')
        rows = self.codec.decode(body, ShapeTag.JSON, mapping)
        encoded = self.codec.encode({'result': {'nodes': [source_record(mapping, row) for row in rows]}},
                                    ShapeTag.JSON)
        self.assertRoundTrips(rows, encoded, ShapeTag.JSON, mapping)

    def test_csv(self):
        mapping = RecordMapping(Pool, (
            FieldMapping('id', 'POOL_ID', to_str, required=True),
            FieldMapping('name', 'POOL_NAME', to_str),
            FieldMapping('raid_level', 'RAID_LEVEL', to_str),
            FieldMapping('capacity_bytes', 'TOTAL_CAPACITY', to_int),
        ))
        body = b"POOL_ID,POOL_NAME,RAID_LEVEL,TOTAL_CAPACITY\n0,pool-a,RAID6,1024\n1,pool-b,,2048\n"
        rows = self.codec.decode(body, ShapeTag.CSV, mapping)
        encoded = self.codec.encode([{fm.source: row[fm.target] for fm in mapping.fields} for row in rows],
                                    ShapeTag.CSV)
        self.assertRoundTrips(rows, encoded, ShapeTag.CSV, mapping)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
