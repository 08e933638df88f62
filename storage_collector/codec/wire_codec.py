"""Vendor-agnostic payload codec.

Turns XML (element or attribute encoded), JSON and CSV bodies into lists of
typed field dicts according to a ``RecordMapping``, and encodes request
bodies in the same shapes.
"""

import csv
import io
import json
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlencode

from ..core.errors import (
    FieldConversionError, MalformedRowError, MissingFieldError, PayloadParseError
)
from ..schema.base_model import CommonRecord
from .mapping import FieldMapping, RecordMapping

LOG = logging.getLogger(__name__)

Body = Union[bytes, str]


class ShapeTag(Enum):
    """Wire format of a request or response body."""
    XML = "xml"
    JSON = "json"
    CSV = "csv"
    FORM = "form"

    @property
    def content_type(self) -> str:
        return {
            ShapeTag.XML: 'text/xml; charset=utf-8',
            ShapeTag.JSON: 'application/json',
            ShapeTag.CSV: 'text/csv; charset=utf-8',
            ShapeTag.FORM: 'application/x-www-form-urlencoded',
        }[self]


class CsvDocument:
    """Parsed CSV payload: header plus raw data rows.

    ``row_numbers`` holds the 1-based position of each row among the lines
    after the header, blank lines included.
    """

    def __init__(self, header: List[str], rows: List[List[str]], row_numbers: Optional[List[int]] = None):
        self.header = header
        self.rows = rows
        self.row_numbers = row_numbers or list(range(1, len(rows) + 1))

    @property
    def column_index(self) -> Dict[str, int]:
        return {name: i for i, name in enumerate(self.header)}

    def as_dicts(self, skip_rows: int = 0) -> List[Dict[str, str]]:
        return [dict(zip(self.header, row)) for row in self.rows[skip_rows:]]


def _text(body: Body) -> str:
    if isinstance(body, bytes):
        # utf-8-sig drops the BOM some Windows-hosted management servers prepend
        return body.decode('utf-8-sig')
    return body


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for elem in root.iter():
        if isinstance(elem.tag, str) and '}' in elem.tag:
            elem.tag = elem.tag.split('}', 1)[1]
        for key in [k for k in elem.attrib if '}' in k]:
            elem.attrib[key.split('}', 1)[1]] = elem.attrib.pop(key)
    return root


class WireCodec:
    """Stateless codec; one instance can be shared across threads."""

    def parse_document(self, body: Body, shape: ShapeTag) -> Any:
        """Parse a payload into its natural Python form.

        Returns:
            XML: the root Element with namespaces stripped from tags.
            JSON: the decoded value.
            CSV: a CsvDocument.

        Raises:
            PayloadParseError: the body is not well-formed
        """
        try:
            if shape is ShapeTag.XML:
                return _strip_namespaces(ET.fromstring(_text(body)))
            if shape is ShapeTag.JSON:
                text = _text(body)
                return json.loads(text) if text.strip() else None
            if shape is ShapeTag.CSV:
                return self._parse_csv(_text(body))
        except (ET.ParseError, ValueError, csv.Error, UnicodeDecodeError) as e:
            raise PayloadParseError(f"invalid {shape.value} payload: {e}") from e
        raise PayloadParseError(f"cannot decode {shape.value} payloads")

    @staticmethod
    def _parse_csv(text: str) -> CsvDocument:
        header: Optional[List[str]] = None
        rows: List[List[str]] = []
        numbers: List[int] = []
        position = 0
        for row in csv.reader(io.StringIO(text)):
            blank = not any(cell.strip() for cell in row)
            if header is None:
                if not blank:
                    header = [name.strip() for name in row]
                continue
            position += 1
            if blank:
                continue
            rows.append([cell.strip() for cell in row])
            numbers.append(position)
        if header is None:
            return CsvDocument([], [])
        return CsvDocument(header, rows, numbers)

    def decode(self, body: Body, shape: ShapeTag, mapping: RecordMapping) -> List[Dict[str, Any]]:
        """Decode a payload into one dict of converted target fields per record."""
        return self.extract(self.parse_document(body, shape), shape, mapping)

    def decode_records(self, body: Body, shape: ShapeTag, mapping: RecordMapping,
                       vendor: str) -> List[CommonRecord]:
        return self.build_records(self.decode(body, shape, mapping), mapping, vendor)

    @staticmethod
    def build_records(rows: Sequence[Dict[str, Any]], mapping: RecordMapping,
                      vendor: str) -> List[CommonRecord]:
        return [mapping.record_type.from_fields(row, vendor) for row in rows]

    def extract(self, document: Any, shape: ShapeTag, mapping: RecordMapping) -> List[Dict[str, Any]]:
        """Apply a mapping to an already parsed document."""
        if shape is ShapeTag.XML:
            elements = document.findall(mapping.record_path) if mapping.record_path else [document]
            return [self._map_fields(mapping, lambda src, e=elem: self._xml_value(e, src))
                    for elem in elements]

        if shape is ShapeTag.JSON:
            items = self._json_records(document, mapping.record_path)
            return [self._map_fields(mapping, lambda src, item=item: self._json_value(item, src))
                    for item in items]

        if shape is ShapeTag.CSV:
            return self._csv_records(document, mapping)

        raise PayloadParseError(f"cannot decode {shape.value} payloads")

    def _map_fields(self, mapping: RecordMapping, lookup) -> Dict[str, Any]:
        record = {}
        for fm in mapping.fields:
            record[fm.target] = self._convert(fm, lookup(fm.source))
        return record

    @staticmethod
    def _convert(fm: FieldMapping, raw: Any) -> Any:
        if raw is None or (isinstance(raw, str) and raw.strip() == ''):
            if fm.required:
                raise MissingFieldError(fm.source)
            return fm.default
        if fm.convert is None:
            return raw
        try:
            return fm.convert(raw)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise FieldConversionError(fm.target, raw, str(e)) from e

    # XML

    @staticmethod
    def _xml_value(elem: ET.Element, source: str) -> Optional[str]:
        path, sep, attr = source.rpartition('@')
        if sep and (not path or path.endswith('/')):
            target = elem.find(path.rstrip('/')) if path else elem
            return None if target is None else target.get(attr)
        child = elem.find(source)
        if child is None or child.text is None:
            return None
        return child.text.strip()

    # JSON

    @staticmethod
    def _walk(value: Any, path: str) -> Any:
        for segment in [s for s in path.split('/') if s]:
            if isinstance(value, dict):
                value = value.get(segment)
            elif isinstance(value, list):
                try:
                    value = value[int(segment)]
                except (ValueError, IndexError):
                    return None
            else:
                return None
            if value is None:
                return None
        return value

    def _json_records(self, document: Any, record_path: Optional[str]) -> List[Any]:
        container = self._walk(document, record_path) if record_path else document
        if container is None:
            if record_path:
                raise MissingFieldError(record_path)
            return []
        if isinstance(container, list):
            return container
        return [container]

    def _json_value(self, item: Any, source: str) -> Any:
        return self._walk(item, source)

    # CSV

    def _csv_records(self, document: CsvDocument, mapping: RecordMapping) -> List[Dict[str, Any]]:
        # Column positions come from the header of every payload
        index = document.column_index
        width = len(document.header)
        records = []
        for position, (row, row_number) in enumerate(zip(document.rows, document.row_numbers)):
            if position < mapping.skip_rows:
                continue
            if len(row) != width:
                raise MalformedRowError(row_number, width, len(row))
            records.append(self._map_fields(
                mapping,
                lambda src, row=row: row[index[src]] if src in index else None))
        return records

    # Encoding

    def encode(self, fields: Any, shape: ShapeTag, root: Optional[str] = None) -> bytes:
        """Encode a request body.

        Args:
            fields: dict (list of dicts for CSV) describing the body. For XML,
                nested dicts become elements, ``@name`` keys become attributes
                and ``#text`` sets element text.
            shape: wire format
            root: XML root element name

        Returns:
            The encoded body
        """
        if shape is ShapeTag.JSON:
            return json.dumps(fields).encode('utf-8')
        if shape is ShapeTag.FORM:
            return urlencode(fields).encode('utf-8')
        if shape is ShapeTag.XML:
            if root is None and isinstance(fields, dict) and len(fields) == 1:
                root, fields = next(iter(fields.items()))
            element = ET.Element(root or 'request')
            self._build_xml(element, fields)
            return ET.tostring(element, encoding='utf-8', xml_declaration=True)
        if shape is ShapeTag.CSV:
            rows = [fields] if isinstance(fields, dict) else list(fields)
            out = io.StringIO()
            if rows:
                writer = csv.writer(out, lineterminator='\n')
                header = list(rows[0].keys())
                writer.writerow(header)
                for row in rows:
                    writer.writerow(['' if row.get(k) is None else row.get(k) for k in header])
            return out.getvalue().encode('utf-8')
        raise ValueError(f"cannot encode {shape.value} payloads")

    def _build_xml(self, element: ET.Element, value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                if key.startswith('@'):
                    element.set(key[1:], self._xml_scalar(child))
                elif key == '#text':
                    element.text = self._xml_scalar(child)
                elif isinstance(child, list):
                    for item in child:
                        self._build_xml(ET.SubElement(element, key), item)
                else:
                    self._build_xml(ET.SubElement(element, key), child)
        elif value is not None:
            element.text = self._xml_scalar(value)

    @staticmethod
    def _xml_scalar(value: Any) -> str:
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)
