"""Payload decoding and encoding."""

from .mapping import FieldMapping, RecordMapping
from .wire_codec import WireCodec, ShapeTag, CsvDocument

__all__ = ['FieldMapping', 'RecordMapping', 'WireCodec', 'ShapeTag', 'CsvDocument']
