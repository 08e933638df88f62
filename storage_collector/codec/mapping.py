"""Declarative field mapping tables.

A ``RecordMapping`` tells the codec where records live in a payload and how
each vendor field becomes a typed field of a common record. Adapters declare
these as module-level data; the codec itself knows nothing about vendors.

Source path syntax:
    XML   ``a/b/c`` is the text of a nested element, ``a/@name`` (or just
          ``@name``) is an attribute of the element at ``a``.
    JSON  ``a/b/0/c`` walks object keys; integer segments index lists.
    CSV   the header column name.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple, Type

from ..schema.base_model import CommonRecord


@dataclass(frozen=True)
class FieldMapping:
    """One vendor field -> one common-record field."""
    target: str
    source: str
    convert: Optional[Callable[[Any], Any]] = None
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class RecordMapping:
    """How to locate records in a payload and map their fields.

    Attributes:
        record_type: CommonRecord subclass built from each decoded record
        fields: Field mappings applied to every record
        record_path: Where the records are. XML: an ElementTree path relative
            to the document root. JSON: a ``/`` separated key path to a list
            (or single object). Unused for CSV.
        skip_rows: CSV only, rows after the header that carry no data
            (some vendors emit a column type row)
    """
    record_type: Type[CommonRecord]
    fields: Tuple[FieldMapping, ...]
    record_path: Optional[str] = None
    skip_rows: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'fields', tuple(self.fields))

    @property
    def required_sources(self) -> Sequence[str]:
        return [f.source for f in self.fields if f.required]

    def with_path(self, record_path: Optional[str]) -> 'RecordMapping':
        """Same fields, different record location."""
        return RecordMapping(self.record_type, self.fields, record_path, self.skip_rows)
