from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Tuple, Type, TypeVar

T = TypeVar('T', bound='CommonRecord')


@dataclass
class CommonRecord:
    """
    Base class for all vendor-neutral records.

    Every record remembers which vendor produced it and keeps the decoded
    vendor fields in ``raw`` so a value can always be traced back to the
    payload it came from.
    """
    source_vendor: str
    id: str
    name: str = ''
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    record_kind: ClassVar[str] = 'record'

    @property
    def identity(self) -> Tuple[Any, ...]:
        """Key used to de-duplicate records across pages."""
        return (self.record_kind, self.source_vendor, self.id)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_fields(cls: Type[T], values: Dict[str, Any], vendor: str) -> T:
        """Create an instance from decoded target fields.

        Keys that are not dataclass fields are kept in ``raw`` only.
        """
        known = set(cls.field_names()) - {'raw', 'source_vendor'}
        kwargs = {k: v for k, v in values.items() if k in known and v is not None}
        if 'id' in kwargs:
            kwargs['id'] = str(kwargs['id'])
        elif 'name' in kwargs:
            # Some vendors only expose a name; it is unique per system
            kwargs['id'] = str(kwargs['name'])
        else:
            kwargs['id'] = ''
        return cls(source_vendor=vendor, raw=dict(values), **kwargs)

    def numeric_fields(self) -> Dict[str, float]:
        """Numeric, non-identity fields; what writers export as values."""
        result = {}
        for f in fields(self):
            if f.name in ('raw', 'id', 'source_vendor', 'name'):
                continue
            value = getattr(self, f.name)
            if isinstance(value, bool):
                result[f.name] = int(value)
            elif isinstance(value, (int, float)):
                result[f.name] = value
        return result

    def label_fields(self) -> Dict[str, str]:
        """String fields usable as tags/labels."""
        labels = {'source_vendor': self.source_vendor, 'id': self.id, 'name': self.name or ''}
        for f in fields(self):
            if f.name in labels or f.name == 'raw':
                continue
            value = getattr(self, f.name)
            if isinstance(value, str):
                labels[f.name] = value
        return labels

    def get_raw(self, key: str, default: Any = None) -> Any:
        """Access any field from the raw data"""
        return self.raw.get(key, default)
