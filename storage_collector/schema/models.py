from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Set, Tuple

from .base_model import CommonRecord


@dataclass
class Volume(CommonRecord):
    """A provisioned volume (LUN, filesystem volume, namespace).

    Capacities are in bytes. ``free_bytes`` is derived from capacity and
    used space when the vendor does not report it directly.
    """
    capacity_bytes: Optional[int] = None
    used_bytes: Optional[int] = None
    free_bytes: Optional[int] = None
    pool_id: Optional[str] = None
    status: Optional[str] = None
    thin_provisioned: Optional[bool] = None

    record_kind: ClassVar[str] = 'volume'

    def __post_init__(self):
        if self.free_bytes is None and self.capacity_bytes is not None and self.used_bytes is not None:
            self.free_bytes = max(self.capacity_bytes - self.used_bytes, 0)
        if self.used_bytes is None and self.capacity_bytes is not None and self.free_bytes is not None:
            self.used_bytes = max(self.capacity_bytes - self.free_bytes, 0)


@dataclass
class Pool(CommonRecord):
    """A storage pool, aggregate or RAID group. Capacities are in bytes."""
    capacity_bytes: Optional[int] = None
    used_bytes: Optional[int] = None
    free_bytes: Optional[int] = None
    raid_level: Optional[str] = None
    status: Optional[str] = None

    record_kind: ClassVar[str] = 'pool'

    def __post_init__(self):
        if self.free_bytes is None and self.capacity_bytes is not None and self.used_bytes is not None:
            self.free_bytes = max(self.capacity_bytes - self.used_bytes, 0)
        if self.used_bytes is None and self.capacity_bytes is not None and self.free_bytes is not None:
            self.used_bytes = max(self.capacity_bytes - self.free_bytes, 0)


@dataclass
class Node(CommonRecord):
    """A controller, filer node, data mover or cluster member."""
    model: Optional[str] = None
    serial_number: Optional[str] = None
    firmware_version: Optional[str] = None
    status: Optional[str] = None
    uptime_seconds: Optional[int] = None

    record_kind: ClassVar[str] = 'node'


@dataclass
class MetricSample(CommonRecord):
    """One performance measurement.

    ``id`` names the measured object (volume, node, pool); ``unit`` is
    explicit so consumers never have to guess what ``value`` means.
    """
    metric: str = ''
    value: Optional[float] = None
    unit: str = ''
    timestamp_seconds: Optional[int] = None
    object_type: Optional[str] = None

    record_kind: ClassVar[str] = 'metric'

    @property
    def identity(self) -> Tuple[Any, ...]:
        return (self.record_kind, self.source_vendor, self.id, self.metric, self.timestamp_seconds)


@dataclass
class PagedResult:
    """Records accumulated across the pages of one call.

    ``extend`` drops records whose identity was already seen, so the merged
    result holds every vendor item exactly once, in cursor order.
    """
    records: List[CommonRecord] = field(default_factory=list)
    cursor: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    _seen: Set[Tuple[Any, ...]] = field(default_factory=set, repr=False, compare=False)

    def __post_init__(self):
        existing, self.records = self.records, []
        self.extend(existing)

    def extend(self, records: Iterable[CommonRecord]) -> int:
        """Append unseen records; returns how many were added."""
        added = 0
        for record in records:
            key = record.identity
            if key in self._seen:
                continue
            self._seen.add(key)
            self.records.append(record)
            added += 1
        return added

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


# Measurement name for each record kind, used by writers and the collector
MEASUREMENTS = {
    'volume': 'storage_volume',
    'pool': 'storage_pool',
    'node': 'storage_node',
    'metric': 'storage_performance',
}
