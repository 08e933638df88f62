"""Unit and type converters applied to vendor fields at decode time.

Every converter takes the raw wire value (usually a string for XML and CSV,
anything for JSON) and returns a value in the canonical unit: bytes for
capacities, seconds for durations and timestamps. Converters raise
ValueError or TypeError on bad input; the codec turns those into
FieldConversionError with the field name attached.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

KIB = 1024
MIB = 1024 ** 2
GIB = 1024 ** 3
TIB = 1024 ** 4

_TRUE_STRINGS = {'true', 'yes', 'y', '1', 'on', 'enabled'}
_FALSE_STRINGS = {'false', 'no', 'n', '0', 'off', 'disabled'}


def _decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"boolean {value!r} is not a number")
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip().replace(',', '')
        if not text:
            raise ValueError("empty numeric value")
        try:
            return Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{value!r} is not a number") from None
    raise TypeError(f"unsupported numeric value type {type(value).__name__}")


def to_int(value: Any) -> int:
    """Integer from int, integral float or numeric string."""
    number = _decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"{value!r} is not an integer")
    return int(number)


def to_float(value: Any) -> float:
    return float(_decimal(value))


def to_str(value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise TypeError(f"expected a scalar, got {type(value).__name__}")
    return str(value).strip()


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"{value!r} is not a boolean")


def scaled_bytes(factor: int) -> Callable[[Any], int]:
    """Build a converter from a vendor capacity unit to bytes."""
    def convert(value: Any) -> int:
        return int(_decimal(value) * factor)
    convert.__name__ = f"to_bytes_x{factor}"
    return convert


bytes_to_bytes = scaled_bytes(1)
kib_to_bytes = scaled_bytes(KIB)
mib_to_bytes = scaled_bytes(MIB)
gib_to_bytes = scaled_bytes(GIB)
tib_to_bytes = scaled_bytes(TIB)


def scaled_rate(factor: int) -> Callable[[Any], float]:
    """Build a converter from a vendor throughput unit to bytes per second."""
    def convert(value: Any) -> float:
        return float(_decimal(value) * factor)
    convert.__name__ = f"to_bytes_per_second_x{factor}"
    return convert


kib_rate_to_bytes = scaled_rate(KIB)
mib_rate_to_bytes = scaled_rate(MIB)


def ms_to_seconds(value: Any) -> float:
    return float(_decimal(value) / 1000)


def us_to_seconds(value: Any) -> float:
    return float(_decimal(value) / 1000000)


def epoch_ms_to_seconds(value: Any) -> int:
    """Milliseconds since epoch to whole seconds since epoch."""
    return int(_decimal(value) / 1000)


def iso8601_to_epoch(value: Any) -> int:
    """ISO-8601 timestamp to seconds since epoch (naive timestamps are UTC)."""
    text = to_str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())
