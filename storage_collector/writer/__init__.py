"""Writers for collected storage records.

Provides writer implementations for different output formats.
"""

from .base import Measurements, NullWriter, Writer
from .factory import WriterFactory
from .influxdb_writer import InfluxDBWriter
from .prometheus_writer import PrometheusWriter
from .multi_writer import MultiWriter

__all__ = ['Measurements', 'NullWriter', 'Writer', 'WriterFactory', 'InfluxDBWriter',
           'PrometheusWriter', 'MultiWriter']
