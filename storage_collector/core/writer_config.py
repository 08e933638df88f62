"""Writer configuration abstraction.

Keeps sink settings out of the collection loop configuration.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

OUTPUT_FORMATS = ('influxdb', 'prometheus', 'both', 'none')


@dataclass
class WriterConfig:
    """Configuration specific to output writers."""

    output_format: str = 'prometheus'  # 'influxdb', 'prometheus', 'both', 'none'

    # InfluxDB (required when output_format includes influxdb)
    influxdb_url: Optional[str] = None
    influxdb_token: Optional[str] = None
    influxdb_database: Optional[str] = None

    # CA bundle for the InfluxDB connection
    tls_ca: Optional[str] = None

    # None disables the HTTP exporter
    prometheus_port: Optional[int] = 8000

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {self.output_format}")
        if self.uses_influxdb:
            for name in ('influxdb_url', 'influxdb_token', 'influxdb_database'):
                if not getattr(self, name):
                    raise ValueError(f"{name} required for InfluxDB output (output_format={self.output_format})")

    @property
    def uses_influxdb(self) -> bool:
        return self.output_format in ('influxdb', 'both')

    @property
    def uses_prometheus(self) -> bool:
        return self.output_format in ('prometheus', 'both')

    def influxdb_options(self) -> Dict[str, Any]:
        return {
            'influxdb_url': self.influxdb_url,
            'influxdb_token': self.influxdb_token,
            'influxdb_database': self.influxdb_database,
            'tls_ca': self.tls_ca,
        }

    def prometheus_options(self) -> Dict[str, Any]:
        return {'prometheus_port': self.prometheus_port}

    def to_dict(self) -> Dict[str, Any]:
        """Writer settings for the enabled outputs only; the token is redacted."""
        config: Dict[str, Any] = {'output_format': self.output_format}
        if self.uses_influxdb:
            config.update(self.influxdb_options())
            config['influxdb_token'] = '[REDACTED]'
        if self.uses_prometheus:
            config.update(self.prometheus_options())
        return config

    @classmethod
    def from_args(cls, args, settings=None) -> 'WriterConfig':
        """Create WriterConfig from command line arguments.

        Values missing on the command line fall back to the loaded
        ``Settings`` (config file and environment).

        Args:
            args: Parsed command line arguments
            settings: Optional Settings instance

        Returns:
            WriterConfig with writer-relevant settings
        """
        def pick(arg_name, settings_name, default=None):
            value = getattr(args, arg_name, None)
            if value is None and settings is not None:
                value = getattr(settings, settings_name, None)
            return default if value is None else value

        return cls(
            output_format=getattr(args, 'output', None) or 'prometheus',
            influxdb_url=pick('influxdbUrl', 'influxdb_url'),
            influxdb_token=pick('influxdbToken', 'influxdb_token'),
            influxdb_database=pick('influxdbDatabase', 'influxdb_database'),
            tls_ca=pick('tlsCa', 'tls_ca'),
            prometheus_port=pick('prometheus_port', 'prometheus_port', 8000),
        )
