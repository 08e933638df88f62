"""
Writer factory for the storage collector.
"""

import logging
import os
from typing import Optional

from .base import NullWriter, Writer
from .influxdb_writer import InfluxDBWriter
from .prometheus_writer import PrometheusWriter
from .multi_writer import MultiWriter

# Initialize logger
LOG = logging.getLogger(__name__)


class WriterFactory:
    """
    Factory for creating writer instances based on configuration.
    """

    @staticmethod
    def _get_debug_output_dir() -> Optional[str]:
        """
        Debug output directory next to COLLECTOR_LOG_FILE.
        Returns None unless COLLECTOR_LOG_LEVEL is DEBUG and the directory is writable.
        """
        if os.getenv('COLLECTOR_LOG_LEVEL', '').upper() != 'DEBUG':
            return None

        collector_log_file = os.getenv('COLLECTOR_LOG_FILE', '')
        if not collector_log_file or collector_log_file == 'None':
            return None

        debug_dir = os.path.dirname(collector_log_file) or '.'
        if os.path.exists(debug_dir) and os.access(debug_dir, os.W_OK):
            return debug_dir

        LOG.warning(f"Debug output directory {debug_dir} not accessible")
        return None

    @staticmethod
    def _prometheus_writer(writer_config) -> PrometheusWriter:
        config = writer_config.prometheus_options()
        config['json_output_dir'] = WriterFactory._get_debug_output_dir()
        return PrometheusWriter(config)

    @staticmethod
    def _influxdb_writer(writer_config) -> InfluxDBWriter:
        LOG.info(f"Creating InfluxDB writer with URL: {writer_config.influxdb_url}, "
                 f"database: {writer_config.influxdb_database}")
        config = writer_config.influxdb_options()
        config['json_output_dir'] = WriterFactory._get_debug_output_dir()
        return InfluxDBWriter(config)

    @staticmethod
    def create_writer_from_config(writer_config) -> Writer:
        """
        Create a writer based on a WriterConfig object.

        Args:
            writer_config: WriterConfig instance with writer settings

        Returns:
            Appropriate Writer instance
        """
        output_choice = writer_config.output_format

        if output_choice == 'prometheus':
            LOG.info("Creating Prometheus writer")
            return WriterFactory._prometheus_writer(writer_config)

        elif output_choice == 'influxdb':
            return WriterFactory._influxdb_writer(writer_config)

        elif output_choice == 'both':
            writers = [WriterFactory._influxdb_writer(writer_config),
                       WriterFactory._prometheus_writer(writer_config)]
            return MultiWriter(writers)

        elif output_choice == 'none':
            LOG.info("Output disabled, records will be discarded")
            return NullWriter()

        else:
            LOG.error(f"Unknown output format: {output_choice}")
            raise ValueError(f"Unsupported output format: {output_choice}")
