"""
Prometheus exporter writer for the storage collector.
Generates one gauge per record kind and numeric field.
"""

import logging
import os
import re
import threading
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

from prometheus_client import Gauge, CollectorRegistry, start_http_server, generate_latest

from .base import Measurements, Writer
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample

# Initialize logger
LOG = logging.getLogger(__name__)

RECORD_LABELS = ('source_vendor', 'id', 'name')
SAMPLE_LABELS = ('source_vendor', 'id', 'name', 'object_type', 'unit')

# Help text suffix per record field, keyed on the canonical unit in the field name
_UNIT_SUFFIXES = (
    ('_bytes', ' in bytes'),
    ('_seconds', ' in seconds'),
)


class PrometheusWriter(Writer):
    """
    Prometheus writer that exposes common records as gauges.

    Capacity and status records become ``storage_<kind>_<field>`` gauges
    labelled by vendor, id and name. Performance samples become
    ``storage_performance_<metric>`` gauges with the unit as a label.
    Objects missing from a later write of the same measurement stop being
    exported.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize Prometheus Writer.

        Args:
            config: Optional configuration dictionary. ``prometheus_port``
                None means no HTTP exporter is started (the registry can
                still be rendered with ``render()``).
        """
        config = config or {}

        # Configuration with defaults
        self.port = config.get('prometheus_port', 8000)

        # Debug output configuration - factory provides directory or None
        self.debug_output_dir = config.get('json_output_dir')
        self.enable_debug_output = self.debug_output_dir is not None

        if self.enable_debug_output:
            LOG.info(f"Prometheus debug file output enabled -> {self.debug_output_dir}")

        # Create separate registry for this writer
        self.prometheus_registry = CollectorRegistry()

        # Metrics created on demand, and the measurement each belongs to
        self.dynamic_metrics: Dict[str, Gauge] = {}
        self.metric_measurements: Dict[str, str] = {}

        # Server management
        self.server_lock = threading.Lock()
        self.server_started = False

        LOG.info("PrometheusWriter initialized")

    def _sanitize_label_value(self, value: Any) -> str:
        """Sanitize label values to avoid Prometheus metric issues."""
        if value is None:
            return 'unknown'

        value_str = str(value).strip()
        if not value_str:
            return 'unknown'

        sanitized = value_str.replace('\n', '_').replace('\r', '_').replace('"', '_')
        return sanitized or 'unknown'

    @staticmethod
    def _sanitize_metric_name(*parts: str) -> str:
        """Create a valid Prometheus metric name from name parts."""
        name = '_'.join(p for p in parts if p)
        name = re.sub(r'(?<=[a-z0-9])([A-Z])', r'_\1', name).lower()
        name = re.sub(r'[^a-z0-9_]', '_', name)
        name = re.sub(r'_{2,}', '_', name).strip('_')

        # Ensure it starts with a letter
        if not name or name[0].isdigit():
            name = f"metric_{name}"
        return name

    @staticmethod
    def _help_text(measurement: str, field_name: str) -> str:
        field_title = field_name.replace('_', ' ').strip()
        for suffix, unit_text in _UNIT_SUFFIXES:
            if field_name.endswith(suffix):
                return f"{measurement} {field_title}{unit_text}"
        return f"{measurement} {field_title}"

    def _get_or_create_metric(self, measurement: str, metric_name: str, help_text: str,
                              label_names: Tuple[str, ...]) -> Gauge:
        """Get or create a gauge."""
        metric = self.dynamic_metrics.get(metric_name)
        if metric is None:
            metric = Gauge(metric_name, help_text, list(label_names), registry=self.prometheus_registry)
            self.dynamic_metrics[metric_name] = metric
            self.metric_measurements[metric_name] = measurement
            LOG.debug(f"Created new metric: {metric_name} with labels: {list(label_names)}")
        return metric

    def _export_record(self, measurement: str, record: CommonRecord) -> int:
        if isinstance(record, MetricSample):
            if record.value is None or record.value != record.value:  # NaN check
                return 0
            metric_name = self._sanitize_metric_name(measurement, record.metric)
            help_text = f"{measurement} {record.metric} ({record.unit or 'unitless'})"
            labels = {label: self._sanitize_label_value(getattr(record, label)) for label in SAMPLE_LABELS}
            metric = self._get_or_create_metric(measurement, metric_name, help_text, SAMPLE_LABELS)
            metric.labels(**labels).set(record.value)
            return 1

        labels = {label: self._sanitize_label_value(getattr(record, label)) for label in RECORD_LABELS}
        created = 0
        for field_name, value in record.numeric_fields().items():
            if isinstance(value, float) and value != value:
                continue
            metric_name = self._sanitize_metric_name(measurement, field_name)
            metric = self._get_or_create_metric(measurement, metric_name,
                                                self._help_text(measurement, field_name), RECORD_LABELS)
            metric.labels(**labels).set(float(value))
            created += 1
        return created

    def _start_prometheus_server(self):
        """Start the Prometheus HTTP server if not already started."""
        with self.server_lock:
            if not self.server_started:
                try:
                    start_http_server(self.port, registry=self.prometheus_registry)
                    self.server_started = True
                    LOG.info(f"Prometheus metrics server started on port {self.port}")
                except OSError as e:
                    LOG.error(f"Failed to start Prometheus server on port {self.port}: {e}")
                    raise

    def write(self, data: Measurements, loop_iteration: int = 1) -> bool:
        """
        Write records to Prometheus gauges.

        Args:
            data: Records keyed by measurement name
            loop_iteration: Current iteration number for debug file naming

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            # Start the metrics server if not already started
            if self.port is not None and not self.server_started:
                self._start_prometheus_server()

            LOG.info(f"PrometheusWriter processing {len(data)} measurement types")

            # Each write replaces the label sets of the measurements it carries
            cleared = 0
            for metric_name, metric in self.dynamic_metrics.items():
                if self.metric_measurements.get(metric_name) in data:
                    metric.clear()
                    cleared += 1
            if cleared:
                LOG.debug(f"Cleared {cleared} gauges before update")

            values_set = 0
            for measurement, records in data.items():
                LOG.debug(f"Processing {measurement}: {len(records)} items")
                for record in records:
                    values_set += self._export_record(measurement, record)

            if self.enable_debug_output:
                self._write_debug_metrics_output(loop_iteration)

            LOG.info(f"Set {values_set} values across {len(self.dynamic_metrics)} unique metrics")
            return True

        except (OSError, ValueError) as e:
            LOG.error(f"Error writing to Prometheus: {e}", exc_info=True)
            return False

    def render(self) -> str:
        """Current registry in the Prometheus text exposition format."""
        return generate_latest(self.prometheus_registry).decode('utf-8')

    def sample_value(self, metric_name: str, labels: Dict[str, str]) -> Optional[float]:
        """Read back one gauge value; None if it was never set."""
        return self.prometheus_registry.get_sample_value(metric_name, labels)

    def _write_debug_metrics_output(self, loop_iteration: int = 1):
        """
        Write generated Prometheus metrics to text file for debugging/validation.
        Only enabled when COLLECTOR_LOG_LEVEL=DEBUG.
        """
        try:
            os.makedirs(self.debug_output_dir, exist_ok=True)

            # Use iteration-based filename to preserve the first iteration
            if loop_iteration == 1:
                filename = "iteration_1_prometheus_metrics_final.txt"
            else:
                filename = "prometheus_metrics_final.txt"
            filepath = os.path.join(self.debug_output_dir, filename)

            with open(filepath, 'w', encoding='utf-8') as f:
                f.write("# Prometheus Metrics Export\n")
                f.write(f"# Generated: {datetime.now().isoformat()}\n")
                f.write(f"# Total unique metrics: {len(self.dynamic_metrics)}\n")
                f.write("\n")
                f.write(self.render())

            LOG.info(f"Prometheus metrics debug output saved to: {filepath} ({len(self.dynamic_metrics)} unique metrics)")

        except OSError as e:
            LOG.error(f"Failed to write Prometheus debug metrics output: {e}")

    def close(self, timeout_seconds: int = 90, force_exit_on_timeout: bool = False) -> None:
        """Close the writer. The exporter thread is a daemon and exits with the process."""
        LOG.info("PrometheusWriter closed")

    def metric_names(self) -> List[str]:
        return sorted(self.dynamic_metrics)
