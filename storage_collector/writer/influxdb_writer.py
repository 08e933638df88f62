"""
InfluxDB 3.x writer for the storage collector.

Each common record becomes one point: the measurement is the record's
measurement name, identity and string fields become tags, numeric fields
become fields, and timestamps are written with second precision.
"""

import json
import logging
import os
import threading
import time
from dataclasses import asdict
from typing import Dict, Any, List, Optional

import requests
from influxdb_client_3 import InfluxDBClient3, Point, WritePrecision, WriteOptions, write_client_options
from influxdb_client_3.exceptions.exceptions import InfluxDBError

from .base import Measurements, Writer
from ..schema.base_model import CommonRecord
from ..schema.models import MetricSample

# Initialize logger
LOG = logging.getLogger(__name__)


class BatchingCallback(object):
    """
    Callback handler for batched InfluxDB writes.

    Tracks write success/failure statistics and provides timing information
    for performance monitoring and debugging.
    """

    def __init__(self):
        self.write_status_msg = None
        self.write_count = 0
        self.error_count = 0
        self.retry_count = 0
        self.start = time.time_ns()

    def success(self, conf, data: str):
        """Called when a batch write succeeds."""
        self.write_count += 1
        self.write_status_msg = f"SUCCESS: {self.write_count} batches written"
        LOG.debug(f"Batch write successful: {len(data)} bytes")

    def error(self, conf, data: str, exception: InfluxDBError):
        """Called when a batch write fails permanently."""
        self.error_count += 1
        self.write_status_msg = f"FAILURE: {exception}"
        LOG.error(f"Batch write failed: {len(data)} bytes, error: {exception}")

    def retry(self, conf, data: str, exception: InfluxDBError):
        """Called when a batch write fails but will be retried."""
        self.retry_count += 1
        LOG.warning(f"Batch write retry {self.retry_count}: {len(data)} bytes, error: {exception}")

    def elapsed_ms(self) -> int:
        """Get elapsed time in milliseconds."""
        return (time.time_ns() - self.start) // 1_000_000

    def get_stats(self) -> Dict[str, Any]:
        """Get write statistics."""
        return {
            'writes': self.write_count,
            'errors': self.error_count,
            'retries': self.retry_count,
            'elapsed_ms': self.elapsed_ms(),
            'status': self.write_status_msg
        }


class InfluxDBWriter(Writer):
    """
    Writer implementation for InfluxDB 3.x.

    Handles:
    - Second-level timestamp precision
    - Tags for record identity (vendor, id, name) and string attributes
    - Numeric record fields (bools as 0/1) as InfluxDB fields
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize InfluxDB writer with configuration.

        Args:
            config: ``influxdb_url``, ``influxdb_token``, ``influxdb_database``,
                optional ``tls_ca`` and ``json_output_dir``. A ready-made
                ``client`` may be passed instead of connection settings.
        """
        self.url = config.get('influxdb_url') or os.getenv('INFLUXDB_URL', 'https://influxdb:8181')
        self.token = config.get('influxdb_token') or os.getenv('INFLUXDB_TOKEN', '')
        self.database = config.get('influxdb_database') or os.getenv('INFLUXDB_DATABASE', 'storage')
        self.tls_ca = config.get('tls_ca', None)

        self.batch_size = config.get('batch_size', 500)
        self.flush_interval = config.get('flush_interval_ms', 60_000)  # matches default collection interval

        self.batch_callback = BatchingCallback()

        # Enable debug file output based on factory-provided directory
        self.debug_output_dir = config.get('json_output_dir')
        self.enable_debug_output = self.debug_output_dir is not None

        self.client = config.get('client')
        if self.client is None:
            self._initialize_client()
        else:
            LOG.debug("Using injected InfluxDB client")

        LOG.info(f"InfluxDBWriter initialized: {self.url} -> {self.database}")

    def _ca_cert_path(self) -> Optional[str]:
        ca_cert_path = self.tls_ca or os.getenv('INFLUXDB3_TLS_CA')
        if ca_cert_path and not os.path.exists(ca_cert_path):
            LOG.warning(f"CA certificate path specified but file not found: {ca_cert_path}")
            return None
        return ca_cert_path

    def _initialize_client(self):
        """Initialize the InfluxDB client with strict TLS validation."""
        write_options = WriteOptions(
            batch_size=self.batch_size,
            flush_interval=self.flush_interval,
            jitter_interval=2_000,       # 2 seconds
            retry_interval=5_000,        # 5 seconds
            max_retries=2,
            max_retry_delay=15_000,      # 15 seconds
            max_close_wait=60_000,       # 60 seconds
            exponential_base=2
        )

        wco = write_client_options(
            success_callback=self.batch_callback.success,
            error_callback=self.batch_callback.error,
            retry_callback=self.batch_callback.retry,
            write_options=write_options
        )

        client_kwargs = {
            'host': self.url,
            'database': self.database,
            'token': self.token,
            'enable_gzip': True,
            'write_client_options': wco,
            'verify_ssl': True,
            'timeout': 60000  # milliseconds
        }

        ca_cert_path = self._ca_cert_path()
        if ca_cert_path:
            LOG.info(f"Using custom CA certificate: {ca_cert_path}")
            client_kwargs['ssl_ca_cert'] = ca_cert_path
        else:
            LOG.warning("No TLS CA certificate specified - falling back to system truststore. "
                        "If InfluxDB uses a self-signed certificate, this connection will fail.")

        self.client = InfluxDBClient3(**client_kwargs)
        LOG.info(f"InfluxDB client created with strict TLS validation to {self.url}")
        self._ensure_database_exists()

    def _ensure_database_exists(self):
        """Ensure the target database exists, creating it if necessary."""
        headers = {
            'Authorization': f'Bearer {self.token}',
            'Accept': 'application/json'
        }
        verify_tls = self._ca_cert_path() or True

        try:
            response = requests.get(f"{self.url}/api/v3/configure/database?format=json",
                                    headers=headers, timeout=10, verify=verify_tls)
            if response.status_code != 200:
                LOG.warning(f"Failed to check database existence: HTTP {response.status_code}")
                return

            databases_data = response.json()
            if isinstance(databases_data, list) and databases_data and isinstance(databases_data[0], dict):
                databases = [db.get("iox::database") for db in databases_data]
            elif isinstance(databases_data, dict):
                databases = databases_data.get('databases', [])
            else:
                databases = databases_data or []

            if self.database in databases:
                LOG.info(f"Database '{self.database}' already exists")
                return

            LOG.info(f"Database '{self.database}' does not exist, creating it")
            create_response = requests.post(f"{self.url}/api/v3/configure/database",
                                            json={"db": self.database}, headers=headers,
                                            timeout=10, verify=verify_tls)
            if create_response.status_code in (200, 201, 204):
                LOG.info(f"Successfully created database '{self.database}'")
            else:
                LOG.error(f"Failed to create database '{self.database}': HTTP {create_response.status_code}")

        except (requests.RequestException, ValueError) as db_error:
            LOG.warning(f"Could not verify database existence (will be created on first write): {db_error}")

    @staticmethod
    def record_to_point(measurement: str, record: CommonRecord, default_time: int) -> Optional[Point]:
        """Convert one common record to a Point; None when it has no fields."""
        point = Point(measurement)
        for tag, value in record.label_fields().items():
            if value:
                point = point.tag(tag, value)

        if isinstance(record, MetricSample):
            if record.value is None:
                return None
            point = point.field('value', float(record.value))
            timestamp = record.timestamp_seconds or default_time
        else:
            fields = record.numeric_fields()
            if not fields:
                return None
            for name, value in fields.items():
                point = point.field(name, value)
            timestamp = default_time

        return point.time(int(timestamp), WritePrecision.S)

    def write(self, measurements: Measurements, loop_iteration: int = 1) -> bool:
        """
        Write records to InfluxDB using client-side batching.

        Args:
            measurements: Records keyed by measurement name
            loop_iteration: Current iteration number for debug file naming

        Returns:
            bool: True if all writes succeeded, False otherwise
        """
        if not self.client:
            LOG.error("InfluxDB client not available")
            return False

        success = True
        written_count = 0
        now = int(time.time())
        lines: List[str] = []

        for measurement_name, records in measurements.items():
            if not records:
                LOG.debug(f"No data for measurement: {measurement_name}")
                continue

            points = [p for p in (self.record_to_point(measurement_name, r, now) for r in records) if p is not None]
            LOG.info(f"Processing InfluxDB measurement: {measurement_name} ({len(points)} points)")

            for point in points:
                try:
                    self.client.write(record=point)
                    written_count += 1
                    if self.enable_debug_output:
                        lines.append(point.to_line_protocol())
                except InfluxDBError as e:
                    LOG.error(f"Failed to write point: {e}")
                    success = False

        if written_count > 0:
            LOG.info(f"InfluxDB write submitted: {written_count} total points (batched by client)")

        if self.enable_debug_output:
            self._write_debug_output(measurements, lines, loop_iteration)

        return success

    def _write_debug_output(self, measurements: Measurements, lines: List[str], loop_iteration: int = 1):
        """
        Write input records and generated line protocol for debugging.
        Only enabled when COLLECTOR_LOG_LEVEL=DEBUG.
        """
        prefix = "iteration_1_" if loop_iteration == 1 else ""
        try:
            os.makedirs(self.debug_output_dir, exist_ok=True)

            input_path = os.path.join(self.debug_output_dir, f"{prefix}influxdb_writer_input_final.json")
            with open(input_path, 'w', encoding='utf-8') as f:
                json.dump({name: [asdict(r) for r in records] for name, records in measurements.items()},
                          f, indent=2, default=str)

            lp_path = os.path.join(self.debug_output_dir, f"{prefix}influxdb_line_protocol_final.txt")
            with open(lp_path, 'w', encoding='utf-8') as f:
                f.write('\n'.join(lines))

            LOG.info(f"InfluxDB debug output saved to: {input_path}, {lp_path}")
        except OSError as e:
            LOG.error(f"Failed to write InfluxDB debug output: {e}")

    def close(self, timeout_seconds=90, force_exit_on_timeout=False):
        """Close the InfluxDB client connection with timeout.

        Args:
            timeout_seconds: Maximum time to wait for pending batches to flush
            force_exit_on_timeout: If True, exit the process after a timeout
                so no background writer threads are left behind
        """
        if not self.client:
            return

        LOG.info(f"Closing InfluxDB client with {timeout_seconds}s timeout...")
        close_completed = threading.Event()
        close_error = []

        def close_thread():
            try:
                start_close = time.time()
                self.client.close()
                LOG.info(f"InfluxDB client closed gracefully in {time.time() - start_close:.2f}s")
            except (InfluxDBError, OSError) as e:
                close_error.append(e)
                LOG.warning(f"Error during graceful close: {e}")
            finally:
                close_completed.set()

        closer = threading.Thread(target=close_thread, daemon=True)
        closer.start()

        if close_completed.wait(timeout_seconds):
            if close_error:
                LOG.warning(f"Close completed with errors: {close_error[0]}")
            LOG.info(f"Batch statistics: {self.batch_callback.get_stats()}")
        else:
            LOG.warning(f"InfluxDB client close timed out after {timeout_seconds}s - pending writes may be lost")

        self.client = None

        if not close_completed.is_set() and force_exit_on_timeout:
            LOG.warning("Force exit requested after timeout - terminating process")
            raise SystemExit(1)
