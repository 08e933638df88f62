"""Main collector orchestration logic.

Builds one adapter per configured vendor endpoint, runs their read
operations concurrently and hands the merged records to a writer.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, List, Tuple

from ..adapters import CollectionResult, VendorAdapter, create_adapter
from ..core.errors import StorageCollectorError
from ..dispatch.dispatcher import RequestDispatcher
from ..schema.base_model import CommonRecord
from ..session.manager import SessionManager
from ..transport.base import Transport
from ..transport.requests_transport import RequestsTransport
from .config import PolicySettings, VendorConfig

# (tls_validation, tls_ca): configs sharing TLS settings share a connection pool
TransportKey = Tuple[str, Optional[str]]


class MetricsCollector:
    """Orchestrates collection across every configured vendor endpoint.

    Args:
        settings: Loaded ``Settings`` (vendor entries and policy)
        writer: Optional destination for the collected records
        transport: Optional transport shared by every vendor; by default one
            ``RequestsTransport`` is created per distinct TLS setting
        max_workers: Vendor endpoints collected in parallel
    """

    def __init__(self, settings, writer=None, transport: Optional[Transport] = None,
                 max_workers: int = 4):
        self.settings = settings
        self.writer = writer
        self.max_workers = max_workers
        self.logger = logging.getLogger(__name__)

        self.policy: PolicySettings = settings.policy
        self.configs: List[VendorConfig] = settings.vendor_configs()
        self.stop_event = threading.Event()

        self._shared_transport = transport
        self._stacks: Dict[TransportKey, Tuple[Transport, SessionManager, RequestDispatcher]] = {}
        self.adapters: List[Tuple[VendorConfig, VendorAdapter]] = [
            (config, self._create_adapter(config)) for config in self.configs
        ]

        # Statistics tracking
        self.collections_completed = 0
        self.last_collection_time: Optional[float] = None
        self.last_results: List[CollectionResult] = []

        self.logger.info(f"Collector configured for {len(self.adapters)} vendor endpoints: "
                         f"{[f'{c.vendor}@{c.endpoint}' for c in self.configs]}")

    def _stack_for(self, config: VendorConfig) -> Tuple[Transport, SessionManager, RequestDispatcher]:
        key: TransportKey = ('shared', None) if self._shared_transport else (config.tls_validation, config.tls_ca)
        stack = self._stacks.get(key)
        if stack is None:
            transport = self._shared_transport or RequestsTransport(config.tls_validation, config.tls_ca)
            stack = (transport, SessionManager(transport, self.policy), RequestDispatcher(transport, self.policy))
            self._stacks[key] = stack
        return stack

    def _create_adapter(self, config: VendorConfig) -> VendorAdapter:
        transport, sessions, dispatcher = self._stack_for(config)
        return create_adapter(config.vendor, transport, session_manager=sessions,
                              dispatcher=dispatcher, policy=self.policy)

    def _collect_one(self, config: VendorConfig, adapter: VendorAdapter) -> CollectionResult:
        try:
            return adapter.collect(config, cancel=self.stop_event)
        except StorageCollectorError as e:
            # Raised outside the per-operation handling, e.g. invalid config
            self.logger.error(f"Collection from {config.vendor}@{config.endpoint} failed: {e}")
            return CollectionResult(vendor=config.vendor, endpoint=config.endpoint, data={},
                                    success=False, error_message=str(e))
        except Exception as e:
            self.logger.exception(f"Unexpected error collecting from {config.vendor}@{config.endpoint}: {e}")
            return CollectionResult(vendor=config.vendor, endpoint=config.endpoint, data={},
                                    success=False, error_message=f"{type(e).__name__}: {e}")

    def collect_all_data(self) -> List[CollectionResult]:
        """Collect from every vendor endpoint, one result per endpoint, in config order."""
        if not self.adapters:
            self.logger.warning("No vendor endpoints configured")
            return []

        workers = min(self.max_workers, len(self.adapters))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='collector') as executor:
            futures = [executor.submit(self._collect_one, config, adapter) for config, adapter in self.adapters]
            results = [future.result() for future in futures]

        for result in results:
            if result.success:
                self.logger.info(f"{result.vendor}@{result.endpoint}: {result.record_count} records "
                                 f"in {result.metadata.get('duration_seconds', 0)}s")
            else:
                self.logger.warning(f"{result.vendor}@{result.endpoint}: {result.error_message}")
        return results

    @staticmethod
    def merge_results(results: List[CollectionResult]) -> Dict[str, List[CommonRecord]]:
        """Merge per-vendor records into one batch keyed by measurement.

        Operations that succeeded contribute their records even when another
        operation for the same vendor failed.
        """
        merged: Dict[str, List[CommonRecord]] = {}
        for result in results:
            for measurement, records in result.data.items():
                merged.setdefault(measurement, []).extend(records)
        return merged

    def process_and_write_data(self, results: List[CollectionResult]) -> bool:
        """Write the merged records; True when there was nothing to write or the write worked."""
        merged = self.merge_results(results)
        total = sum(len(records) for records in merged.values())
        if total == 0:
            self.logger.info("No data to write")
            return True

        if not self.writer:
            self.logger.warning("No writer available - skipping data write")
            return False

        if self.writer.write(merged, self.collections_completed + 1):
            self.logger.info(f"{total} records written to output destination")
            return True
        self.logger.error("Failed to write data to output destination")
        return False

    def run_single_collection(self) -> bool:
        """Run a single collection cycle.

        Returns:
            True if every vendor succeeded and the write worked
        """
        start_time = time.time()

        results = self.collect_all_data()
        self.last_results = results
        written = self.process_and_write_data(results)

        self.collections_completed += 1
        self.last_collection_time = time.time()

        duration = self.last_collection_time - start_time
        self.logger.info(f"Collection cycle {self.collections_completed} completed in {duration:.2f}s")

        return written and all(r.success for r in results)

    def run_continuous(self, interval: int = 60, max_iterations: int = 0) -> None:
        """Run the collection loop until stopped.

        Args:
            interval: Seconds between the start of one cycle and the next
            max_iterations: Exit after this many cycles; 0 runs until ``stop()``
        """
        iteration_count = 0
        self.logger.info(f"Starting continuous collection (interval: {interval}s, "
                         f"max_iterations: {max_iterations if max_iterations > 0 else 'unlimited'})")

        try:
            while not self.stop_event.is_set():
                iteration_count += 1
                cycle_start = time.time()

                if not self.run_single_collection():
                    self.logger.warning("Collection cycle had failures, continuing...")

                if max_iterations > 0 and iteration_count >= max_iterations:
                    self.logger.info(f"Completed final iteration {iteration_count} - not waiting for interval")
                    break

                wait = max(interval - (time.time() - cycle_start), 0)
                self.logger.info(f"Waiting {wait:.0f} seconds until next collection...")
                self.stop_event.wait(wait)

        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal, shutting down...")
        finally:
            self.cleanup()

    def stop(self) -> None:
        """Stop the loop and cancel in-flight requests at their next checkpoint."""
        self.stop_event.set()

    def cleanup(self) -> None:
        """Log out of vendor sessions, close transports and flush the writer."""
        for transport, sessions, _ in self._stacks.values():
            sessions.close()
            if transport is not self._shared_transport:
                transport.close()
        self._stacks.clear()

        if self.writer:
            self.logger.info("Collection finished - closing writer and flushing remaining data...")
            self.writer.close(timeout_seconds=90, force_exit_on_timeout=False)
            self.writer = None

        self.logger.info("Collector cleanup completed")

    def get_statistics(self) -> Dict[str, Any]:
        """Get collection statistics."""
        return {
            'collections_completed': self.collections_completed,
            'last_collection_time': self.last_collection_time,
            'vendors': [f"{c.vendor}@{c.endpoint}" for c in self.configs],
            'last_results': [
                {'vendor': r.vendor, 'endpoint': r.endpoint, 'success': r.success,
                 'records': r.record_count, 'error': r.error_message}
                for r in self.last_results
            ],
        }
