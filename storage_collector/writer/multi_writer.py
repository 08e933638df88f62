"""
Composite writer: fans one batch of records out to several sinks.
"""

import logging
from typing import List

from .base import Measurements, Writer

# Initialize logger
LOG = logging.getLogger(__name__)


class MultiWriter(Writer):
    """
    Writes the same measurements to every wrapped writer.

    A failing writer does not stop the others; ``write`` reports False
    if any of them failed.
    """

    def __init__(self, writers: List[Writer]):
        self.writers = writers
        LOG.info(f"MultiWriter initialized with {len(writers)} writers: {[type(w).__name__ for w in writers]}")

    def write(self, data: Measurements, loop_iteration: int = 1) -> bool:
        results = []

        for i, writer in enumerate(self.writers):
            writer_name = type(writer).__name__
            LOG.debug(f"Writing to {writer_name} ({i + 1}/{len(self.writers)})")
            try:
                result = writer.write(data, loop_iteration)
            except (OSError, ValueError) as e:
                LOG.error(f"Exception in {writer_name}: {e}", exc_info=True)
                result = False
            if not result:
                LOG.error(f"{writer_name} write failed")
            results.append(bool(result))

        LOG.info(f"MultiWriter completed: {sum(results)}/{len(self.writers)} writers successful")
        return all(results)

    def close(self, timeout_seconds=90, force_exit_on_timeout=False):
        """Close every wrapped writer, continuing past failures."""
        LOG.info("Closing MultiWriter and all sub-writers...")

        for writer in self.writers:
            writer_name = type(writer).__name__
            try:
                writer.close(timeout_seconds=timeout_seconds, force_exit_on_timeout=force_exit_on_timeout)
                LOG.info(f"{writer_name} closed successfully")
            except (OSError, ValueError) as e:
                LOG.error(f"Error closing {writer_name}: {e}", exc_info=True)

    def __str__(self) -> str:
        return f"MultiWriter({', '.join(type(w).__name__ for w in self.writers)})"

    __repr__ = __str__
