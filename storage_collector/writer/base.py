"""
Base writer interface for the storage collector.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from ..schema.base_model import CommonRecord

# Initialize logger
LOG = logging.getLogger(__name__)

Measurements = Dict[str, List[CommonRecord]]


class Writer(ABC):
    """
    Base class for all writers.

    Writers receive common records grouped by measurement name
    (``storage_volume``, ``storage_pool``, ``storage_node``,
    ``storage_performance``) and never call back into the collector.
    """

    @abstractmethod
    def write(self, data: Measurements, loop_iteration: int = 1) -> bool:
        """
        Write data to the destination.

        Args:
            data: Records keyed by measurement name
            loop_iteration: Current iteration number for debug file naming

        Returns:
            True if write was successful, False otherwise
        """
        pass

    def close(self, timeout_seconds: int = 90, force_exit_on_timeout: bool = False) -> None:
        """
        Optional method to close the writer and clean up resources.
        Default implementation does nothing - override in subclasses that need cleanup.

        Args:
            timeout_seconds: Timeout for cleanup operations
            force_exit_on_timeout: Whether to force exit on timeout
        """
        pass


class NullWriter(Writer):
    """Discards everything; used with ``--output none``."""

    def write(self, data: Measurements, loop_iteration: int = 1) -> bool:
        LOG.debug(f"NullWriter dropping {sum(len(v) for v in data.values())} records")
        return True
