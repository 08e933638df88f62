"""Centralized logging configuration for the collector.

Keeps logging setup out of configuration parsing and the collection loop.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# HTTP client libraries log full URLs (and sometimes auth headers) at DEBUG
NOISY_LOGGERS = ('requests', 'urllib3')


class LoggingConfigurator:
    """Handles all logging setup independently of other configuration."""

    @staticmethod
    def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None) -> None:
        """Set up logging configuration.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional path to log file. If None, logs to console only.
        """
        level = getattr(logging, log_level.upper())

        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            logging.basicConfig(
                level=level,
                format=LOG_FORMAT,
                handlers=[
                    logging.FileHandler(log_file),
                    logging.StreamHandler()
                ]
            )
        else:
            logging.basicConfig(level=level, format=LOG_FORMAT)

        LoggingConfigurator.quiet_http_loggers(level)

    @staticmethod
    def quiet_http_loggers(level: int) -> None:
        """Never let the HTTP client loggers go below INFO."""
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.INFO))

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """Get a logger instance.

        Args:
            name: Logger name (usually __name__)

        Returns:
            Configured logger instance
        """
        return logging.getLogger(name)
