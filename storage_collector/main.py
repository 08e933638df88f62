"""Command line entry point for the storage collector."""

import argparse
import sys
import logging
from typing import Optional

from .adapters import available_vendors
from .config import Settings
from .core.collector import MetricsCollector
from .core.config import CollectorConfig
from .core.errors import ConfigError
from .core.writer_config import WriterConfig
from .core.logging_config import LoggingConfigurator
from .writer import WriterFactory


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""

    parser = argparse.ArgumentParser(
        description='Multi-vendor storage array collector',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Supported vendors: {', '.join(available_vendors())}

Examples:
  # Collect every 5 minutes and expose Prometheus metrics on port 8000
  python -m storage_collector --config collector.yaml --output prometheus --interval 300

  # One collection cycle into InfluxDB
  python -m storage_collector --config collector.yaml --output influxdb --maxIterations 1 \\
                              --influxdbUrl https://db.example.com:8181 --influxdbToken mytoken --influxdbDatabase storage
        """
    )

    parser.add_argument('--config', '-c', type=str, required=True,
                        help='YAML or JSON file listing the vendor endpoints to collect from')
    parser.add_argument('--tlsCa', type=str, default=None,
                        help='Path to CA certificate used for vendor APIs without their own tls_ca, and for InfluxDB')

    # Output configuration
    output_group = parser.add_argument_group('Output Configuration')
    output_group.add_argument('--output', choices=['influxdb', 'prometheus', 'both', 'none'],
                              default='prometheus', help='Output format (default: prometheus)')

    # InfluxDB specific options
    influx_group = parser.add_argument_group('InfluxDB Configuration')
    influx_group.add_argument('--influxdbUrl', type=str, default=None,
                              help='InfluxDB server URL. Example: https://proxy.example.com:18181')
    influx_group.add_argument('--influxdbDatabase', type=str, default=None,
                              help='InfluxDB database name')
    influx_group.add_argument('--influxdbToken', type=str, default=None,
                              help='InfluxDB authentication token')

    # Prometheus specific options
    prometheus_group = parser.add_argument_group('Prometheus Configuration')
    prometheus_group.add_argument('--prometheus-port', type=int, default=None,
                                  help='Prometheus metrics server port (default: 8000)')

    # Collection behavior
    behavior_group = parser.add_argument_group('Collection Behavior')
    behavior_group.add_argument('--intervalTime', '--interval', dest='intervalTime', type=int, default=60,
                                help='Collection interval in seconds (default: 60)')
    behavior_group.add_argument('--maxIterations', '--max-iterations', dest='maxIterations', type=int, default=0,
                                help='Maximum collection iterations (0=unlimited, >0=exit after N iterations)')
    behavior_group.add_argument('--maxWorkers', type=int, default=4,
                                help='Vendor endpoints collected in parallel (default: 4)')

    # Debugging
    debug_group = parser.add_argument_group('Debugging')
    debug_group.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                             default='INFO', help='Set logging level (default: INFO)')
    debug_group.add_argument('--logfile', type=str, default=None,
                             help='Path to log file (default: stdout only)')

    return parser


def validate_arguments(args) -> Optional[str]:
    """Validate command line arguments.

    Returns:
        Error message if validation fails, None if valid
    """
    if args.intervalTime < 1:
        return "--intervalTime must be a positive number of seconds"
    if args.maxIterations < 0:
        return "--maxIterations must be 0 (unlimited) or positive"
    if args.maxWorkers < 1:
        return "--maxWorkers must be at least 1"
    return None


def main(argv=None):
    """Main entry point."""

    parser = create_argument_parser()
    args = parser.parse_args(argv)

    error_msg = validate_arguments(args)
    if error_msg:
        parser.error(error_msg)

    config = CollectorConfig.from_args(args)
    LoggingConfigurator.setup_logging(log_level=config.log_level, log_file=config.logfile)

    try:
        settings = Settings(config.config_file)
        if args.tlsCa:
            settings.tls_ca = args.tlsCa
        writer_config = WriterConfig.from_args(args, settings)
    except (ConfigError, ValueError) as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(2)

    # Log startup configuration for debugging
    logging.info("=== Storage Collector Startup ===")
    logging.info(f"Config File: {config.config_file}")
    for entry in settings.vendor_entries:
        logging.info(f"Vendor Endpoint: {entry.get('vendor')}@{entry.get('endpoint')}")
    logging.info(f"Output Mode: {writer_config.output_format}")
    logging.info(f"Collection Interval: {config.interval_time}s")
    if config.max_iterations > 0:
        logging.info(f"Max Iterations: {config.max_iterations}")
    if writer_config.uses_influxdb:
        logging.info(f"InfluxDB URL: {writer_config.influxdb_url}")
        logging.info(f"InfluxDB Database: {writer_config.influxdb_database}")
        logging.info("InfluxDB Token: [REDACTED]")
    if writer_config.uses_prometheus:
        logging.info(f"Prometheus Port: {writer_config.prometheus_port}")
    logging.info("=== Configuration Complete ===")

    try:
        writer = WriterFactory.create_writer_from_config(writer_config)
        collector = MetricsCollector(settings, writer=writer, max_workers=config.max_workers)
    except ConfigError as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        collector.run_continuous(interval=config.interval_time, max_iterations=config.max_iterations)
    except KeyboardInterrupt:
        logging.info("Received interrupt, shutting down...")
        collector.stop()


if __name__ == '__main__':
    main()
