"""
Configuration management for the storage collector.
"""

import os
import yaml
import json
from typing import List, Optional, Dict, Any
import logging

from ..core.config import PolicySettings, VendorConfig
from ..core.errors import ConfigError

# Initialize logger
LOG = logging.getLogger(__name__)

# Environment overrides for the policy section: variable -> (policy key, type)
POLICY_ENV_OVERRIDES = {
    'COLLECTOR_MAX_ATTEMPTS': ('retry.max_attempts', int),
    'COLLECTOR_MAX_PAGES': ('max_pages', int),
    'COLLECTOR_REQUEST_TIMEOUT': ('request_timeout', float),
    'COLLECTOR_SESSION_TTL': ('session_ttl', float),
}

# Per-vendor credential overrides: <NAME>_USERNAME etc.
CREDENTIAL_ENV_SUFFIXES = ('username', 'password', 'token')


class Settings:
    """
    Configuration settings for the storage collector.
    Supports loading from a YAML or JSON file plus environment variables.

    The file carries a ``vendors:`` list (one entry per endpoint), an
    optional ``policy:`` section and optional sink settings::

        policy:
          max_pages: 500
          retry: {max_attempts: 5}
        vendors:
          - name: lab-eseries
            vendor: eseries
            endpoint: 10.0.0.5
            username: monitor
            password: secret
        influxdb_url: https://influx:8181
    """

    def __init__(self, config_file: Optional[str] = None, from_env: bool = True):
        """
        Initialize settings from a config file or environment variables.

        Args:
            config_file: Path to YAML or JSON configuration file
            from_env: Whether to load settings from environment variables
        """
        # Default values
        self.vendor_entries: List[Dict[str, Any]] = []
        self.policy_data: Dict[str, Any] = {}
        self.influxdb_url: Optional[str] = None
        self.influxdb_database: Optional[str] = None
        self.influxdb_token: Optional[str] = None
        self.prometheus_port: Optional[int] = None
        self.tls_ca: Optional[str] = None

        # Load configuration in order of precedence
        if config_file:
            self._load_from_file(config_file)

        if from_env:
            self._load_from_env()

    def _load_from_file(self, config_file: str) -> None:
        """Load settings from a YAML or JSON file.

        Raises:
            ConfigError: the file is missing, unreadable or has the wrong shape
        """
        if not os.path.exists(config_file):
            raise ConfigError(f"Config file not found: {config_file}")

        lowered = config_file.lower()
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if lowered.endswith('.yaml') or lowered.endswith('.yml'):
                    config = yaml.safe_load(f)
                elif lowered.endswith('.json'):
                    config = json.load(f)
                else:
                    raise ConfigError(f"Unsupported config file format: {config_file}")
        except (OSError, yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"Failed to load config from {config_file}: {e}") from e

        self.apply(config or {})
        LOG.info(f"Loaded configuration from {config_file} ({len(self.vendor_entries)} vendor endpoints)")

    def apply(self, config: Dict[str, Any]) -> None:
        """Apply an already parsed configuration mapping."""
        if not isinstance(config, dict):
            raise ConfigError("Configuration root must be a mapping")
        vendors = config.get('vendors') or []
        if not isinstance(vendors, list) or not all(isinstance(v, dict) for v in vendors):
            raise ConfigError("'vendors' must be a list of mappings")
        policy = config.get('policy') or {}
        if not isinstance(policy, dict):
            raise ConfigError("'policy' must be a mapping")

        self.vendor_entries = [dict(v) for v in vendors]
        self.policy_data = dict(policy)
        self.influxdb_url = config.get('influxdb_url', self.influxdb_url)
        self.influxdb_database = config.get('influxdb_database', self.influxdb_database)
        self.influxdb_token = config.get('influxdb_token', self.influxdb_token)
        self.prometheus_port = config.get('prometheus_port', self.prometheus_port)
        self.tls_ca = config.get('tls_ca', self.tls_ca)

    def _load_from_env(self) -> None:
        """Load settings from environment variables."""
        for variable, (key, cast) in POLICY_ENV_OVERRIDES.items():
            raw = os.getenv(variable)
            if raw is None or raw == '':
                continue
            try:
                value = cast(raw)
            except ValueError:
                raise ConfigError(f"{variable} must be a number, got {raw!r}") from None
            if key.startswith('retry.'):
                self.policy_data.setdefault('retry', {})[key.split('.', 1)[1]] = value
            else:
                self.policy_data[key] = value

        for entry in self.vendor_entries:
            prefix = self.env_prefix(entry)
            for suffix in CREDENTIAL_ENV_SUFFIXES:
                value = os.getenv(f"{prefix}_{suffix.upper()}")
                if value:
                    entry[suffix] = value

        # Sink Configuration
        self.influxdb_url = os.getenv('INFLUXDB_URL', self.influxdb_url)
        self.influxdb_database = os.getenv('INFLUXDB_DATABASE', self.influxdb_database)
        self.influxdb_token = os.getenv('INFLUXDB_TOKEN', self.influxdb_token)

        # TLS Configuration
        self.tls_ca = os.getenv('TLS_CA', self.tls_ca)

    @staticmethod
    def env_prefix(entry: Dict[str, Any]) -> str:
        """Environment variable prefix for a vendor entry's credentials.

        Uses the entry's ``name`` (or the vendor name) upper-cased, with
        anything that is not a letter or digit turned into ``_``.
        """
        name = str(entry.get('name') or entry.get('vendor') or '')
        return ''.join(c if c.isalnum() else '_' for c in name).upper()

    @property
    def policy(self) -> PolicySettings:
        return PolicySettings.from_dict(self.policy_data)

    def vendor_configs(self) -> List[VendorConfig]:
        """Build one VendorConfig per configured endpoint.

        The entry ``name`` is kept in the config options; ``tls_ca`` falls
        back to the global setting.
        """
        configs = []
        for entry in self.vendor_entries:
            data = dict(entry)
            if self.tls_ca and not data.get('tls_ca'):
                data['tls_ca'] = self.tls_ca
            configs.append(VendorConfig.from_dict(data))
        return configs
