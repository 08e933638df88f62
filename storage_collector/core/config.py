"""Core configuration classes for the collector."""

import hashlib
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .errors import ConfigError, IncompleteConfigError

TLS_VALIDATION_MODES = ('strict', 'normal', 'none')


@dataclass(frozen=True)
class VendorConfig:
    """Connection settings for one vendor endpoint.

    Immutable once built; sessions are keyed by ``identity_key`` so two
    configs pointing at the same endpoint with different credentials never
    share a session.
    """

    vendor: str
    endpoint: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    token: Optional[str] = field(default=None, repr=False)
    region: Optional[str] = None
    tenant: Optional[str] = None
    tls_ca: Optional[str] = None
    tls_validation: str = 'strict'  # 'strict', 'normal', 'none'
    request_timeout: Optional[float] = None  # falls back to PolicySettings.request_timeout
    options: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Read-only view of the per-vendor extras
        object.__setattr__(self, 'options', MappingProxyType(dict(self.options or {})))
        if self.tls_validation not in TLS_VALIDATION_MODES:
            raise ConfigError(f"tls_validation must be one of {list(TLS_VALIDATION_MODES)}",
                              vendor=self.vendor)

    def validate(self) -> 'VendorConfig':
        """Check that the config has what every adapter needs.

        Returns:
            self, so calls can be chained

        Raises:
            IncompleteConfigError: endpoint or credentials are missing
        """
        missing = []
        if not self.vendor:
            missing.append('vendor')
        if not self.endpoint:
            missing.append('endpoint')
        if not self.token:
            if not self.username:
                missing.append('username')
            if not self.password:
                missing.append('password')
        if missing:
            raise IncompleteConfigError(missing, vendor=self.vendor or None)
        return self

    @property
    def identity_key(self) -> Tuple[str, str]:
        """(normalized endpoint, credentials fingerprint)."""
        digest = hashlib.sha256()
        for part in (self.username, self.password, self.token, self.tenant):
            digest.update((part or '').encode('utf-8'))
            digest.update(b'\x00')
        return self.normalized_endpoint(), digest.hexdigest()

    def normalized_endpoint(self) -> str:
        """Lower-cased endpoint without scheme or trailing slash."""
        endpoint = (self.endpoint or '').strip().rstrip('/')
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]
        return endpoint.lower()

    def base_url(self, default_scheme: str = 'https', default_port: Optional[int] = None) -> str:
        """Absolute base URL for the endpoint.

        Endpoints may be given as ``host``, ``host:port`` or a full URL.
        """
        endpoint = (self.endpoint or '').strip().rstrip('/')
        if '://' in endpoint:
            return endpoint
        if default_port and not urlsplit(f"//{endpoint}").port:
            endpoint = f"{endpoint}:{default_port}"
        return f"{default_scheme}://{endpoint}"

    def option(self, key: str, default: Any = None) -> Any:
        """Read a per-vendor extra option."""
        return self.options.get(key, default)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VendorConfig':
        """Build a config from a settings-file entry, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        extras = {k: v for k, v in data.items() if k not in known}
        if extras:
            merged = dict(extras)
            merged.update(kwargs.get('options') or {})
            kwargs['options'] = merged
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, credentials redacted."""
        return {
            'vendor': self.vendor,
            'endpoint': self.endpoint,
            'username': self.username,
            'password': '[REDACTED]' if self.password else None,
            'token': '[REDACTED]' if self.token else None,
            'region': self.region,
            'tenant': self.tenant,
            'tls_ca': self.tls_ca,
            'tls_validation': self.tls_validation,
            'request_timeout': self.request_timeout,
            'options': dict(self.options),
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient failures."""

    max_attempts: int = 4      # total attempts, first one included
    base_delay: float = 0.5    # seconds
    max_delay: float = 8.0     # seconds
    multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigError("retry delays must not be negative")
        if self.multiplier < 1:
            raise ConfigError("multiplier must be >= 1")


@dataclass(frozen=True)
class PolicySettings:
    """Tunable knobs shared by dispatcher and session manager."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    max_pages: int = 1000
    request_timeout: float = 30.0
    session_ttl: Optional[float] = None  # None = sessions do not expire on their own

    def __post_init__(self):
        if self.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PolicySettings':
        """Build policy settings from a ``policy:`` settings section."""
        data = dict(data or {})
        retry_data = data.pop('retry', None) or {}
        retry = RetryPolicy(**{k: v for k, v in retry_data.items()
                               if k in {f.name for f in fields(RetryPolicy)}})
        kwargs = {k: v for k, v in data.items() if k in {'max_pages', 'request_timeout', 'session_ttl'}}
        return cls(retry=retry, **kwargs)


@dataclass
class CollectorConfig:
    """Run-level configuration for the collection loop."""

    config_file: Optional[str] = None

    # Output configuration
    output: str = 'prometheus'  # 'influxdb', 'prometheus', 'both' or 'none'

    # Collection behavior
    interval_time: int = 60  # seconds between collections
    max_iterations: int = 0  # 0 = unlimited, >0 = exit after N iterations
    max_workers: int = 4

    # Debugging
    log_level: str = 'INFO'
    logfile: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.output not in ('influxdb', 'prometheus', 'both', 'none'):
            raise ValueError(f"Unsupported output: {self.output}")
        if self.interval_time < 1:
            raise ValueError("interval_time must be a positive number of seconds")
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be 0 (unlimited) or positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_args(cls, args) -> 'CollectorConfig':
        """Create configuration from command line arguments."""
        return cls(
            config_file=getattr(args, 'config', None),
            output=getattr(args, 'output', 'prometheus'),
            interval_time=getattr(args, 'intervalTime', 60),
            max_iterations=getattr(args, 'maxIterations', 0),
            max_workers=getattr(args, 'maxWorkers', 4),
            log_level=getattr(args, 'log_level', 'INFO'),
            logfile=getattr(args, 'logfile', None),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'config_file': self.config_file,
            'output': self.output,
            'interval_time': self.interval_time,
            'max_iterations': self.max_iterations,
            'max_workers': self.max_workers,
            'log_level': self.log_level,
            'logfile': self.logfile,
        }
