"""Core collector package initialization."""

from .config import CollectorConfig, PolicySettings, RetryPolicy, VendorConfig

__all__ = ['CollectorConfig', 'PolicySettings', 'RetryPolicy', 'VendorConfig']
