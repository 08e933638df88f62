"""Multi-vendor storage array collector."""

__version__ = '0.1.0'
