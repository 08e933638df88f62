"""Vendor-neutral record types."""

from .base_model import CommonRecord
from .models import Volume, Pool, Node, MetricSample, PagedResult, MEASUREMENTS

__all__ = ['CommonRecord', 'Volume', 'Pool', 'Node', 'MetricSample', 'PagedResult', 'MEASUREMENTS']
