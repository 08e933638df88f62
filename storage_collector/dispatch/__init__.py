"""Request dispatch: retry, re-authentication and pagination."""

from .request_spec import RequestSpec
from .retry import RetryStats, backoff_delay
from .dispatcher import RequestDispatcher

__all__ = ['RequestSpec', 'RetryStats', 'backoff_delay', 'RequestDispatcher']
