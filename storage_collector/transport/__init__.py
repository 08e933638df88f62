"""HTTP transports used by the request dispatcher."""

from .base import RawResponse, Transport
from .requests_transport import RequestsTransport
from .replay import ReplayTransport, RecordedCall

__all__ = ['RawResponse', 'Transport', 'RequestsTransport', 'ReplayTransport', 'RecordedCall']
