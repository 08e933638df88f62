"""Transport interface between the dispatcher and the network."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass
class RawResponse:
    """A vendor response before any decoding."""
    status_code: int
    body: bytes = b''
    content_type: str = ''
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    url: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def json(self):
        return json.loads(self.text)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


class Transport(ABC):
    """Sends one HTTP request and returns the raw response.

    Implementations raise TransportTimeoutError / TransportConnectionError
    for network failures and return every HTTP status, including errors,
    as a RawResponse.
    """

    @abstractmethod
    def send(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
             body: Optional[bytes] = None, timeout: Optional[float] = None,
             auth: Optional[Tuple[str, str]] = None,
             cookies: Optional[Dict[str, str]] = None) -> RawResponse:
        pass

    def close(self) -> None:
        """Release pooled connections. Default implementation does nothing."""
        pass
