"""Replay transport.

Serves scripted or previously recorded vendor responses instead of talking
to a live array. Used for offline replay of captured payloads and as the
mock vendor in tests; every call is recorded for later inspection.
"""

import json
import logging
import os
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

from .base import RawResponse, Transport

Reply = Union[RawResponse, BaseException, Callable[['RecordedCall'], RawResponse]]


@dataclass
class RecordedCall:
    """One request as the transport saw it."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    timeout: Optional[float] = None
    auth: Optional[Tuple[str, str]] = None
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return (self.body or b'').decode('utf-8', errors='replace')


class _Route:
    def __init__(self, method: str, fragment: str, replies: List[Reply]):
        self.method = method.upper()
        self.fragment = fragment
        self.replies: Deque[Reply] = deque(replies)

    def matches(self, method: str, url: str) -> bool:
        return self.method in ('*', method.upper()) and self.fragment in url

    def next_reply(self) -> Reply:
        # The last reply keeps answering once the script runs out
        if len(self.replies) > 1:
            return self.replies.popleft()
        return self.replies[0]


class ReplayTransport(Transport):
    """Transport that answers from a script of routes.

    A route matches on HTTP method (``*`` for any) and a URL substring.
    Its replies are served in order; the last one repeats. A reply may be
    a RawResponse, an exception instance to raise, or a callable that
    receives the RecordedCall and returns a RawResponse. Requests that
    match no route get a 404.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.calls: List[RecordedCall] = []
        self._routes: List[_Route] = []
        self._lock = threading.Lock()

    def add(self, method: str, fragment: str, *replies: Reply) -> 'ReplayTransport':
        """Register a route. Earlier routes win when several match."""
        if not replies:
            raise ValueError("a route needs at least one reply")
        with self._lock:
            self._routes.append(_Route(method, fragment, list(replies)))
        return self

    def send(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
             body: Optional[bytes] = None, timeout: Optional[float] = None,
             auth: Optional[Tuple[str, str]] = None,
             cookies: Optional[Dict[str, str]] = None) -> RawResponse:
        call = RecordedCall(method.upper(), url, dict(headers or {}), body, timeout, auth, dict(cookies or {}))
        with self._lock:
            self.calls.append(call)
            route = next((r for r in self._routes if r.matches(method, url)), None)
            reply = route.next_reply() if route else None

        if reply is None:
            self.logger.debug(f"No replay route for {method} {url}")
            return RawResponse(status_code=404, body=b'not found', url=url)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(call)
        if not reply.url:
            reply = RawResponse(reply.status_code, reply.body, reply.content_type,
                                dict(reply.headers), dict(reply.cookies), url)
        return reply

    def count(self, method: Optional[str] = None, fragment: str = '') -> int:
        """Number of recorded calls matching method and URL substring."""
        return sum(1 for c in self.calls
                   if (method is None or c.method == method.upper()) and fragment in c.url)

    @classmethod
    def from_directory(cls, directory: str) -> 'ReplayTransport':
        """Load recorded responses from a capture directory.

        The directory holds an ``index.json`` list of entries such as
        ``{"method": "GET", "match": "/api/types/Volume/instances",
        "status": 200, "file": "volumes.json", "content_type":
        "application/json"}``; each ``file`` is the recorded body.
        Entries sharing method and match are replayed in order.
        """
        transport = cls()
        index_file = os.path.join(directory, 'index.json')
        with open(index_file, 'r', encoding='utf-8') as f:
            entries: List[Dict[str, Any]] = json.load(f)

        grouped: Dict[Tuple[str, str], List[Reply]] = {}
        for entry in entries:
            body = b''
            if entry.get('file'):
                with open(os.path.join(directory, entry['file']), 'rb') as f:
                    body = f.read()
            response = RawResponse(
                status_code=int(entry.get('status', 200)),
                body=body,
                content_type=entry.get('content_type', ''),
                headers=dict(entry.get('headers') or {}),
                cookies=dict(entry.get('cookies') or {}),
            )
            grouped.setdefault((entry.get('method', '*'), entry['match']), []).append(response)

        for (method, match), replies in grouped.items():
            transport.add(method, match, *replies)

        transport.logger.info(f"Loaded {len(entries)} recorded responses from {directory}")
        return transport
