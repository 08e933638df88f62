"""Declarative description of one vendor request."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlencode

from ..codec.wire_codec import ShapeTag


@dataclass(frozen=True)
class RequestSpec:
    """What to send for one operation (or one page of it).

    Attributes:
        operation: common operation name, used in logs and errors
        method: HTTP method
        path: path template relative to ``base_url``; ``{name}``
            placeholders are filled from ``path_params``
        shape: wire format of the response (and of ``body`` when present)
        paged: whether the dispatcher should follow cursors
        cursor: cursor this spec requests, None for the first page
        cursor_param: query parameter carrying the cursor, for vendors that
            page through the query string
    """
    operation: str
    method: str
    path: str
    shape: ShapeTag
    base_url: str = ''
    path_params: Mapping[str, Any] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    paged: bool = False
    cursor: Optional[str] = None
    cursor_param: Optional[str] = None

    def render_path(self) -> str:
        params = {k: quote(str(v), safe='') for k, v in self.path_params.items()}
        return self.path.format(**params)

    def url(self) -> str:
        url = f"{self.base_url.rstrip('/')}/{self.render_path().lstrip('/')}" if self.base_url else self.render_path()
        query = {k: v for k, v in self.query.items() if v is not None}
        if query:
            url = f"{url}{'&' if '?' in url else '?'}{urlencode(query)}"
        return url

    def request_headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        headers.update(self.headers)
        if self.body is not None and not any(k.lower() == 'content-type' for k in headers):
            headers['Content-Type'] = self.shape.content_type
        return headers

    def with_cursor(self, cursor: str) -> 'RequestSpec':
        """The spec for the page identified by ``cursor``."""
        if self.cursor_param:
            query = dict(self.query)
            query[self.cursor_param] = cursor
            return replace(self, cursor=cursor, query=query)
        return replace(self, cursor=cursor)
