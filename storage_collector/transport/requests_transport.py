"""Transport backed by a pooled requests.Session."""

import logging
from http.cookiejar import DefaultCookiePolicy
from typing import Dict, Optional, Tuple

import requests
import urllib3
from requests.adapters import HTTPAdapter

from ..core.errors import TransportConnectionError, TransportError, TransportTimeoutError
from .base import RawResponse, Transport


class RequestsTransport(Transport):
    """HTTP transport with connection pooling and TLS validation modes.

    The session cookie jar rejects everything: vendor cookies belong to the
    SessionManager, which passes them back explicitly per request, so one
    transport can serve many vendor identities without mixing their cookies.
    """

    def __init__(self, tls_validation: str = 'strict', tls_ca: Optional[str] = None,
                 pool_maxsize: int = 10):
        self.logger = logging.getLogger(__name__)
        self.tls_validation = tls_validation
        self.tls_ca = tls_ca

        self.session = requests.Session()
        self.session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        adapter = HTTPAdapter(pool_connections=pool_maxsize, pool_maxsize=pool_maxsize)
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)

        if tls_validation == 'none':
            self.session.verify = False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self.logger.warning("TLS validation is DISABLED for vendor APIs. This is insecure.")
        else:
            # 'normal' and 'strict' both verify; a CA bundle narrows the trust store
            self.session.verify = tls_ca if tls_ca else True

    def send(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
             body: Optional[bytes] = None, timeout: Optional[float] = None,
             auth: Optional[Tuple[str, str]] = None,
             cookies: Optional[Dict[str, str]] = None) -> RawResponse:
        self.logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method, url,
                headers=headers,
                data=body,
                timeout=timeout,
                auth=auth,
                cookies=cookies,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            raise TransportTimeoutError(f"{method} {url} timed out after {timeout}s") from e
        except requests.exceptions.SSLError as e:
            # Certificate problems do not go away on retry
            raise TransportError(f"TLS error for {url}: {e}", retryable=False) from e
        except requests.exceptions.ConnectionError as e:
            raise TransportConnectionError(f"connection to {url} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}", retryable=False) from e

        return RawResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get('Content-Type', ''),
            headers=dict(response.headers),
            cookies=requests.utils.dict_from_cookiejar(response.cookies),
            url=url,
        )

    def close(self) -> None:
        self.session.close()
