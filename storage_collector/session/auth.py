"""Authentication strategies.

One class per way vendors establish a session: plain basic auth, a
caller-supplied bearer token, a form or JSON login that answers with
cookies, and a login call that answers with a token replacing the password.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence
from urllib.parse import urlencode

from ..core.config import VendorConfig
from ..core.errors import LoginFailedError, IncompleteConfigError
from ..transport.base import RawResponse, Transport
from .manager import Session

LOG = logging.getLogger(__name__)


class Authenticator(ABC):
    """Performs the login (and optional logout) round trip for a vendor."""

    def __init__(self, default_port: Optional[int] = None, scheme: str = 'https'):
        self.default_port = default_port
        self.scheme = scheme

    def url(self, config: VendorConfig, path: str) -> str:
        base = config.base_url(config.option('scheme', self.scheme), config.option('port', self.default_port))
        return f"{base}/{path.lstrip('/')}"

    @abstractmethod
    def login(self, config: VendorConfig, transport: Transport, timeout: float) -> Session:
        pass

    def logout(self, session: Session, transport: Transport, timeout: float) -> None:
        """Default implementation does nothing."""
        pass

    @staticmethod
    def _require_credentials(config: VendorConfig) -> None:
        missing = [name for name in ('username', 'password') if not getattr(config, name)]
        if missing:
            raise IncompleteConfigError(missing, vendor=config.vendor)

    @staticmethod
    def _check_login_response(config: VendorConfig, response: RawResponse, url: str) -> None:
        if not response.ok:
            raise LoginFailedError(f"login to {url} failed with status {response.status_code}",
                                   vendor=config.vendor, operation='login')


class BasicAuthenticator(Authenticator):
    """HTTP basic auth on every request; no login round trip."""

    def login(self, config: VendorConfig, transport: Transport, timeout: float) -> Session:
        self._require_credentials(config)
        return Session(config=config, auth=(config.username, config.password))


class BearerTokenAuthenticator(Authenticator):
    """Caller-supplied API token sent as a header."""

    def __init__(self, header: str = 'Authorization', prefix: str = 'Bearer ', **kwargs):
        super().__init__(**kwargs)
        self.header = header
        self.prefix = prefix

    def login(self, config: VendorConfig, transport: Transport, timeout: float) -> Session:
        if not config.token:
            raise IncompleteConfigError(['token'], vendor=config.vendor)
        return Session(config=config, headers={self.header: f"{self.prefix}{config.token}"})


class CookieLoginAuthenticator(Authenticator):
    """Login call whose answer is a set of session cookies.

    Args:
        login_path: path of the login endpoint
        required_cookies: cookie names that must be present after login
        shape: 'form' or 'json' request body
    """

    def __init__(self, login_path: str, required_cookies: Sequence[str] = (),
                 shape: str = 'form', **kwargs):
        super().__init__(**kwargs)
        self.login_path = login_path
        self.required_cookies = tuple(required_cookies)
        self.shape = shape

    def login_payload(self, config: VendorConfig) -> Dict[str, object]:
        return {'username': config.username, 'password': config.password}

    def after_login(self, session: Session, transport: Transport, timeout: float) -> None:
        """Hook for vendors that need a second round trip after login."""
        pass

    def login(self, config: VendorConfig, transport: Transport, timeout: float) -> Session:
        self._require_credentials(config)
        url = self.url(config, self.login_path)
        payload = self.login_payload(config)
        if self.shape == 'json':
            headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
            body = json.dumps(payload).encode('utf-8')
        else:
            headers = {'Content-Type': 'application/x-www-form-urlencoded'}
            body = urlencode(payload).encode('utf-8')

        LOG.debug(f"Attempting session login to {url} with user {config.username}")
        response = transport.send('POST', url, headers=headers, body=body, timeout=timeout)
        self._check_login_response(config, response, url)

        missing = [name for name in self.required_cookies if name not in response.cookies]
        if missing:
            raise LoginFailedError(f"login to {url} did not return cookie(s) {', '.join(missing)}",
                                   vendor=config.vendor, operation='login')

        session = Session(config=config, cookies=dict(response.cookies))
        self.after_login(session, transport, timeout)
        LOG.info(f"Successfully authenticated with {config.vendor} at {config.endpoint}")
        return session


class TokenLoginAuthenticator(Authenticator):
    """Login call (basic auth) that answers with a token.

    The token then replaces the password in basic auth for every later
    request. Tokens may come back JSON-quoted.
    """

    def __init__(self, login_path: str, method: str = 'GET', **kwargs):
        super().__init__(**kwargs)
        self.login_path = login_path
        self.method = method

    def login(self, config: VendorConfig, transport: Transport, timeout: float) -> Session:
        self._require_credentials(config)
        url = self.url(config, self.login_path)
        response = transport.send(self.method, url, headers={'Accept': 'application/json'},
                                  auth=(config.username, config.password), timeout=timeout)
        self._check_login_response(config, response, url)

        token = response.text.strip().strip('"')
        if not token:
            raise LoginFailedError(f"login to {url} returned an empty token",
                                   vendor=config.vendor, operation='login')
        LOG.info(f"Obtained API token from {config.vendor} at {config.endpoint}")
        return Session(config=config, auth=(config.username, token))
